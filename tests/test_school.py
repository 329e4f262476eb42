import pytest

from sikit.school import (
    Book,
    BookService,
    BorrowingService,
    Student,
    StudentService,
    generate_id,
)


class FakeTx:
    def __init__(self, fail_commit=False, fail_rollback=False):
        self.calls = []
        self.fail_commit = fail_commit
        self.fail_rollback = fail_rollback

    def commit(self):
        self.calls.append("commit")
        if self.fail_commit:
            raise RuntimeError("commit failed")

    def rollback(self):
        self.calls.append("rollback")
        if self.fail_rollback:
            raise RuntimeError("tx done")


class FakeBeginner:
    def __init__(self, tx=None, fail=False):
        self.tx = tx or FakeTx()
        self.fail = fail

    def begin(self):
        if self.fail:
            raise ConnectionError("cannot begin")
        return self.tx


class FakeStudentRepo:
    def __init__(self, fail=False):
        self.added = []
        self.fail = fail

    def add(self, student, tx):
        if self.fail:
            raise RuntimeError("insert failed")
        self.added.append((student, tx))

    def find(self, student_id):
        for student, _ in self.added:
            if student.id == student_id:
                return student
        return None

    def find_all(self):
        return [student for student, _ in self.added]


class FakeBookRepo:
    def __init__(self):
        self.added = []

    def add(self, book, tx):
        self.added.append((book, tx))


class FakeBorrowingRepo:
    def __init__(self):
        self.added = []

    def add(self, student, book, tx):
        self.added.append((student, book, tx))


def test_student_add_commits_then_rolls_back():
    beginner = FakeBeginner()
    repo = FakeStudentRepo()
    StudentService(beginner, repo).add("user@example.com", "wonk")
    assert repo.added == [(Student(email_address="user@example.com", name="wonk"), beginner.tx)]
    assert beginner.tx.calls == ["commit", "rollback"]


def test_student_add_repo_failure_rolls_back_only():
    beginner = FakeBeginner()
    with pytest.raises(RuntimeError):
        StudentService(beginner, FakeStudentRepo(fail=True)).add("user@example.com", "wonk")
    assert beginner.tx.calls == ["rollback"]


def test_begin_failure_propagates():
    repo = FakeStudentRepo()
    with pytest.raises(ConnectionError):
        StudentService(FakeBeginner(fail=True), repo).add("user@example.com", "wonk")
    assert repo.added == []


def test_commit_failure_propagates():
    beginner = FakeBeginner(FakeTx(fail_commit=True))
    with pytest.raises(RuntimeError, match="commit failed"):
        BookService(beginner, FakeBookRepo()).add("Eva Armisen")
    assert beginner.tx.calls == ["commit", "rollback"]


def test_rollback_error_after_commit_is_ignored():
    beginner = FakeBeginner(FakeTx(fail_rollback=True))
    repo = FakeBookRepo()
    BookService(beginner, repo).add("Eva Armisen")
    assert repo.added == [(Book(name="Eva Armisen"), beginner.tx)]


def test_find_and_find_all_delegate():
    repo = FakeStudentRepo()
    repo.add(Student(id=1, name="wonk"), None)
    service = StudentService(FakeBeginner(), repo)
    assert service.find(1) == Student(id=1, name="wonk")
    assert service.find(2) is None
    assert service.find_all() == [Student(id=1, name="wonk")]


def test_borrow_passes_student_and_book():
    beginner = FakeBeginner()
    borrowing = FakeBorrowingRepo()
    service = BorrowingService(beginner, borrowing, FakeStudentRepo(), FakeBookRepo())
    student, book = Student(id=1), Book(id=1)
    service.borrow(student, book)
    assert borrowing.added == [(student, book, beginner.tx)]
    assert beginner.tx.calls == ["commit", "rollback"]


def test_generate_id():
    assert generate_id(b"") == "d41d8cd98f00b204e9800998ecf8427e"
    first = generate_id(b"1_1_100")
    assert len(first) == 32
    assert all(c in "0123456789abcdef" for c in first)
    assert first == generate_id(b"1_1_100")
    assert first != generate_id(b"1_1_101")