"""Student, book and borrowing models with transactional service objects."""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass
class Student:
    id: int = 0
    email_address: str = ""
    name: str = ""
    borrowed: bool = False


@dataclass
class Book:
    id: int = 0
    name: str = ""


@dataclass
class Borrowing:
    id: str = ""
    student_id: int = 0
    book_id: int = 0
    borrow_date: datetime | None = None


def generate_id(data: bytes) -> str:
    """Return the hex MD5 digest of ``data``."""
    return hashlib.md5(data).hexdigest()


class TxController(Protocol):
    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class TxBeginner(Protocol):
    def begin(self) -> TxController: ...


class StudentRepo(Protocol):
    def add(self, student: Student, tx: TxController) -> None: ...

    def find(self, student_id: int) -> Student | None: ...

    def find_all(self) -> list[Student]: ...


class BookRepo(Protocol):
    def add(self, book: Book, tx: TxController) -> None: ...


class BorrowingRepo(Protocol):
    def add(self, student: Student, book: Book, tx: TxController) -> None: ...


@contextmanager
def _transaction(beginner: TxBeginner) -> Iterator[TxController]:
    """Begin a transaction, commit on success, and always attempt a rollback."""
    tx = beginner.begin()
    try:
        yield tx
        tx.commit()
    finally:
        with suppress(Exception):
            tx.rollback()


class StudentService:
    """Adds and looks up students."""

    def __init__(self, tx_beginner: TxBeginner, student_repo: StudentRepo) -> None:
        self.tx_beginner = tx_beginner
        self.student_repo = student_repo

    def add(self, email_address: str, name: str) -> None:
        with _transaction(self.tx_beginner) as tx:
            self.student_repo.add(Student(email_address=email_address, name=name), tx)

    def find(self, student_id: int) -> Student | None:
        return self.student_repo.find(student_id)

    def find_all(self) -> list[Student]:
        return self.student_repo.find_all()


class BookService:
    """Adds books."""

    def __init__(self, tx_beginner: TxBeginner, book_repo: BookRepo) -> None:
        self.tx_beginner = tx_beginner
        self.book_repo = book_repo

    def add(self, name: str) -> None:
        with _transaction(self.tx_beginner) as tx:
            self.book_repo.add(Book(name=name), tx)


class BorrowingService:
    """Records students borrowing books."""

    def __init__(
        self,
        tx_beginner: TxBeginner,
        borrowing_repo: BorrowingRepo,
        student_repo: StudentRepo,
        book_repo: BookRepo,
    ) -> None:
        self.tx_beginner = tx_beginner
        self.borrowing_repo = borrowing_repo
        self.student_repo = student_repo
        self.book_repo = book_repo

    def borrow(self, student: Student, book: Book) -> None:
        with _transaction(self.tx_beginner) as tx:
            self.borrowing_repo.add(student, book, tx)