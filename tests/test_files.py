import io
import os
import stat
from dataclasses import dataclass

import pytest

from sikit.files import (
    Codec,
    create_file,
    list_dir,
    open_existing,
    open_file,
)

RW_APPEND_TRUNC = os.O_CREAT | os.O_RDWR | os.O_APPEND | os.O_TRUNC


@pytest.fixture
def data_file(tmp_path):
    return str(tmp_path / "test.txt")


def test_write_flush_and_read_all_at(data_file):
    with open_file(data_file, RW_APPEND_TRUNC, 0o777) as f:
        assert f.read_all() == b""
        f.write_flush(b"hey\n")
        assert f.read_all_at(0) == b"hey\n"
        f.write_flush(b"hey2\n")
        assert f.read_all_at(0) == b"hey\nhey2\n"
        f.write_flush(b"hey3\n")
        assert f.read_all_at(0) == b"hey\nhey2\nhey3\n"
        with pytest.raises(OSError):
            f.chdir()
        f.chmod(0o777)
        assert stat.S_IMODE(os.stat(data_file).st_mode) == 0o777
        assert f.name == data_file


def test_read_after_reopen(data_file):
    f = open_file(data_file, RW_APPEND_TRUNC, 0o777)
    assert f.write_flush(b"hey2\n") == 5
    f.close()
    with open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_APPEND, 0o777) as f:
        assert len(f.read(100)) == 5


def test_write_at_and_read_at(data_file):
    f = open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_TRUNC, 0o777)
    f.write_at(b"hey2\n", 0)
    f.close()
    with open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_APPEND, 0o777) as f:
        assert len(f.read_at(100, 2)) == 3


def test_write_at_rejected_with_append(data_file):
    with open_file(data_file, RW_APPEND_TRUNC, 0o777) as f:
        with pytest.raises(ValueError):
            f.write_at(b"x", 0)


def test_write_string_and_flush(data_file):
    f = open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_TRUNC, 0o777)
    assert f.write_string("hey2\n") == 5
    f.flush()
    f.close()
    with open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_APPEND, 0o777) as f:
        assert f.read_at(100, 2) == b"y2\n"


def test_open_file_empty_name_fails():
    with pytest.raises(OSError):
        open_file("", RW_APPEND_TRUNC, 0o777)


def test_create(data_file):
    with create_file(data_file, reader_codec=Codec.JSON, writer_codec=Codec.JSON) as f:
        assert f.reader_codec is Codec.JSON
        assert f.writer_codec is Codec.JSON
    assert os.path.exists(data_file)
    with pytest.raises(OSError):
        create_file("")


def test_read_dir(tmp_path):
    for name in ("a", "b", "c"):
        (tmp_path / name).write_text(name)
    with open_existing(str(tmp_path)) as f:
        first = f.read_dir(2)
        assert len(first) == 2
        second = f.read_dir(1)
        assert len(second) == 1
        with pytest.raises(EOFError):
            f.read_dir(1)
    with open_existing(str(tmp_path)) as f:
        assert len(f.read_dir_names(1)) == 1
        assert len(f.read_dir_names(-1)) == 2


def test_read_from(data_file):
    with open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_TRUNC, 0o777) as f:
        assert f.read_from(io.BytesIO(b"hello world")) == 11
    with open(data_file, "rb") as raw:
        assert raw.read() == b"hello world"


def test_encode_and_decode_raw(data_file):
    with open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_TRUNC, 0o777) as f:
        f.encode(b"hello world")
        f.flush()
        f.encode_flush(b"hello world")
    with open_file(data_file, os.O_CREAT | os.O_RDWR, 0o777) as f:
        assert f.decode(bytes) == b"hello worldhello world"
    with open_file(data_file, os.O_CREAT | os.O_RDWR, 0o777) as f:
        assert f.decode(str) == "hello worldhello world"


def test_raw_codec_errors(data_file):
    with open_file(data_file, os.O_CREAT | os.O_RDWR | os.O_TRUNC, 0o777) as f:
        with pytest.raises(TypeError):
            f.encode(1535)
        with pytest.raises(TypeError):
            f.decode(int)


def test_read_line(data_file):
    with open(data_file, "wb") as raw:
        raw.write(b"first\nsecond")
    with open_file(data_file, os.O_CREAT | os.O_RDWR, 0o777) as f:
        assert f.read_line() == "first\n"
        assert f.read_line() == "second"
        with pytest.raises(EOFError):
            f.read_line()


@dataclass
class _Student:
    id: int
    email_address: str
    name: str
    borrowed: bool


def test_json_round_trip(data_file):
    student = _Student(1, "wonk@example.com", "wonk", True)
    flags = os.O_CREAT | os.O_TRUNC | os.O_RDWR
    with open_file(data_file, flags, 0o777, writer_codec=Codec.JSON) as f:
        f.encode_flush(student)
    with open(data_file, "rb") as raw:
        assert raw.read() == (
            b'{"id":1,"email_address":"wonk@example.com","name":"wonk","borrowed":true}\n'
        )
    with open_file(data_file, os.O_CREAT | os.O_RDONLY, 0o777, reader_codec=Codec.JSON) as f:
        assert f.decode(_Student) == student
        assert f.read_line() == "\n"
        with pytest.raises(EOFError):
            f.decode(dict)


def test_list_dir(tmp_path):
    (tmp_path / "a.txt").write_bytes(b"abc")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "b.txt").write_bytes(b"hello")
    entries = list_dir(str(tmp_path))
    assert [e.path for e in entries] == [
        str(tmp_path / "a.txt"),
        str(sub),
        str(sub / "b.txt"),
    ]
    assert [e.is_dir() for e in entries] == [False, True, False]
    assert entries[2].info().st_size == 5
    assert entries[0].name == "a.txt"


def test_list_dir_missing_root(tmp_path):
    with pytest.raises(FileNotFoundError):
        list_dir(str(tmp_path / "missing"))