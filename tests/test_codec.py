import io
import json
from dataclasses import dataclass

import pytest

from sikit.codec import (
    decode_json,
    decode_json_copied,
    encode_json,
    encode_json_copied,
    hmac_sha256_hex,
    hmac_sha256_hex_from_reader,
)

EXPECTED_HMAC = "2c78fedf60d1f955bf0c9e14ed6b332a6efb6e5668fc6aa067257558cdbb7d6d"
PAYLOAD = b'{"id":1,"email_address":"asdf","name":"asdf","borrowed":false,"book_id":23}'


@dataclass
class _Msg:
    msg: str


def test_encode_json():
    dst = io.BytesIO()
    encode_json(dst, {"msg": "hello world"})
    assert dst.getvalue() == b'{"msg":"hello world"}\n'


def test_encode_json_dataclass():
    dst = io.BytesIO()
    encode_json(dst, _Msg(msg="hello world"))
    assert dst.getvalue() == b'{"msg":"hello world"}\n'


def test_encode_json_copied():
    dst = io.BytesIO()
    copied = encode_json_copied(dst, {"msg": "hello world"})
    assert dst.getvalue() == b'{"msg":"hello world"}\n'
    assert copied == b'{"msg":"hello world"}\n'


def test_encode_json_escapes_html():
    dst = io.BytesIO()
    encode_json(dst, {"k": "<a&b>"})
    assert dst.getvalue() == b'{"k":"\\u003ca\\u0026b\\u003e"}\n'
    assert json.loads(dst.getvalue()) == {"k": "<a&b>"}


def test_encode_json_rejects_unserialisable():
    with pytest.raises(TypeError):
        encode_json(io.BytesIO(), object())


def test_hmac_sha256_hex():
    assert hmac_sha256_hex("asdf", b"hello world") == EXPECTED_HMAC


def test_hmac_sha256_hex_from_reader():
    assert hmac_sha256_hex_from_reader("asdf", io.BytesIO(b"hello world")) == EXPECTED_HMAC


def test_hmac_large_message_consistent():
    msg = b"asdf" * 1000
    result = hmac_sha256_hex("1234", msg)
    assert len(result) == 64
    assert result == hmac_sha256_hex_from_reader("1234", io.BytesIO(msg))


def test_decode_json():
    out = decode_json(io.BytesIO(PAYLOAD))
    assert out["email_address"] == "asdf"
    assert out["book_id"] == 23


def test_decode_json_copied():
    out, copied = decode_json_copied(io.BytesIO(PAYLOAD))
    assert out["email_address"] == "asdf"
    assert copied == PAYLOAD


def test_decode_json_first_value_only():
    assert decode_json(io.BytesIO(b' {"a":1}\n{"b":2}')) == {"a": 1}


def test_decode_json_invalid():
    with pytest.raises(ValueError):
        decode_json(io.BytesIO(b"not json"))


def test_round_trip():
    buf = io.BytesIO()
    value = {"id": 1, "name": "wonk", "borrowed": True, "tags": ["x", "y"]}
    encode_json(buf, value)
    buf.seek(0)
    assert decode_json(buf) == value