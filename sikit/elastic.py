"""A minimal Elasticsearch client for indexing and searching documents."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import quote

import requests

from sikit.codec import decode_json, decode_json_copied, encode_json

_DEFAULT_TIMEOUT = 6.0


class ElasticResponseError(Exception):
    """Raised when the server answers with an error status."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: Any = None,
        resp: Resp | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.resp = resp


@dataclass
class RespRootCause:
    type: str = ""
    reason: str = ""
    line: int = 0
    col: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> RespRootCause:
        return cls(
            type=data.get("type", ""),
            reason=data.get("reason", ""),
            line=data.get("line", 0),
            col=data.get("col", 0),
        )


@dataclass
class RespError:
    root_cause: list[RespRootCause] = field(default_factory=list)
    reason: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> RespError:
        return cls(
            root_cause=[RespRootCause.from_dict(c) for c in data.get("root_cause") or []],
            reason=data.get("reason", ""),
        )


@dataclass
class Resp:
    error: RespError = field(default_factory=RespError)
    status: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> Resp:
        if not isinstance(data, dict):
            raise ValueError("error response is not an object")
        error = data.get("error") or {}
        if not isinstance(error, dict):
            raise ValueError("error field is not an object")
        return cls(error=RespError.from_dict(error), status=data.get("status", 0))


def _status_text(code: int) -> str:
    try:
        phrase = HTTPStatus(code).phrase
    except ValueError:
        phrase = ""
    return f"{code} {phrase}"


class ElasticClient:
    """Sends requests to one of several nodes, moving on when one is unreachable."""

    def __init__(self, addresses: str | list[str], session: requests.Session | None = None) -> None:
        if isinstance(addresses, str):
            addresses = addresses.split(",")
        self.addresses = [address.strip().rstrip("/") for address in addresses]
        if not self.addresses or not all(self.addresses):
            raise ValueError("at least one non-empty address is required")
        self.session = session if session is not None else requests.Session()
        self.timeout = _DEFAULT_TIMEOUT
        self._next = 0

    def _post(self, path: str, data: bytes, params: dict | None = None) -> requests.Response:
        count = len(self.addresses)
        last_error: Exception | None = None
        for attempt in range(count):
            index = (self._next + attempt) % count
            try:
                response = self.session.post(
                    self.addresses[index] + path,
                    data=data,
                    params=params,
                    headers={"Content-Type": "application/json"},
                    timeout=self.timeout,
                )
            except requests.ConnectionError as exc:
                last_error = exc
                continue
            self._next = (index + 1) % count
            return response
        assert last_error is not None
        raise last_error

    def index_document(self, index_name: str, body: bytes) -> dict:
        """Index ``body`` into ``index_name`` and return the decoded reply."""
        response = self._post(f"/{quote(index_name, safe=',')}/_doc", body)
        if response.status_code > 299:
            raise ElasticResponseError(
                _status_text(response.status_code), status=response.status_code
            )
        return decode_json(io.BytesIO(response.content))

    def search_documents(self, index_name: str, body: dict) -> Any:
        """Run a search and return the decoded reply.

        On an error status, raises ``ElasticResponseError`` carrying the
        server's reason, the decoded body and the parsed ``Resp``.
        """
        buf = io.BytesIO()
        encode_json(buf, body)
        response = self._post(
            f"/{quote(index_name, safe=',')}/_search",
            buf.getvalue(),
            params={"track_total_hits": "true", "track_scores": "true"},
        )
        if response.status_code > 299:
            decoded, _ = decode_json_copied(io.BytesIO(response.content))
            resp = Resp.from_dict(decoded)
            raise ElasticResponseError(
                resp.error.reason, status=response.status_code, body=decoded, resp=resp
            )
        return decode_json(io.BytesIO(response.content))


def default_elasticsearch_client(
    addresses: str, username: str, password: str
) -> ElasticClient:
    """Build a client for comma-separated ``addresses`` using basic auth."""
    session = requests.Session()
    session.auth = (username, password)
    return ElasticClient(addresses, session)