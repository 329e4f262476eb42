"""gRPC channel and server construction with keepalive, credential and health options."""

from __future__ import annotations

from concurrent import futures
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import grpc

DEFAULT_PERMIT_WITHOUT_STREAM = True

DEFAULT_KEEPALIVE_TIME = 10.0
DEFAULT_KEEPALIVE_TIMEOUT = 3.0
DEFAULT_DIAL_TIMEOUT = 6.0
DEFAULT_DIAL_BLOCK = False

DEFAULT_SERVICE_CONFIG = """{
    "loadBalancingConfig": [{"round_robin":{}}],
    "methodConfig": [{
        "name": [],
        "waitForReady": true,
        "retryPolicy": {
            "maxAttempts": 3,
            "initialBackoff": ".1s",
            "maxBackoff": "3s",
            "backoffMultiplier": 1.5,
            "retryableStatusCodes": [ "UNAVAILABLE", "RESOURCE_EXHAUSTED" ]
        }
    }]
}"""

DEFAULT_MIN_TIME = 5.0
DEFAULT_MAX_CONNECTION_IDLE = DEFAULT_KEEPALIVE_TIME + DEFAULT_KEEPALIVE_TIMEOUT
DEFAULT_MAX_CONNECTION_AGE = DEFAULT_MAX_CONNECTION_IDLE + 10.0
DEFAULT_MAX_CONNECTION_AGE_GRACE = 5.0
DEFAULT_TIME = 6.0
DEFAULT_TIMEOUT = 3.0

_STOP_GRACE = 5.0
_MAX_WORKERS = 10

_HEALTH_SERVICE = "grpc.health.v1.Health"
_SERVING = 1

Options = list[tuple[str, Any]]


def _ms(seconds: float) -> int:
    return int(round(seconds * 1000))


@dataclass(frozen=True)
class _Credentials:
    """Channel credentials plus any channel arguments they require."""

    channel: grpc.ChannelCredentials | None = None
    options: tuple[tuple[str, Any], ...] = ()


def insecure_transport_creds() -> _Credentials:
    """Credentials for a plaintext connection."""
    return _Credentials()


def tls_transport_creds(root_certificates: bytes | None = None) -> _Credentials:
    """TLS credentials, verifying against ``root_certificates`` or the system roots."""
    return _Credentials(grpc.ssl_channel_credentials(root_certificates=root_certificates))


def transport_credentials_from_file(
    cert_pem_file: str, server_name_override: str = ""
) -> _Credentials:
    """TLS credentials trusting the PEM certificates in ``cert_pem_file``."""
    with open(cert_pem_file, "rb") as handle:
        pem = handle.read()
    if b"-----BEGIN CERTIFICATE-----" not in pem:
        raise ValueError("credentials: failed to append certificates")
    options: tuple[tuple[str, Any], ...] = ()
    if server_name_override:
        options = (("grpc.ssl_target_name_override", server_name_override),)
    return _Credentials(grpc.ssl_channel_credentials(root_certificates=pem), options)


def keepalive_params(
    keepalive_time: float, keepalive_timeout: float, permit_without_stream: bool
) -> Options:
    """Client keepalive channel arguments; durations are in seconds."""
    return [
        ("grpc.keepalive_time_ms", _ms(keepalive_time)),
        ("grpc.keepalive_timeout_ms", _ms(keepalive_timeout)),
        ("grpc.keepalive_permit_without_calls", int(permit_without_stream)),
    ]


def default_keepalive_params() -> Options:
    return keepalive_params(
        DEFAULT_KEEPALIVE_TIME, DEFAULT_KEEPALIVE_TIMEOUT, DEFAULT_PERMIT_WITHOUT_STREAM
    )


def default_service_config(config: str) -> Options:
    """Channel argument carrying a JSON service config."""
    return [("grpc.service_config", config)]


class Client:
    """A gRPC channel that can be used as a context manager."""

    def __init__(self, channel: grpc.Channel) -> None:
        self.channel = channel

    def close(self) -> None:
        self.channel.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name == "channel":
            raise AttributeError(name)
        return getattr(self.channel, name)


def _flatten(groups: Iterable[Sequence[tuple[str, Any]]]) -> Options:
    return [option for group in groups for option in group]


def new_client(
    address: str,
    *args: Sequence[tuple[str, Any]],
    credentials: _Credentials | None = None,
    dial_timeout: float = DEFAULT_DIAL_TIMEOUT,
    block: bool = DEFAULT_DIAL_BLOCK,
) -> Client:
    """Open a channel to ``address`` with the given option groups.

    With ``block`` the call waits up to ``dial_timeout`` seconds for the
    channel to become ready and raises ``grpc.FutureTimeoutError`` otherwise.
    """
    if credentials is None:
        raise ValueError(
            "no transport security set (use insecure_transport_creds() explicitly)"
        )
    options = _flatten(args) + list(credentials.options)
    if credentials.channel is None:
        channel = grpc.insecure_channel(address, options=options)
    else:
        channel = grpc.secure_channel(address, credentials.channel, options=options)
    if block:
        try:
            grpc.channel_ready_future(channel).result(timeout=dial_timeout)
        except grpc.FutureTimeoutError:
            channel.close()
            raise
    return Client(channel)


def x509_key_pair(cert_pem_file: str, cert_key_file: str) -> grpc.ServerCredentials:
    """Server TLS credentials from a PEM certificate chain and private key."""
    with open(cert_pem_file, "rb") as handle:
        cert = handle.read()
    with open(cert_key_file, "rb") as handle:
        key = handle.read()
    if b"-----BEGIN CERTIFICATE-----" not in cert:
        raise ValueError("tls: failed to find any PEM data in certificate input")
    if b"PRIVATE KEY-----" not in key:
        raise ValueError("tls: failed to find any PEM data in key input")
    return grpc.ssl_server_credentials([(key, cert)])


def keepalive_enforcement(
    enabled: bool, min_time: float, permit_without_stream: bool
) -> Options:
    """Server keepalive enforcement arguments; empty when not ``enabled``."""
    if not enabled:
        return []
    return [
        ("grpc.http2.min_ping_interval_without_data_ms", _ms(min_time)),
        ("grpc.keepalive_permit_without_calls", int(permit_without_stream)),
    ]


def keepalive(
    max_conn_idle: float,
    max_conn_age: float,
    max_conn_age_grace: float,
    keepalive_time: float,
    ping_timeout: float,
) -> Options:
    """Server keepalive and connection-lifetime arguments; durations in seconds."""
    return [
        ("grpc.max_connection_idle_ms", _ms(max_conn_idle)),
        ("grpc.max_connection_age_ms", _ms(max_conn_age)),
        ("grpc.max_connection_age_grace_ms", _ms(max_conn_age_grace)),
        ("grpc.keepalive_time_ms", _ms(keepalive_time)),
        ("grpc.keepalive_timeout_ms", _ms(ping_timeout)),
    ]


def default_keepalive_enforcement() -> Options:
    return keepalive_enforcement(True, DEFAULT_MIN_TIME, DEFAULT_PERMIT_WITHOUT_STREAM)


def default_keepalive() -> Options:
    return keepalive(
        DEFAULT_MAX_CONNECTION_IDLE,
        DEFAULT_MAX_CONNECTION_AGE,
        DEFAULT_MAX_CONNECTION_AGE_GRACE,
        DEFAULT_TIME,
        DEFAULT_TIMEOUT,
    )


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift > 63:
            raise ValueError("varint too long")


def _parse_service(data: bytes) -> str:
    """Extract the ``service`` field from an encoded health check request."""
    pos = 0
    service = ""
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        field_number, wire_type = key >> 3, key & 7
        if wire_type == 0:
            _, pos = _read_varint(data, pos)
        elif wire_type == 1:
            pos += 8
        elif wire_type == 5:
            pos += 4
        elif wire_type == 2:
            length, pos = _read_varint(data, pos)
            chunk = data[pos : pos + length]
            if len(chunk) < length:
                raise ValueError("truncated field")
            pos += length
            if field_number == 1:
                service = chunk.decode("utf-8")
        else:
            raise ValueError(f"unsupported wire type {wire_type}")
    if pos > len(data):
        raise ValueError("truncated field")
    return service


def _health_handler() -> grpc.GenericRpcHandler:
    statuses = {"": _SERVING}

    def check(request: bytes, context: grpc.ServicerContext) -> bytes:
        try:
            service = _parse_service(request)
        except (ValueError, UnicodeDecodeError) as exc:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(exc))
        status = statuses.get(service)
        if status is None:
            context.abort(grpc.StatusCode.NOT_FOUND, "unknown service")
        return bytes([0x08, status])

    return grpc.method_handlers_generic_handler(
        _HEALTH_SERVICE, {"Check": grpc.unary_unary_rpc_method_handler(check)}
    )


class Server:
    """A gRPC server bound to one address, with a health service registered."""

    def __init__(self, server: grpc.Server, port: int) -> None:
        self._server = server
        self.port = port

    def add_generic_handlers(self, handlers: Iterable[grpc.GenericRpcHandler]) -> None:
        self._server.add_generic_rpc_handlers(tuple(handlers))

    def start(self) -> None:
        """Start serving in the background."""
        self._server.start()

    def stop(self) -> None:
        """Stop accepting calls and wait for running ones to finish."""
        self._server.stop(grace=_STOP_GRACE).wait()

    def close(self) -> None:
        self.stop()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._server, name)


def new_server(
    address: str,
    *args: Sequence[tuple[str, Any]],
    credentials: grpc.ServerCredentials | None = None,
) -> Server:
    """Create a server listening on ``address`` with the given option groups."""
    server = grpc.server(
        futures.ThreadPoolExecutor(max_workers=_MAX_WORKERS), options=_flatten(args)
    )
    server.add_generic_rpc_handlers((_health_handler(),))
    if credentials is None:
        port = server.add_insecure_port(address)
    else:
        port = server.add_secure_port(address, credentials)
    if not port:
        raise OSError(f"failed to listen on {address}")
    return Server(server, port)