"""A small FTP client that reads and writes whole files."""

from __future__ import annotations

import ftplib
import io

_DEFAULT_TIMEOUT = 6.0


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not port:
        raise ValueError(f"missing port in address {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "localhost", int(port)


class FtpClient:
    """Connects, logs in and transfers one file per call."""

    def __init__(self, addr: str, user_id: str, user_pw: str) -> None:
        self.addr = addr
        self.user_id = user_id
        self.user_pw = user_pw
        self.conn_timeout = _DEFAULT_TIMEOUT
        self.write_timeout = _DEFAULT_TIMEOUT
        self.read_timeout = _DEFAULT_TIMEOUT

    def _login(self) -> ftplib.FTP:
        host, port = _split_addr(self.addr)
        ftp = ftplib.FTP(timeout=self.conn_timeout)
        try:
            ftp.connect(host, port, timeout=self.conn_timeout)
            ftp.login(self.user_id, self.user_pw)
        except BaseException:
            ftp.close()
            raise
        return ftp

    def read_file(self, file_name: str) -> bytes:
        """Download ``file_name`` and return its contents."""
        ftp = self._login()
        chunks: list[bytes] = []
        try:
            ftp.timeout = self.read_timeout
            ftp.retrbinary(f"RETR {file_name}", chunks.append)
            ftp.quit()
        except BaseException:
            ftp.close()
            raise
        return b"".join(chunks)

    def write_file(self, file_name: str, data: bytes) -> None:
        """Upload ``data`` as ``file_name``."""
        ftp = self._login()
        try:
            ftp.timeout = self.write_timeout
            ftp.storbinary(f"STOR {file_name}", io.BytesIO(data))
            ftp.quit()
        except BaseException:
            ftp.close()
            raise