from __future__ import annotations

import errno
import socket
from typing import Tuple

_DROPPED_ERRNOS = frozenset({errno.ENOTCONN, errno.ECONNRESET, errno.ECONNABORTED, errno.EPIPE})


class TransportError(Exception):
    """A socket-level failure, classified by what the caller can do about it."""

    def __init__(self, message: str, cause: OSError | None = None):
        super().__init__(message)
        self.cause = cause


class ConnectionDroppedError(TransportError):
    """The peer went away mid-conversation; reconnecting may succeed."""


def classify(exc: OSError, action: str) -> TransportError:
    if isinstance(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return ConnectionDroppedError(f"{action}: connection dropped ({exc})", exc)
    if exc.errno in _DROPPED_ERRNOS:
        return ConnectionDroppedError(f"{action}: connection dropped ({exc})", exc)
    if isinstance(exc, socket.timeout):
        return TransportError(f"{action}: timed out", exc)
    return TransportError(f"{action}: {exc}", exc)


class TcpConnection:
    def __init__(self, sock: socket.socket, peer: Tuple[str, int]):
        self.sock = sock
        self.peer = peer

    @classmethod
    def open(cls, host: str, port: int, timeout_ms: int = 0) -> "TcpConnection":
        timeout = timeout_ms / 1000.0 if timeout_ms > 0 else None
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise classify(exc, f"connect to {host}:{port}") from exc
        # create_connection leaves the connect timeout on the socket for reads too
        sock.settimeout(timeout)
        return cls(sock, (host, port))

    def sendall(self, data: bytes) -> None:
        try:
            self.sock.sendall(data)
        except OSError as exc:
            raise classify(exc, "send") from exc

    def recv(self, bufsize: int) -> bytes:
        try:
            return self.sock.recv(bufsize)
        except OSError as exc:
            raise classify(exc, "recv") from exc

    def recv_upto(self, n: int) -> bytes:
        """Read until ``n`` bytes arrive or the peer closes."""
        buf = bytearray()
        while len(buf) < n:
            chunk = self.recv(n - len(buf))
            if not chunk:
                break
            buf.extend(chunk)
        return bytes(buf)

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "TcpConnection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
