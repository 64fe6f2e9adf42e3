from __future__ import annotations

from typing import Iterable, Optional, Union

from abxclient.net import TransportError
from abxclient.packet import Packet, Request

Step = Union[bytes, TransportError]


class ScriptedConnection:
    """Stands in for TcpConnection, replaying a fixed list of reads."""

    peer = ("scripted", 0)

    def __init__(self, steps: Iterable[Step]):
        self.steps = list(steps)
        self.sent: list[bytes] = []
        self.closed = False

    def sendall(self, data: bytes) -> None:
        self.sent.append(data)

    def recv(self, bufsize: int) -> bytes:
        if not self.steps:
            return b""
        step = self.steps.pop(0)
        if isinstance(step, TransportError):
            raise step
        return step

    def recv_upto(self, n: int) -> bytes:
        buf = b""
        while len(buf) < n:
            chunk = self.recv(n - len(buf))
            if not chunk:
                break
            buf += chunk
        return buf

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "ScriptedConnection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ScriptedConnector:
    """Hands out one ScriptedConnection per call, in order."""

    def __init__(self, *scripts: Iterable[Step]):
        self.scripts = [list(s) for s in scripts]
        self.opened: list[ScriptedConnection] = []

    def __call__(self) -> ScriptedConnection:
        conn = ScriptedConnection(self.scripts.pop(0) if self.scripts else [])
        self.opened.append(conn)
        return conn

    def requests(self) -> list[Request]:
        return [Request.from_bytes(c.sent[0]) for c in self.opened if c.sent]


def packets(*seqs: int) -> list[Packet]:
    return [Packet("AAPL", "B", 10 * s, 100 + s, s) for s in seqs]


def wire(*seqs: int) -> bytes:
    return b"".join(p.to_bytes() for p in packets(*seqs))


class FakeResendClient:
    """request_one backed by a dict; errors can be injected per sequence."""

    def __init__(self, available: dict[int, Packet], errors: Optional[dict[int, Exception]] = None):
        self.available = available
        self.errors = errors or {}
        self.calls: list[int] = []

    def request_one(self, sequence: int) -> Optional[Packet]:
        self.calls.append(sequence)
        if sequence in self.errors:
            raise self.errors[sequence]
        return self.available.get(sequence)
