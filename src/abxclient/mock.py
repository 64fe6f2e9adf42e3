"""Loopback stand-in for the ABX exchange.

Speaks the same two-request protocol as the real server. Used by the test
suite and by ``abx-client serve`` for local runs. Connections are handled one
at a time on a background thread.
"""
from __future__ import annotations

import logging
import socket
import struct
import threading
from typing import Iterable, Optional

from .constants import REQUEST_FORMAT
from .packet import Packet, Request, RequestKind

log = logging.getLogger(__name__)

SYMBOLS = ("MSFT", "AAPL", "AMZN", "META")


def sample_packets(count: int) -> list[Packet]:
    return [
        Packet(
            symbol=SYMBOLS[(seq - 1) % len(SYMBOLS)],
            side="B" if seq % 2 else "S",
            quantity=10 * ((seq - 1) % 5 + 1),
            price=100 + seq,
            sequence=seq,
        )
        for seq in range(1, count + 1)
    ]


class MockExchange:
    def __init__(
        self,
        packets: Iterable[Packet],
        omit: Iterable[int] = (),
        chunk_size: int = 0,
        drop_after: Optional[int] = None,
        host: str = "127.0.0.1",
        port: int = 0,
    ):
        self.packets = {p.sequence: p for p in packets}
        self.omit = set(omit)
        self.chunk_size = chunk_size
        self.drop_after = drop_after
        self.requests: list[Request] = []

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((host, port))
        self.sock.listen()
        self.sock.settimeout(0.1)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self.sock.getsockname()
        return host, port

    def start(self) -> "MockExchange":
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self.sock.close()

    def __enter__(self) -> "MockExchange":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def serve_forever(self) -> None:
        log.info("mock exchange listening on %s:%d", *self.address)
        while not self._stop.is_set():
            try:
                conn, addr = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._stop.is_set():
                    break
                raise
            with conn:
                conn.settimeout(None)
                try:
                    self._handle(conn)
                except OSError as exc:
                    log.debug("client %s went away: %s", addr, exc)

    def _handle(self, conn: socket.socket) -> None:
        size = struct.calcsize(REQUEST_FORMAT)
        raw = b""
        while len(raw) < size:
            chunk = conn.recv(size - len(raw))
            if not chunk:
                return
            raw += chunk
        try:
            request = Request.from_bytes(raw)
        except ValueError as exc:
            log.warning("bad request %r: %s", raw, exc)
            return
        self.requests.append(request)

        if request.kind == RequestKind.STREAM_ALL:
            self._stream(conn)
        else:
            packet = self.packets.get(request.sequence)
            if packet is not None:
                conn.sendall(packet.to_bytes())

    def _stream(self, conn: socket.socket) -> None:
        outgoing = [p for seq, p in sorted(self.packets.items()) if seq not in self.omit]
        if self.drop_after is not None:
            # only the first stream is cut short
            cut, self.drop_after = self.drop_after, None
            payload = b"".join(p.to_bytes() for p in outgoing[:cut])
            conn.sendall(payload)
            # zero linger makes close() send RST instead of FIN
            conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
            return

        payload = b"".join(p.to_bytes() for p in outgoing)
        step = self.chunk_size or len(payload) or 1
        for i in range(0, len(payload), step):
            conn.sendall(payload[i : i + step])
