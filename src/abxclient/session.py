from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .constants import (
    DEFAULT_HOST,
    DEFAULT_MAX_RECONNECTS,
    DEFAULT_PORT,
    DEFAULT_READ_SIZE,
    DEFAULT_TIMEOUT_MS,
    RECORD_SIZE,
)
from .gaps import GapRange, GapResolver
from .net import ConnectionDroppedError, TcpConnection, TransportError
from .packet import FrameDecoder, Packet, Request
from .store import PacketStore

log = logging.getLogger(__name__)

Connector = Callable[[], TcpConnection]


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    STREAM_ENDED = "stream_ended"
    BACKFILLING = "backfilling"
    DONE = "done"
    FAILED = "failed"


class SessionClient:
    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        read_size: int = DEFAULT_READ_SIZE,
        max_reconnects: int = DEFAULT_MAX_RECONNECTS,
        connector: Optional[Connector] = None,
    ):
        self.host = host
        self.port = port
        self.timeout_ms = timeout_ms
        self.read_size = read_size
        self.max_reconnects = max_reconnects
        self.connector = connector or self._open
        self.state = SessionState.DISCONNECTED
        self.reconnects = 0
        self.packets_decoded = 0

    def _open(self) -> TcpConnection:
        return TcpConnection.open(self.host, self.port, timeout_ms=self.timeout_ms)

    def transition(self, state: SessionState) -> None:
        if state != self.state:
            log.debug("session %s -> %s", self.state.value, state.value)
            self.state = state

    def stream_all(self, store: PacketStore) -> int:
        """Stream every packet the server has into ``store``.

        A dropped connection restarts the stream from the beginning on a
        fresh connection, up to ``max_reconnects`` times. Returns the number
        of packets decoded across all attempts.
        """
        start = self.packets_decoded
        while True:
            self.transition(SessionState.STREAMING)
            try:
                self._stream_once(store)
            except ConnectionDroppedError as exc:
                if self.reconnects >= self.max_reconnects:
                    log.error("stream dropped again after %d reconnect(s): %s", self.reconnects, exc)
                    self.transition(SessionState.FAILED)
                    raise
                self.reconnects += 1
                log.warning("stream dropped (%s); reconnecting (attempt %d)", exc, self.reconnects)
                self.transition(SessionState.RECONNECTING)
                continue
            except TransportError as exc:
                log.error("stream failed: %s", exc)
                self.transition(SessionState.FAILED)
                raise
            self.transition(SessionState.STREAM_ENDED)
            return self.packets_decoded - start

    def _stream_once(self, store: PacketStore) -> None:
        decoder = FrameDecoder()
        decoded = 0
        with self.connector() as conn:
            log.info("connected to %s:%d", *conn.peer)
            conn.sendall(Request.stream_all().to_bytes())
            log.debug("request sent: kind=1 sequence=0")
            while True:
                chunk = conn.recv(self.read_size)
                if not chunk:
                    break
                for packet in decoder.feed(chunk):
                    log.debug(
                        "received [%d] %s %s q=%d p=%d",
                        packet.sequence,
                        packet.symbol,
                        packet.side,
                        packet.quantity,
                        packet.price,
                    )
                    store.add(packet)
                    decoded += 1
                    self.packets_decoded += 1

        dangling = decoder.finish()
        if dangling:
            log.warning("stream ended mid-record; discarded %d byte(s)", len(dangling))
        log.info("stream ended; decoded=%d high_water_mark=%d", decoded, store.high_water_mark)

    def request_one(self, sequence: int) -> Optional[Packet]:
        # encode first so an unrepresentable sequence never opens a connection
        request = Request.resend(sequence).to_bytes()
        with self.connector() as conn:
            conn.sendall(request)
            log.debug("request sent: kind=2 sequence=%d", sequence)
            raw = conn.recv_upto(RECORD_SIZE)

        decoder = FrameDecoder()
        packets = decoder.feed(raw)
        dangling = decoder.finish()
        if dangling:
            log.warning("seq=%d resend ended mid-record; discarded %d byte(s)", sequence, len(dangling))
        if not packets:
            return None
        log.info("recovered [%d] %s", packets[0].sequence, packets[0].symbol)
        return packets[0]


@dataclass(slots=True)
class RunMetrics:
    packets_streamed: int = 0
    reconnects: int = 0
    gaps_found: int = 0
    gaps_recovered: int = 0
    gaps_skipped: list[int] = field(default_factory=list)
    gaps_unrequestable: Optional[GapRange] = None
    state: SessionState = SessionState.DISCONNECTED
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)


def run_session(client: SessionClient, store: PacketStore, resolver: Optional[GapResolver] = None) -> RunMetrics:
    """Stream everything, then backfill gaps.

    Transport failures during the initial stream end the run in FAILED with
    no backfill; ``store`` keeps whatever was decoded before the failure.
    """
    metrics = RunMetrics()
    resolver = resolver or GapResolver(client)

    try:
        metrics.packets_streamed = client.stream_all(store)
    except TransportError as exc:
        log.error("session failed before backfill: %s", exc)
        metrics.packets_streamed = client.packets_decoded
        metrics.reconnects = client.reconnects
        metrics.state = SessionState.FAILED
        metrics.end_ts = time.monotonic()
        return metrics

    metrics.reconnects = client.reconnects
    client.transition(SessionState.BACKFILLING)
    report = resolver.resolve(store)
    metrics.gaps_found = report.total_missing
    metrics.gaps_recovered = len(report.recovered)
    metrics.gaps_skipped = report.skipped
    metrics.gaps_unrequestable = report.unrequestable

    client.transition(SessionState.DONE)
    metrics.state = SessionState.DONE
    metrics.end_ts = time.monotonic()
    log.info(
        "done; packets=%d gaps=%d recovered=%d skipped=%d",
        len(store),
        metrics.gaps_found,
        metrics.gaps_recovered,
        len(metrics.gaps_skipped),
    )
    return metrics
