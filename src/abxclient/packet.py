from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from .constants import (
    MAX_RESEND_SEQUENCE,
    RECORD_FORMAT,
    RECORD_SIZE,
    REQUEST_FORMAT,
    RESEND_ONE,
    STREAM_ALL,
)


class SequenceRangeError(ValueError):
    """Raised when a sequence number does not fit the one-byte request field."""


class RequestKind(enum.IntEnum):
    STREAM_ALL = STREAM_ALL
    RESEND_ONE = RESEND_ONE


@dataclass(frozen=True, slots=True)
class Request:
    kind: RequestKind
    sequence: int = 0

    def to_bytes(self) -> bytes:
        if not 0 <= self.sequence <= MAX_RESEND_SEQUENCE:
            raise SequenceRangeError(
                f"sequence {self.sequence} not representable in a resend request (0-{MAX_RESEND_SEQUENCE})"
            )
        return struct.pack(REQUEST_FORMAT, int(self.kind), self.sequence)

    @staticmethod
    def from_bytes(raw: bytes) -> "Request":
        if len(raw) != struct.calcsize(REQUEST_FORMAT):
            raise ValueError(f"request must be 2 bytes, got {len(raw)}")
        kind, sequence = struct.unpack(REQUEST_FORMAT, raw)
        return Request(kind=RequestKind(kind), sequence=sequence)

    @staticmethod
    def stream_all() -> "Request":
        return Request(kind=RequestKind.STREAM_ALL, sequence=0)

    @staticmethod
    def resend(sequence: int) -> "Request":
        return Request(kind=RequestKind.RESEND_ONE, sequence=sequence)


@dataclass(frozen=True, slots=True)
class Packet:
    symbol: str
    side: str
    quantity: int
    price: int
    sequence: int

    def to_bytes(self) -> bytes:
        return struct.pack(
            RECORD_FORMAT,
            self.symbol.encode("ascii").ljust(4, b"\x00"),
            self.side.encode("ascii"),
            self.quantity,
            self.price,
            self.sequence,
        )

    @staticmethod
    def from_bytes(raw: bytes) -> "Packet":
        if len(raw) != RECORD_SIZE:
            raise ValueError(f"record must be {RECORD_SIZE} bytes, got {len(raw)}")
        symbol, side, quantity, price, sequence = struct.unpack(RECORD_FORMAT, raw)
        return Packet(
            symbol=symbol.decode("ascii", errors="replace").rstrip("\x00 "),
            side=side.decode("ascii", errors="replace"),
            quantity=quantity,
            price=price,
            sequence=sequence,
        )


def split_frames(carry: bytes, chunk: bytes) -> tuple[list[Packet], bytes]:
    """Decode every complete record in ``carry + chunk``.

    Returns the decoded packets in wire order and the trailing partial
    record (0 to RECORD_SIZE - 1 bytes) to be passed back in with the
    next chunk.
    """
    buf = carry + chunk
    usable = len(buf) - len(buf) % RECORD_SIZE
    packets = [Packet.from_bytes(buf[i : i + RECORD_SIZE]) for i in range(0, usable, RECORD_SIZE)]
    return packets, buf[usable:]


class FrameDecoder:
    """Incremental decoder for a stream of fixed-size records.

    Reads from a byte stream rarely line up with record boundaries, so the
    tail of each chunk is held back until the rest of its record arrives.
    """

    def __init__(self) -> None:
        self._carry = b""

    @property
    def pending(self) -> int:
        return len(self._carry)

    def feed(self, chunk: bytes) -> list[Packet]:
        packets, self._carry = split_frames(self._carry, chunk)
        return packets

    def finish(self) -> bytes:
        """Return and clear any partial record left at end of stream."""
        dangling, self._carry = self._carry, b""
        return dangling
