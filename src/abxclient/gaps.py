from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from .constants import MAX_RESEND_SEQUENCE
from .net import TransportError
from .packet import Packet, SequenceRangeError
from .store import PacketStore

log = logging.getLogger(__name__)


class ResendClient(Protocol):
    def request_one(self, sequence: int) -> Optional[Packet]: ...


@dataclass(frozen=True, slots=True)
class GapRange:
    first: int
    last: int
    count: int


def find_gaps(high_water_mark: int, present: Iterable[int], limit: Optional[int] = None) -> list[int]:
    """Every sequence in [1, high_water_mark] with no decoded record, ascending.

    ``limit`` caps the scan so a huge high-water mark never materialises
    billions of numbers.
    """
    have = set(present)
    top = high_water_mark if limit is None else min(high_water_mark, limit)
    return [seq for seq in range(1, top + 1) if seq not in have]


def unrequestable_gaps(high_water_mark: int, present: Iterable[int]) -> Optional[GapRange]:
    """Collapse the missing sequences above the resend field's range into one span."""
    floor = MAX_RESEND_SEQUENCE + 1
    if high_water_mark < floor:
        return None
    have = {seq for seq in present if floor <= seq <= high_water_mark}
    count = high_water_mark - floor + 1 - len(have)
    if count <= 0:
        return None
    # both walks are bounded by len(have)
    first = floor
    while first in have:
        first += 1
    last = high_water_mark
    while last in have:
        last -= 1
    return GapRange(first=first, last=last, count=count)


def missing_sequences(store: PacketStore) -> list[int]:
    return find_gaps(store.high_water_mark, store.sequences(), limit=MAX_RESEND_SEQUENCE)


@dataclass(slots=True)
class GapReport:
    missing: list[int] = field(default_factory=list)
    recovered: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    unrequestable: Optional[GapRange] = None

    @property
    def total_missing(self) -> int:
        return len(self.missing) + (self.unrequestable.count if self.unrequestable else 0)


@dataclass(slots=True)
class GapResolver:
    """Backfills holes in a PacketStore one resend request at a time.

    The missing set is computed once up front. Each gap gets a single
    attempt; anything that fails is logged and left missing. Gaps above the
    one-byte resend range are reported as a single span and never requested.
    """

    client: ResendClient

    def resolve(self, store: PacketStore) -> GapReport:
        present = store.sequences()
        report = GapReport(
            missing=missing_sequences(store),
            unrequestable=unrequestable_gaps(store.high_water_mark, present),
        )
        if report.unrequestable is not None:
            span = report.unrequestable
            log.warning(
                "%d gap(s) in seq=%d..%d skipped, unrecoverable: resend field is one byte (max %d)",
                span.count,
                span.first,
                span.last,
                MAX_RESEND_SEQUENCE,
            )
        if not report.missing:
            log.info("no requestable gaps up to sequence %d", store.high_water_mark)
            return report

        log.info("backfilling %d gap(s) up to sequence %d", len(report.missing), store.high_water_mark)
        for seq in report.missing:
            if self._recover(store, seq):
                report.recovered.append(seq)
            else:
                report.skipped.append(seq)

        if report.skipped:
            log.warning("unrecovered sequences: %s", report.skipped)
        return report

    def _recover(self, store: PacketStore, seq: int) -> bool:
        try:
            packet = self.client.request_one(seq)
        except SequenceRangeError as exc:
            log.warning("seq=%d skipped, unrecoverable: %s", seq, exc)
            return False
        except TransportError as exc:
            log.warning("seq=%d resend failed: %s", seq, exc)
            return False
        except ValueError as exc:
            log.warning("seq=%d resend returned a malformed record: %s", seq, exc)
            return False

        if packet is None:
            log.warning("seq=%d resend returned no data", seq)
            return False
        store.add(packet)
        if packet.sequence != seq:
            log.warning("seq=%d resend returned seq=%d instead", seq, packet.sequence)
        return seq in store
