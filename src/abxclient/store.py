from __future__ import annotations

from typing import Iterable, Iterator

from .packet import Packet


class PacketStore:
    """Decoded packets keyed by sequence number, plus the high-water mark.

    The first packet stored for a sequence number wins; later copies (a
    restarted stream, a resent record) are dropped.
    """

    def __init__(self) -> None:
        self._packets: dict[int, Packet] = {}
        self.high_water_mark = 0

    def add(self, packet: Packet) -> bool:
        self.high_water_mark = max(self.high_water_mark, packet.sequence)
        if packet.sequence in self._packets:
            return False
        self._packets[packet.sequence] = packet
        return True

    def extend(self, packets: Iterable[Packet]) -> int:
        return sum(1 for p in packets if self.add(p))

    def sequences(self) -> set[int]:
        return set(self._packets)

    def sorted(self) -> list[Packet]:
        # dict preserves insertion order and sorted() is stable
        return sorted(self._packets.values(), key=lambda p: p.sequence)

    def __contains__(self, sequence: object) -> bool:
        return sequence in self._packets

    def __len__(self) -> int:
        return len(self._packets)

    def __iter__(self) -> Iterator[Packet]:
        return iter(self._packets.values())
