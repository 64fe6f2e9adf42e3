from __future__ import annotations

from abxclient.packet import Packet
from abxclient.store import PacketStore


def _p(seq: int, symbol: str = "MSFT") -> Packet:
    return Packet(symbol, "B", 10, 100, seq)


def test_add_tracks_high_water_mark():
    store = PacketStore()
    assert store.high_water_mark == 0
    store.add(_p(4))
    store.add(_p(2))
    assert store.high_water_mark == 4
    assert 2 in store
    assert 3 not in store


def test_add_is_idempotent_per_sequence():
    store = PacketStore()
    assert store.add(_p(1, "MSFT")) is True
    assert store.add(_p(1, "AAPL")) is False
    assert len(store) == 1
    assert store.sorted()[0].symbol == "MSFT"


def test_sorted_by_sequence():
    store = PacketStore()
    assert store.extend([_p(3), _p(1), _p(2)]) == 3
    assert [p.sequence for p in store.sorted()] == [1, 2, 3]
