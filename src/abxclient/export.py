from __future__ import annotations

import json
import logging
from typing import Iterable

from .packet import Packet

log = logging.getLogger(__name__)


def packet_to_dict(packet: Packet) -> dict:
    return {
        "Symbol": packet.symbol,
        "BuySellIndicator": packet.side,
        "Quantity": packet.quantity,
        "Price": packet.price,
        "PacketSequence": packet.sequence,
    }


def write_packets(packets: Iterable[Packet], path: str) -> int:
    """Write ``packets`` as an indented JSON array, in the order given."""
    records = [packet_to_dict(p) for p in packets]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=2)
        f.write("\n")
    log.info("wrote %d packet(s) to %s", len(records), path)
    return len(records)
