"""Client for the ABX exchange binary market-data protocol.

Streams every trade packet, finds holes in the sequence numbers, requests
each missing packet individually and hands back one packet per sequence,
in order.
"""

from .packet import FrameDecoder, Packet, Request, RequestKind, SequenceRangeError
from .session import SessionClient, SessionState, run_session
from .store import PacketStore

__all__ = [
    "FrameDecoder",
    "Packet",
    "PacketStore",
    "Request",
    "RequestKind",
    "SequenceRangeError",
    "SessionClient",
    "SessionState",
    "run_session",
]
