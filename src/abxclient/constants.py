from __future__ import annotations

RECORD_FORMAT = "!4sciii"  # symbol, side, quantity, price, sequence
RECORD_SIZE = 17
REQUEST_FORMAT = "!BB"  # kind, sequence

STREAM_ALL = 1
RESEND_ONE = 2

MAX_RESEND_SEQUENCE = 0xFF

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_TIMEOUT_MS = 0
DEFAULT_READ_SIZE = 1024
DEFAULT_MAX_RECONNECTS = 1
DEFAULT_OUTPUT = "stock_packet.json"
