from __future__ import annotations

START_MARKER = 0xFFFF
END_MARKER = 0xFFFF

GROUP_SIZE = 5  # cyclic segment-number space, one segment in flight
MAX_PAYLOAD = 0xFF
MAX_CLIENT_ID = 0xFF

# Network byte order on the wire; the kind tag always sits at bytes 3-4.
SUBSCRIBER_FORMAT = "!HBHBBBIH"  # start, client, kind, segment, length, technology, number, end
DATA_FORMAT = "!HBHBB255sH"  # start, client, kind, segment, length, payload, end
ACK_FORMAT = "!HBHBH"  # start, client, kind, acked segment, end
REJECT_FORMAT = "!HBHHBH"  # start, client, kind, reason, acked segment, end
KIND_OFFSET = 3

SUBSCRIBER_PAYLOAD_SIZE = 6  # technology + subscriber number

# Packet kind tags
DATA = 0xFFF1
ACK = 0xFFF2
REJECT = 0xFFF3

# Reject reasons
REJECT_OUT_OF_SEQUENCE = 0xFFF4
REJECT_LENGTH_MISMATCH = 0xFFF5
REJECT_MISSING_END = 0xFFF6
REJECT_DUPLICATE = 0xFFF7

# Subscriber request/response tags
ACCESS_REQUEST = 0xFFF8
NOT_PAID = 0xFFF9
NOT_EXIST = 0xFFFA
ACCESS_OK = 0xFFFB

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
DEFAULT_TIMEOUT_MS = 3000
DEFAULT_MAX_RETRIES = 3
MAX_DIRECTORY_SIZE = 100
