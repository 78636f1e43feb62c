"""Subscriber access permission protocol over UDP.

Laid out the way the reliability-first parts of the stack are:
- fixed-layout packet framing kept apart from the validation rules
- one stop-and-wait state machine, deterministic under timeouts
- an explicitly owned verification directory and an injected transport
"""

from .directory import SubscriberDirectory, VerificationRecord
from .errors import MalformedPacket, RetriesExhausted, TransportFailure, TransportTimeout
from .packet import (
    AckPacket,
    DataPacket,
    RejectPacket,
    RejectReason,
    SubscriberPacket,
    SubscriberStatus,
    Technology,
    decode,
    encode,
)
from .session import ArqSession, exchange

__all__ = [
    "AckPacket",
    "ArqSession",
    "DataPacket",
    "MalformedPacket",
    "RejectPacket",
    "RejectReason",
    "RetriesExhausted",
    "SubscriberDirectory",
    "SubscriberPacket",
    "SubscriberStatus",
    "Technology",
    "TransportFailure",
    "TransportTimeout",
    "VerificationRecord",
    "decode",
    "encode",
    "exchange",
]
