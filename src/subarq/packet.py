from __future__ import annotations

import dataclasses
import enum
import struct
from dataclasses import dataclass
from typing import ClassVar, Type, TypeVar, Union

from .constants import (
    ACCESS_OK,
    ACCESS_REQUEST,
    ACK,
    ACK_FORMAT,
    DATA,
    DATA_FORMAT,
    END_MARKER,
    KIND_OFFSET,
    MAX_PAYLOAD,
    NOT_EXIST,
    NOT_PAID,
    REJECT,
    REJECT_DUPLICATE,
    REJECT_FORMAT,
    REJECT_LENGTH_MISMATCH,
    REJECT_MISSING_END,
    REJECT_OUT_OF_SEQUENCE,
    START_MARKER,
    SUBSCRIBER_FORMAT,
    SUBSCRIBER_PAYLOAD_SIZE,
)
from .errors import DecodeError


class PacketKind(enum.IntEnum):
    DATA = DATA
    ACK = ACK
    REJECT = REJECT


class SubscriberStatus(enum.IntEnum):
    ACCESS_REQUEST = ACCESS_REQUEST
    NOT_PAID = NOT_PAID
    NOT_EXIST = NOT_EXIST
    ACCESS_OK = ACCESS_OK


class RejectReason(enum.IntEnum):
    OUT_OF_SEQUENCE = REJECT_OUT_OF_SEQUENCE
    LENGTH_MISMATCH = REJECT_LENGTH_MISMATCH
    MISSING_END_MARKER = REJECT_MISSING_END
    DUPLICATE_PACKET = REJECT_DUPLICATE


class Technology(enum.IntEnum):
    G2 = 2
    G3 = 3
    G4 = 4
    G5 = 5

    @property
    def label(self) -> str:
        return f"{int(self)}G"


def _check_width(name: str, value: int, bits: int) -> None:
    if not 0 <= value < (1 << bits):
        raise ValueError(f"{name}={value} does not fit in u{bits}")


@dataclass(frozen=True, slots=True)
class SubscriberPacket:
    client_id: int
    message_kind: int
    segment_no: int
    technology: int
    subscriber_number: int
    length: int = SUBSCRIBER_PAYLOAD_SIZE
    start_marker: int = START_MARKER
    end_marker: int = END_MARKER

    STRUCT: ClassVar[struct.Struct] = struct.Struct(SUBSCRIBER_FORMAT)

    def __post_init__(self) -> None:
        _check_width("start_marker", self.start_marker, 16)
        _check_width("client_id", self.client_id, 8)
        _check_width("message_kind", self.message_kind, 16)
        _check_width("segment_no", self.segment_no, 8)
        _check_width("length", self.length, 8)
        _check_width("technology", self.technology, 8)
        _check_width("subscriber_number", self.subscriber_number, 32)
        _check_width("end_marker", self.end_marker, 16)

    @classmethod
    def access_request(
        cls, client_id: int, segment_no: int, technology: int, subscriber_number: int
    ) -> "SubscriberPacket":
        return cls(
            client_id=client_id,
            message_kind=SubscriberStatus.ACCESS_REQUEST,
            segment_no=segment_no,
            technology=technology,
            subscriber_number=subscriber_number,
        )

    def with_kind(self, kind: int) -> "SubscriberPacket":
        """Fresh packet with the same fields and a different message kind."""
        return dataclasses.replace(self, message_kind=kind)

    def to_bytes(self) -> bytes:
        return self.STRUCT.pack(
            self.start_marker,
            self.client_id,
            int(self.message_kind),
            self.segment_no,
            self.length,
            self.technology,
            self.subscriber_number,
            self.end_marker,
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "SubscriberPacket":
        _check_size(cls, raw)
        start, client_id, kind, segment_no, length, technology, number, end = cls.STRUCT.unpack(raw)
        return cls(
            client_id=client_id,
            message_kind=kind,
            segment_no=segment_no,
            technology=technology,
            subscriber_number=number,
            length=length,
            start_marker=start,
            end_marker=end,
        )


@dataclass(frozen=True, slots=True)
class DataPacket:
    """One segment of a transfer.

    ``payload`` holds the carried bytes and ``length`` the declared size. On
    the wire the payload occupies a fixed 255-byte region padded with zeros;
    bytes found past the declared length are kept so the receiver can tell
    the two apart.
    """

    client_id: int
    segment_no: int
    length: int
    payload: bytes = b""
    kind: int = PacketKind.DATA
    start_marker: int = START_MARKER
    end_marker: int = END_MARKER

    STRUCT: ClassVar[struct.Struct] = struct.Struct(DATA_FORMAT)

    def __post_init__(self) -> None:
        _check_width("start_marker", self.start_marker, 16)
        _check_width("client_id", self.client_id, 8)
        _check_width("kind", self.kind, 16)
        _check_width("segment_no", self.segment_no, 8)
        _check_width("length", self.length, 8)
        _check_width("end_marker", self.end_marker, 16)
        if len(self.payload) > MAX_PAYLOAD:
            raise ValueError(f"payload too large: {len(self.payload)}")
        # Hold the payload as the wire carries it: zero padded up to `length`,
        # and without trailing zeros past it.
        payload = bytes(self.payload)
        if len(payload) < self.length:
            payload = payload.ljust(self.length, b"\x00")
        else:
            payload = payload[: self.length] + payload[self.length :].rstrip(b"\x00")
        object.__setattr__(self, "payload", payload)

    @classmethod
    def segment(cls, client_id: int, segment_no: int, payload: bytes) -> "DataPacket":
        return cls(client_id=client_id, segment_no=segment_no, length=len(payload), payload=payload)

    def to_bytes(self) -> bytes:
        return self.STRUCT.pack(
            self.start_marker,
            self.client_id,
            int(self.kind),
            self.segment_no,
            self.length,
            self.payload,
            self.end_marker,
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "DataPacket":
        _check_size(cls, raw)
        start, client_id, kind, segment_no, length, region, end = cls.STRUCT.unpack(raw)
        carried = len(region.rstrip(b"\x00"))
        return cls(
            client_id=client_id,
            segment_no=segment_no,
            length=length,
            payload=region[: max(length, carried)],
            kind=kind,
            start_marker=start,
            end_marker=end,
        )


@dataclass(frozen=True, slots=True)
class AckPacket:
    client_id: int
    acked_segment_no: int
    kind: int = PacketKind.ACK
    start_marker: int = START_MARKER
    end_marker: int = END_MARKER

    STRUCT: ClassVar[struct.Struct] = struct.Struct(ACK_FORMAT)

    def __post_init__(self) -> None:
        _check_width("start_marker", self.start_marker, 16)
        _check_width("client_id", self.client_id, 8)
        _check_width("kind", self.kind, 16)
        _check_width("acked_segment_no", self.acked_segment_no, 8)
        _check_width("end_marker", self.end_marker, 16)

    def to_bytes(self) -> bytes:
        return self.STRUCT.pack(
            self.start_marker, self.client_id, int(self.kind), self.acked_segment_no, self.end_marker
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "AckPacket":
        _check_size(cls, raw)
        start, client_id, kind, acked, end = cls.STRUCT.unpack(raw)
        return cls(client_id=client_id, acked_segment_no=acked, kind=kind, start_marker=start, end_marker=end)


@dataclass(frozen=True, slots=True)
class RejectPacket:
    client_id: int
    reason: int
    acked_segment_no: int
    kind: int = PacketKind.REJECT
    start_marker: int = START_MARKER
    end_marker: int = END_MARKER

    STRUCT: ClassVar[struct.Struct] = struct.Struct(REJECT_FORMAT)

    def __post_init__(self) -> None:
        _check_width("start_marker", self.start_marker, 16)
        _check_width("client_id", self.client_id, 8)
        _check_width("kind", self.kind, 16)
        _check_width("reason", self.reason, 16)
        _check_width("acked_segment_no", self.acked_segment_no, 8)
        _check_width("end_marker", self.end_marker, 16)

    def to_bytes(self) -> bytes:
        return self.STRUCT.pack(
            self.start_marker,
            self.client_id,
            int(self.kind),
            int(self.reason),
            self.acked_segment_no,
            self.end_marker,
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "RejectPacket":
        _check_size(cls, raw)
        start, client_id, kind, reason, acked, end = cls.STRUCT.unpack(raw)
        return cls(
            client_id=client_id,
            reason=reason,
            acked_segment_no=acked,
            kind=kind,
            start_marker=start,
            end_marker=end,
        )


Packet = Union[SubscriberPacket, DataPacket, AckPacket, RejectPacket]
P = TypeVar("P", SubscriberPacket, DataPacket, AckPacket, RejectPacket)

_SUBSCRIBER_TAGS = frozenset(int(s) for s in SubscriberStatus)


def _check_size(cls: type, raw: bytes) -> None:
    expected = cls.STRUCT.size
    if len(raw) != expected:
        raise DecodeError(f"{cls.__name__} must be {expected} bytes, got {len(raw)}")


def encode(packet: Packet) -> bytes:
    return packet.to_bytes()


def decode(raw: bytes, kind: Type[P]) -> P:
    return kind.from_bytes(raw)


def peek_kind(raw: bytes) -> int:
    if len(raw) < KIND_OFFSET + 2:
        raise DecodeError(f"datagram too small to carry a kind tag: {len(raw)} bytes")
    (tag,) = struct.unpack_from("!H", raw, KIND_OFFSET)
    return tag


def packet_class_for(tag: int) -> type:
    if tag in _SUBSCRIBER_TAGS:
        return SubscriberPacket
    if tag == PacketKind.DATA:
        return DataPacket
    if tag == PacketKind.ACK:
        return AckPacket
    if tag == PacketKind.REJECT:
        return RejectPacket
    raise DecodeError(f"unknown packet kind 0x{tag:04X}")


def decode_any(raw: bytes) -> Packet:
    return decode(raw, packet_class_for(peek_kind(raw)))
