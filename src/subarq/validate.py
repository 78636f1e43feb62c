"""Structural checks for every packet kind.

Rules run in a fixed order and stop at the first violation, so a failed
result always names exactly one rule:

    START_MARKER -> KIND -> SEGMENT -> TECHNOLOGY / REASON -> END_MARKER
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from .constants import END_MARKER, GROUP_SIZE, START_MARKER
from .errors import MalformedPacket
from .packet import (
    AckPacket,
    DataPacket,
    Packet,
    PacketKind,
    RejectPacket,
    RejectReason,
    SubscriberPacket,
    SubscriberStatus,
    Technology,
)


class Rule(enum.Enum):
    START_MARKER = "start_marker"
    KIND = "kind"
    SEGMENT = "segment_no"
    TECHNOLOGY = "technology"
    REASON = "reason"
    END_MARKER = "end_marker"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    rule: Optional[Rule] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.rule is None

    def __bool__(self) -> bool:
        return self.ok


VALID = ValidationResult()

_TECHNOLOGIES = frozenset(int(t) for t in Technology)
_REASONS = frozenset(int(r) for r in RejectReason)

Check = Tuple[Rule, Callable[[], bool], Callable[[], str]]


def _run(checks: Iterable[Check]) -> ValidationResult:
    for rule, passes, describe in checks:
        if not passes():
            return ValidationResult(rule, describe())
    return VALID


def _framing_start(packet: Packet) -> Check:
    return (
        Rule.START_MARKER,
        lambda: packet.start_marker == START_MARKER,
        lambda: f"invalid start marker 0x{packet.start_marker:04X}",
    )


def _framing_end(packet: Packet) -> Check:
    return (
        Rule.END_MARKER,
        lambda: packet.end_marker == END_MARKER,
        lambda: f"invalid end marker 0x{packet.end_marker:04X}",
    )


def _segment(value: int) -> Check:
    return (
        Rule.SEGMENT,
        lambda: value < GROUP_SIZE,
        lambda: f"invalid segment number {value}",
    )


def _kind(tag: int, allowed: Iterable[int]) -> Check:
    allowed = frozenset(int(v) for v in allowed)
    return (
        Rule.KIND,
        lambda: int(tag) in allowed,
        lambda: f"invalid packet kind 0x{int(tag):04X}",
    )


def is_valid_subscriber(packet: SubscriberPacket) -> ValidationResult:
    return _run(
        [
            _framing_start(packet),
            _kind(packet.message_kind, SubscriberStatus),
            _segment(packet.segment_no),
            (
                Rule.TECHNOLOGY,
                lambda: packet.technology in _TECHNOLOGIES,
                lambda: f"invalid technology {packet.technology}",
            ),
            _framing_end(packet),
        ]
    )


def is_valid_data(packet: DataPacket) -> ValidationResult:
    return _run(
        [
            _framing_start(packet),
            _kind(packet.kind, [PacketKind.DATA]),
            _segment(packet.segment_no),
            _framing_end(packet),
        ]
    )


def is_valid_ack(packet: AckPacket) -> ValidationResult:
    return _run(
        [
            _framing_start(packet),
            _kind(packet.kind, [PacketKind.ACK]),
            _segment(packet.acked_segment_no),
            _framing_end(packet),
        ]
    )


def is_valid_reject(packet: RejectPacket) -> ValidationResult:
    return _run(
        [
            _framing_start(packet),
            _kind(packet.kind, [PacketKind.REJECT]),
            _segment(packet.acked_segment_no),
            (
                Rule.REASON,
                lambda: packet.reason in _REASONS,
                lambda: f"invalid reject reason 0x{packet.reason:04X}",
            ),
            _framing_end(packet),
        ]
    )


def validate(packet: Packet) -> ValidationResult:
    if isinstance(packet, SubscriberPacket):
        return is_valid_subscriber(packet)
    if isinstance(packet, DataPacket):
        return is_valid_data(packet)
    if isinstance(packet, AckPacket):
        return is_valid_ack(packet)
    if isinstance(packet, RejectPacket):
        return is_valid_reject(packet)
    raise TypeError(f"not a packet: {packet!r}")


def ensure_valid(packet: Packet) -> Packet:
    result = validate(packet)
    if not result:
        raise MalformedPacket(result.reason, rule=result.rule)
    return packet
