from __future__ import annotations

from typing import Iterable, List

from .directory import VerificationRecord
from .packet import (
    AckPacket,
    DataPacket,
    Packet,
    RejectPacket,
    RejectReason,
    SubscriberPacket,
    SubscriberStatus,
)

STATUS_MESSAGES = {
    SubscriberStatus.ACCESS_REQUEST: "Subscriber Access Permission Request",
    SubscriberStatus.NOT_PAID: "Subscriber Not Paid",
    SubscriberStatus.NOT_EXIST: "Subscriber Not Exist",
    SubscriberStatus.ACCESS_OK: "Subscriber Access Granted",
}

REJECT_MESSAGES = {
    RejectReason.OUT_OF_SEQUENCE: "Out Of Sequence",
    RejectReason.LENGTH_MISMATCH: "Length Mismatch",
    RejectReason.MISSING_END_MARKER: "End Of Packet Missing",
    RejectReason.DUPLICATE_PACKET: "Duplicate Packet",
}


def format_subscriber_number(number: int) -> str:
    """Render a ten digit number as ``(408) 554-6805``; shorter numbers are returned as-is."""
    digits = str(number)
    if len(digits) != 10:
        return digits
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def describe_status(kind: int) -> str:
    try:
        return STATUS_MESSAGES[SubscriberStatus(kind)]
    except ValueError:
        return f"Unknown status 0x{kind:04X}"


def describe_reject(reason: int) -> str:
    try:
        return REJECT_MESSAGES[RejectReason(reason)]
    except ValueError:
        return f"Unknown reason 0x{reason:04X}"


def format_packet(packet: Packet) -> str:
    if isinstance(packet, SubscriberPacket):
        lines = [
            "Subscriber Packet:",
            f"client_id=\t{packet.client_id}",
            f"packet_type=\t0x{int(packet.message_kind):04X}",
            f"segment_no=\t{packet.segment_no}",
            f"technology=\t{packet.technology}",
            f"src_sub_no=\t{format_subscriber_number(packet.subscriber_number)}",
        ]
    elif isinstance(packet, DataPacket):
        lines = [
            "Data Packet:",
            f"client_id=\t{packet.client_id}",
            f"segment_no=\t{packet.segment_no}",
            f"length=\t\t{packet.length}",
        ]
    elif isinstance(packet, AckPacket):
        lines = ["Ack Packet:", f"client_id=\t{packet.client_id}", f"segment_no=\t{packet.acked_segment_no}"]
    elif isinstance(packet, RejectPacket):
        lines = [
            "Reject Packet:",
            f"client_id=\t{packet.client_id}",
            f"reason=\t\t0x{packet.reason:04X} {describe_reject(packet.reason)}",
            f"segment_no=\t{packet.acked_segment_no}",
        ]
    else:
        raise TypeError(f"not a packet: {packet!r}")
    return "\n".join(lines)


def format_directory(records: Iterable[VerificationRecord]) -> str:
    lines: List[str] = ["Verification Database:", "Subscriber Number\tTechnology\tPaid"]
    for record in records:
        lines.append(
            f"{format_subscriber_number(record.subscriber_number)}\t\t{int(record.technology):02d}\t\t{int(record.paid)}"
        )
    return "\n".join(lines)
