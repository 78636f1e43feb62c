from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Union

from .constants import GROUP_SIZE
from .directory import SubscriberDirectory
from .errors import MalformedPacket, TransportFailure, TransportTimeout
from .net import UdpEndpoint
from .packet import (
    AckPacket,
    DataPacket,
    RejectPacket,
    RejectReason,
    SubscriberPacket,
    SubscriberStatus,
    packet_class_for,
    peek_kind,
)
from .report import describe_reject, describe_status, format_packet
from .validate import Rule, ensure_valid, is_valid_data

log = logging.getLogger(__name__)

SegmentReply = Union[AckPacket, RejectPacket]


@dataclass(frozen=True, slots=True)
class SubscriberResponder:
    directory: SubscriberDirectory

    def respond(self, request: SubscriberPacket) -> SubscriberPacket:
        ensure_valid(request)
        log.debug("received %s", format_packet(request))
        if request.message_kind != SubscriberStatus.ACCESS_REQUEST:
            raise MalformedPacket(
                f"expected an access request, got 0x{int(request.message_kind):04X}", rule=Rule.KIND
            )
        status = self.directory.verify(request.subscriber_number, request.technology)
        log.info("responding with subscriber status 0x%04X %s", int(status), describe_status(status))
        return ensure_valid(request.with_kind(status))


@dataclass(slots=True)
class ClientSequence:
    expected: int = 0
    previous: Optional[int] = None


@dataclass(slots=True)
class SegmentReceiver:
    """Per-client sequencing for the segmented transfer.

    Checks run in this order: structure (start marker, kind, segment range),
    length mismatch, end marker, then the in-order / duplicate /
    out-of-sequence judgment against the client's counters.
    """

    deliver: Callable[[int, bytes], None] = lambda client_id, payload: None
    reject_duplicates: bool = False
    clients: Dict[int, ClientSequence] = field(default_factory=dict)

    def sequence(self, client_id: int) -> ClientSequence:
        return self.clients.setdefault(client_id, ClientSequence())

    def receive(self, packet: DataPacket) -> SegmentReply:
        result = is_valid_data(packet)
        if not result and result.rule is not Rule.END_MARKER:
            raise MalformedPacket(result.reason, rule=result.rule)

        if len(packet.payload) != packet.length:
            return self._reject(packet, RejectReason.LENGTH_MISMATCH)
        if not result:
            return self._reject(packet, RejectReason.MISSING_END_MARKER)

        seq = self.sequence(packet.client_id)
        segment_no = packet.segment_no
        if segment_no == seq.expected:
            self.deliver(packet.client_id, packet.payload)
            seq.previous = segment_no
            seq.expected = (segment_no + 1) % GROUP_SIZE
            log.debug("client %d: accepted segment %d", packet.client_id, segment_no)
            return AckPacket(client_id=packet.client_id, acked_segment_no=segment_no)

        if segment_no == seq.previous:
            if self.reject_duplicates:
                return self._reject(packet, RejectReason.DUPLICATE_PACKET)
            log.info("client %d: duplicate segment %d; acknowledging again", packet.client_id, segment_no)
            return AckPacket(client_id=packet.client_id, acked_segment_no=segment_no)

        return self._reject(packet, RejectReason.OUT_OF_SEQUENCE)

    def _reject(self, packet: DataPacket, reason: RejectReason) -> RejectPacket:
        log.warning(
            "client %d: rejecting segment %d: %s", packet.client_id, packet.segment_no, describe_reject(reason)
        )
        return RejectPacket(client_id=packet.client_id, reason=reason, acked_segment_no=packet.segment_no)


class Server:
    def __init__(
        self,
        endpoint: UdpEndpoint,
        responder: SubscriberResponder,
        receiver: Optional[SegmentReceiver] = None,
    ):
        self.endpoint = endpoint
        self.responder = responder
        self.receiver = receiver or SegmentReceiver()
        self.handled = 0
        self.dropped = 0

    def handle(self, raw: bytes) -> bytes:
        cls = packet_class_for(peek_kind(raw))
        if cls is SubscriberPacket:
            return self.responder.respond(SubscriberPacket.from_bytes(raw)).to_bytes()
        if cls is DataPacket:
            return self.receiver.receive(DataPacket.from_bytes(raw)).to_bytes()
        raise MalformedPacket(f"{cls.__name__} is not a request", rule=Rule.KIND)

    def serve_forever(self, stop: Optional[threading.Event] = None, poll_ms: int = 500) -> None:
        log.info("server listening on %s:%d", *self.endpoint.address)
        self.endpoint.settimeout(poll_ms)
        while stop is None or not stop.is_set():
            try:
                raw, addr = self.endpoint.recvfrom()
            except TransportTimeout:
                continue
            except TransportFailure as exc:
                log.warning("receive failed: %s", exc)
                continue
            log.debug("received %d bytes from %s", len(raw), addr)
            try:
                reply = self.handle(raw)
            except MalformedPacket as exc:
                self.dropped += 1
                log.warning("dropping malformed datagram from %s: %s", addr, exc)
                continue
            try:
                self.endpoint.sendto(reply, addr)
            except TransportFailure as exc:
                self.dropped += 1
                log.warning("could not answer %s: %s", addr, exc)
                continue
            self.handled += 1
        log.info("server stopped; handled=%d dropped=%d", self.handled, self.dropped)
