from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Optional, Tuple, cast

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_MS, GROUP_SIZE, MAX_PAYLOAD
from .errors import (
    MalformedPacket,
    RetriesExhausted,
    SegmentRejected,
    TransportFailure,
    TransportTimeout,
)
from .inputs import AccessRequest
from .net import Transport
from .packet import (
    AckPacket,
    DataPacket,
    Packet,
    RejectPacket,
    RejectReason,
    SubscriberPacket,
    SubscriberStatus,
    packet_class_for,
    peek_kind,
)
from .validate import Rule, ensure_valid

log = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass(slots=True)
class Metrics:
    packets_sent: int = 0
    timeouts: int = 0
    retransmits: int = 0


@dataclass(slots=True)
class ArqSession:
    """Stop-and-wait exchange engine.

    One packet is in flight at a time. A timeout resends the identical bytes
    until ``max_retries`` extra transmissions have been made; a reply that
    fails decoding or validation ends the exchange without retrying.
    The ack timer runs from the last transmission, so stale replies that
    keep arriving cannot hold the session open past it.
    """

    transport: Transport
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    state: SessionState = SessionState.IDLE
    attempt: int = 0
    metrics: Metrics = field(default_factory=Metrics)
    clock: Callable[[], float] = time.monotonic

    def exchange(self, request: AccessRequest) -> SubscriberPacket:
        packet = SubscriberPacket.access_request(
            client_id=request.client_id,
            segment_no=request.segment_no,
            technology=request.technology,
            subscriber_number=request.subscriber_number,
        )

        def answers(reply: Packet) -> bool:
            return (
                isinstance(reply, SubscriberPacket)
                and reply.message_kind != SubscriberStatus.ACCESS_REQUEST
                and reply.client_id == packet.client_id
                and reply.segment_no == packet.segment_no
                and reply.technology == packet.technology
                and reply.subscriber_number == packet.subscriber_number
            )

        return cast(SubscriberPacket, self.transmit(packet, (SubscriberPacket,), accept=answers))

    def transmit(
        self,
        packet: Packet,
        expect: Tuple[type, ...],
        accept: Optional[Callable[[Packet], bool]] = None,
    ) -> Packet:
        """Send ``packet`` and wait for a reply of one of the ``expect`` kinds.

        ``accept`` may reject a well-formed but stale reply (an Ack for an
        earlier segment); such replies are discarded and the wait continues
        until the ack timer runs out.
        """
        if self.state is SessionState.AWAITING_RESPONSE:
            raise RuntimeError("an exchange is already in flight")
        ensure_valid(packet)
        raw = packet.to_bytes()
        self.state = SessionState.AWAITING_RESPONSE
        self.attempt = 0

        try:
            deadline = self._send(raw)
            while True:
                try:
                    remaining_ms = (deadline - self.clock()) * 1000
                    if remaining_ms <= 0:
                        raise TransportTimeout("ack timer expired")
                    data = self.transport.receive_with_timeout(max(1, int(remaining_ms)))
                except TransportTimeout:
                    self.metrics.timeouts += 1
                    if self.attempt >= self.max_retries:
                        self.state = SessionState.EXHAUSTED
                        log.warning("no response after %d transmissions", self.attempt + 1)
                        raise RetriesExhausted(self.attempt + 1) from None
                    self.attempt += 1
                    self.metrics.retransmits += 1
                    log.info("ack timer timed out; retrying attempt %d", self.attempt)
                    deadline = self._send(raw)
                    continue

                reply = self._decode(data, expect)
                if accept is not None and not accept(reply):
                    log.debug("discarding stale reply %r", reply)
                    continue
                self.state = SessionState.RESOLVED
                return reply
        except (MalformedPacket, TransportFailure) as exc:
            self.state = SessionState.FAILED
            log.error("exchange failed: %s", exc)
            raise

    def _send(self, raw: bytes) -> float:
        """Transmit ``raw`` and return the ack deadline on ``clock``."""
        self.metrics.packets_sent += 1
        log.debug("sending %d bytes (attempt %d)", len(raw), self.attempt)
        self.transport.send(raw)
        return self.clock() + self.timeout_ms / 1000

    @staticmethod
    def _decode(data: bytes, expect: Tuple[type, ...]) -> Packet:
        cls = packet_class_for(peek_kind(data))
        if cls not in expect:
            raise MalformedPacket(f"unexpected {cls.__name__} reply", rule=Rule.KIND)
        return ensure_valid(cls.from_bytes(data))


def exchange(
    request: AccessRequest,
    transport: Transport,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> SubscriberPacket:
    return ArqSession(transport, timeout_ms=timeout_ms, max_retries=max_retries).exchange(request)


@dataclass(slots=True)
class SegmentSender:
    session: ArqSession
    client_id: int
    segment_no: int = 0

    def send(self, payload: bytes) -> AckPacket:
        packet = DataPacket.segment(self.client_id, self.segment_no, payload)

        def current(reply: Packet) -> bool:
            return cast(AckPacket | RejectPacket, reply).acked_segment_no == packet.segment_no

        reply = self.session.transmit(packet, (AckPacket, RejectPacket), accept=current)
        if isinstance(reply, RejectPacket):
            if reply.reason != RejectReason.DUPLICATE_PACKET:
                raise SegmentRejected(reply.reason, reply.acked_segment_no)
            # the peer already holds this segment; our Ack was lost
            log.info("segment %d already delivered", packet.segment_no)
            reply = AckPacket(client_id=packet.client_id, acked_segment_no=packet.segment_no)
        self.segment_no = (self.segment_no + 1) % GROUP_SIZE
        return cast(AckPacket, reply)

    def send_file(self, f: BinaryIO, segment_size: int = MAX_PAYLOAD) -> int:
        if not 0 < segment_size <= MAX_PAYLOAD:
            raise ValueError(f"segment size must be 1..{MAX_PAYLOAD}")
        sent = 0
        while True:
            chunk = f.read(segment_size)
            if not chunk:
                return sent
            self.send(chunk)
            sent += 1
