from __future__ import annotations

import dataclasses
import threading

import pytest

from subarq.directory import SubscriberDirectory, VerificationRecord
from subarq.errors import MalformedPacket, TransportFailure, TransportTimeout
from subarq.packet import (
    AckPacket,
    DataPacket,
    RejectPacket,
    RejectReason,
    SubscriberPacket,
    SubscriberStatus,
    Technology,
)
from subarq.responder import SegmentReceiver, Server, SubscriberResponder

DIRECTORY = SubscriberDirectory.load(
    [
        VerificationRecord(4085546805, Technology.G4, paid=True),
        VerificationRecord(4086668821, Technology.G3, paid=False),
    ]
)


def _recorder():
    delivered = []
    return delivered, SegmentReceiver(deliver=lambda client_id, payload: delivered.append((client_id, payload)))


def _feed(receiver, *segments, client_id=1):
    return [receiver.receive(DataPacket.segment(client_id, s, f"seg{s}".encode())) for s in segments]


def test_in_order_segments_are_acked():
    delivered, r = _recorder()
    replies = _feed(r, 0, 1, 2)
    assert replies == [AckPacket(1, 0), AckPacket(1, 1), AckPacket(1, 2)]
    assert [p for _, p in delivered] == [b"seg0", b"seg1", b"seg2"]


def test_duplicate_is_reacked_without_redelivery():
    delivered, r = _recorder()
    _feed(r, 0, 1, 2)
    (reply,) = _feed(r, 2)
    assert reply == AckPacket(1, 2)
    assert len(delivered) == 3
    assert r.sequence(1).expected == 3


def test_duplicate_can_be_rejected():
    r = SegmentReceiver(reject_duplicates=True)
    _feed(r, 0, 1, 2)
    (reply,) = _feed(r, 2)
    assert reply == RejectPacket(1, RejectReason.DUPLICATE_PACKET, 2)


def test_out_of_sequence():
    delivered, r = _recorder()
    _feed(r, 0, 1, 2)
    (reply,) = _feed(r, 4)
    assert isinstance(reply, RejectPacket)
    assert reply.reason == RejectReason.OUT_OF_SEQUENCE
    assert reply.acked_segment_no == 4
    assert r.sequence(1).expected == 3
    assert len(delivered) == 3


def test_first_segment_must_be_zero():
    r = SegmentReceiver()
    (reply,) = _feed(r, 1)
    assert reply.reason == RejectReason.OUT_OF_SEQUENCE


def test_segment_numbers_wrap():
    r = SegmentReceiver()
    _feed(r, 0, 1, 2, 3, 4)
    assert r.sequence(1).expected == 0
    assert r.sequence(1).previous == 4
    assert _feed(r, 0) == [AckPacket(1, 0)]


def test_clients_are_tracked_independently():
    r = SegmentReceiver()
    _feed(r, 0, 1, client_id=1)
    assert _feed(r, 0, client_id=2) == [AckPacket(2, 0)]
    assert r.sequence(1).expected == 2
    assert r.sequence(2).expected == 1


def test_length_mismatch():
    delivered, r = _recorder()
    reply = r.receive(DataPacket(client_id=1, segment_no=0, length=2, payload=b"abc"))
    assert reply == RejectPacket(1, RejectReason.LENGTH_MISMATCH, 0)
    assert delivered == []
    assert r.sequence(1).expected == 0


def test_length_mismatch_survives_the_wire():
    r = SegmentReceiver()
    raw = DataPacket(client_id=1, segment_no=0, length=1, payload=b"abc").to_bytes()
    assert r.receive(DataPacket.from_bytes(raw)).reason == RejectReason.LENGTH_MISMATCH


def test_missing_end_marker():
    r = SegmentReceiver()
    packet = dataclasses.replace(DataPacket.segment(1, 0, b"abc"), end_marker=0x00FF)
    assert r.receive(packet) == RejectPacket(1, RejectReason.MISSING_END_MARKER, 0)


def test_length_mismatch_is_checked_before_end_marker():
    r = SegmentReceiver()
    packet = DataPacket(client_id=1, segment_no=0, length=1, payload=b"abc", end_marker=0)
    assert r.receive(packet).reason == RejectReason.LENGTH_MISMATCH


@pytest.mark.parametrize("change", [{"start_marker": 0}, {"kind": 0xFFF2}, {"segment_no": 5}])
def test_structural_faults_raise(change):
    r = SegmentReceiver()
    with pytest.raises(MalformedPacket):
        r.receive(dataclasses.replace(DataPacket.segment(1, 0, b"x"), **change))


@pytest.mark.parametrize(
    "number,technology,status",
    [
        (4085546805, 4, SubscriberStatus.ACCESS_OK),
        (4086668821, 3, SubscriberStatus.NOT_PAID),
        (4086668821, 4, SubscriberStatus.NOT_EXIST),
    ],
)
def test_subscriber_responder(number, technology, status):
    request = SubscriberPacket.access_request(3, 1, technology, number)
    reply = SubscriberResponder(DIRECTORY).respond(request)
    assert reply.message_kind == status
    assert reply.subscriber_number == number
    assert reply.client_id == 3
    assert reply.segment_no == 1
    assert request.message_kind == SubscriberStatus.ACCESS_REQUEST


def test_subscriber_responder_refuses_responses():
    request = SubscriberPacket.access_request(3, 1, 4, 555).with_kind(SubscriberStatus.ACCESS_OK)
    with pytest.raises(MalformedPacket):
        SubscriberResponder(DIRECTORY).respond(request)


def test_server_dispatches_on_kind():
    server = Server(endpoint=None, responder=SubscriberResponder(DIRECTORY))
    raw = server.handle(SubscriberPacket.access_request(1, 0, 4, 4085546805).to_bytes())
    assert SubscriberPacket.from_bytes(raw).message_kind == SubscriberStatus.ACCESS_OK
    raw = server.handle(DataPacket.segment(1, 0, b"hi").to_bytes())
    assert AckPacket.from_bytes(raw) == AckPacket(1, 0)
    with pytest.raises(MalformedPacket):
        server.handle(AckPacket(1, 0).to_bytes())
    with pytest.raises(MalformedPacket):
        server.handle(b"\x00")


class ScriptedEndpoint:
    """Hands out queued datagrams, then stops the server when it runs dry."""

    address = ("127.0.0.1", 8080)

    def __init__(self, datagrams, stop, failing_sends=0):
        self.datagrams = list(datagrams)
        self.stop = stop
        self.failing_sends = failing_sends
        self.sent = []

    def settimeout(self, timeout_ms):
        pass

    def recvfrom(self):
        if not self.datagrams:
            self.stop.set()
            raise TransportTimeout("idle")
        return self.datagrams.pop(0), ("127.0.0.1", 9000)

    def sendto(self, data, addr):
        if self.failing_sends:
            self.failing_sends -= 1
            raise TransportFailure("network unreachable")
        self.sent.append(data)


def test_server_drops_malformed_datagram_and_keeps_serving():
    stop = threading.Event()
    request = SubscriberPacket.access_request(1, 0, 4, 4085546805).to_bytes()
    bad = bytearray(request)
    bad[-1] = 0x00
    endpoint = ScriptedEndpoint([bytes(bad), b"\x00", request], stop)
    server = Server(endpoint, SubscriberResponder(DIRECTORY))
    server.serve_forever(stop, poll_ms=10)
    assert server.dropped == 2
    assert server.handled == 1
    (reply,) = endpoint.sent
    assert SubscriberPacket.from_bytes(reply).message_kind == SubscriberStatus.ACCESS_OK


def test_server_survives_send_failure():
    stop = threading.Event()
    request = SubscriberPacket.access_request(1, 0, 4, 4085546805).to_bytes()
    endpoint = ScriptedEndpoint([request, request], stop, failing_sends=1)
    server = Server(endpoint, SubscriberResponder(DIRECTORY))
    server.serve_forever(stop, poll_ms=10)
    assert server.dropped == 1
    assert server.handled == 1
    assert len(endpoint.sent) == 1
