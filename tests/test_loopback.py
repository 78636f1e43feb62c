from __future__ import annotations

from subarq.cli import main
from subarq.directory import VerificationRecord
from subarq.inputs import AccessRequest
from subarq.loopback import run_loopback
from subarq.packet import SubscriberStatus, Technology

RECORDS = [
    VerificationRecord(4085546805, Technology.G4, paid=True),
    VerificationRecord(4086668821, Technology.G3, paid=False),
]


def test_access_request_end_to_end():
    request = AccessRequest(client_id=1, segment_no=0, technology=4, subscriber_number=4085546805)
    r = run_loopback([request], RECORDS, timeout_ms=500)
    (outcome,) = r.outcomes
    assert outcome.status == SubscriberStatus.ACCESS_OK
    assert outcome.request.subscriber_number == 4085546805
    assert r.server_handled == 1
    assert r.retransmits == 0


def test_each_request_gets_its_own_status():
    requests = [
        AccessRequest(1, 0, 4, 4085546805),
        AccessRequest(1, 1, 3, 4086668821),
        AccessRequest(1, 2, 5, 4085546805),
    ]
    r = run_loopback(requests, RECORDS, timeout_ms=500)
    assert [o.status for o in r.outcomes] == [
        SubscriberStatus.ACCESS_OK,
        SubscriberStatus.NOT_PAID,
        SubscriberStatus.NOT_EXIST,
    ]


def test_slow_server_never_mixes_up_verdicts():
    requests = [
        AccessRequest(1, 0, 4, 4085546805),
        AccessRequest(1, 1, 3, 4086668821),
        AccessRequest(1, 2, 5, 4085546805),
    ]
    expected = [SubscriberStatus.ACCESS_OK, SubscriberStatus.NOT_PAID, SubscriberStatus.NOT_EXIST]
    r = run_loopback(requests, RECORDS, delay_ms=150, timeout_ms=100, max_retries=5)
    assert r.retransmits > 0
    for outcome, status in zip(r.outcomes, expected):
        assert outcome.status in (status, None)


def test_total_loss_exhausts_retries():
    request = AccessRequest(1, 0, 4, 4085546805)
    r = run_loopback([request], RECORDS, loss_rate=1.0, timeout_ms=50, max_retries=2)
    (outcome,) = r.outcomes
    assert not outcome.responded
    assert outcome.transmissions == 3
    assert r.packets_sent == 3
    assert r.server_handled == 0


def test_cli_loopback(tmp_path, capsys):
    requests = tmp_path / "requests.txt"
    requests.write_text("1\n1\n0\n4\n4085546805\n")
    database = tmp_path / "db.txt"
    database.write_text("1\n4085546805\n4\n1\n")
    assert main(["loopback", "--requests", str(requests), "--database", str(database)]) == 0
    out = capsys.readouterr().out
    assert "(408) 554-6805" in out
    assert "Subscriber Access Granted" in out


def test_cli_reports_bad_input(tmp_path):
    requests = tmp_path / "requests.txt"
    requests.write_text("1\n")
    database = tmp_path / "db.txt"
    database.write_text("0\n")
    assert main(["loopback", "--requests", str(requests), "--database", str(database)]) == 1
