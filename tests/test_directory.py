from __future__ import annotations

import pytest

from subarq.directory import SubscriberDirectory, VerificationRecord
from subarq.errors import InputFileError
from subarq.inputs import AccessRequest, read_directory, read_requests
from subarq.packet import SubscriberStatus, Technology


def test_lookup():
    d = SubscriberDirectory.load(
        [
            VerificationRecord(555, Technology.G4, paid=True),
            VerificationRecord(555, Technology.G3, paid=False),
        ]
    )
    assert d.verify(555, Technology.G4) is SubscriberStatus.ACCESS_OK
    assert d.verify(555, 3) is SubscriberStatus.NOT_PAID
    assert d.verify(555, Technology.G5) is SubscriberStatus.NOT_EXIST
    assert d.verify(999, Technology.G4) is SubscriberStatus.NOT_EXIST


def test_first_match_wins():
    d = SubscriberDirectory.load(
        [
            VerificationRecord(42, Technology.G2, paid=False),
            VerificationRecord(42, Technology.G2, paid=True),
        ]
    )
    assert len(d) == 2
    assert d.verify(42, 2) is SubscriberStatus.NOT_PAID
    assert d.verify(42, 2) is SubscriberStatus.NOT_PAID


def test_empty_directory():
    assert SubscriberDirectory().verify(1, 4) is SubscriberStatus.NOT_EXIST


def test_records_are_kept_verbatim():
    records = [VerificationRecord(n, Technology.G4, True) for n in (3, 1, 2, 1)]
    assert list(SubscriberDirectory.load(records)) == records


def test_read_requests(tmp_path):
    path = tmp_path / "requests.txt"
    path.write_text("2\n1\n0\n4\n4085546805\n\n2\n7\n3\n4086668821\n")
    assert read_requests(str(path)) == [
        AccessRequest(client_id=1, segment_no=0, technology=4, subscriber_number=4085546805),
        AccessRequest(client_id=2, segment_no=2, technology=3, subscriber_number=4086668821),
    ]


def test_read_requests_short_file(tmp_path):
    path = tmp_path / "requests.txt"
    path.write_text("1\n1\n0\n")
    with pytest.raises(InputFileError, match="missing technology"):
        read_requests(str(path))


def test_read_requests_bad_integer(tmp_path):
    path = tmp_path / "requests.txt"
    path.write_text("1\nabc\n")
    with pytest.raises(InputFileError) as info:
        read_requests(str(path))
    assert info.value.line_no == 2


def test_read_directory(tmp_path):
    path = tmp_path / "db.txt"
    path.write_text("2\n4085546805\n4\n1\n4086668821\n3\n0\n")
    assert read_directory(str(path)) == [
        VerificationRecord(4085546805, Technology.G4, True),
        VerificationRecord(4086668821, Technology.G3, False),
    ]


def test_read_directory_limits(tmp_path):
    path = tmp_path / "db.txt"
    path.write_text("101\n")
    with pytest.raises(InputFileError, match="exceeds maximum"):
        read_directory(str(path))

    path.write_text("1\n555\n7\n1\n")
    with pytest.raises(InputFileError, match="unknown technology"):
        read_directory(str(path))
