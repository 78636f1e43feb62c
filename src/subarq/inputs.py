"""Line-oriented input files.

Both files start with an entry count followed by one value per line:

* request file: ``client_id``, ``segment_no``, ``technology``,
  ``subscriber_number`` for every request;
* database file: ``subscriber_number``, ``technology``, ``paid`` (0/1) for
  every record.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .constants import GROUP_SIZE, MAX_CLIENT_ID, MAX_DIRECTORY_SIZE
from .directory import VerificationRecord
from .errors import InputFileError
from .packet import Technology


@dataclass(frozen=True, slots=True)
class AccessRequest:
    client_id: int
    segment_no: int
    technology: int
    subscriber_number: int


class _Lines:
    def __init__(self, path: str):
        self.path = path
        with open(path, "r", encoding="utf-8") as f:
            self._lines: List[str] = [line.strip() for line in f]
        self.line_no = 0

    def next_int(self, what: str) -> int:
        # blank lines between entries are tolerated
        while self.line_no < len(self._lines) and not self._lines[self.line_no]:
            self.line_no += 1
        if self.line_no >= len(self._lines):
            raise self.error(f"missing {what}")
        text = self._lines[self.line_no]
        self.line_no += 1
        try:
            return int(text)
        except ValueError:
            raise self.error(f"{what} is not an integer: {text!r}") from None

    def error(self, message: str) -> InputFileError:
        return InputFileError(self.path, max(1, self.line_no), message)


def read_requests(path: str) -> List[AccessRequest]:
    lines = _Lines(path)
    count = lines.next_int("entry count")
    if count < 0:
        raise lines.error(f"negative entry count {count}")
    requests = []
    for _ in range(count):
        client_id = lines.next_int("client id")
        if not 0 <= client_id <= MAX_CLIENT_ID:
            raise lines.error(f"client id out of range: {client_id}")
        segment_no = lines.next_int("segment number")
        technology = lines.next_int("technology")
        number = lines.next_int("subscriber number")
        if not 0 <= number <= 0xFFFFFFFF:
            raise lines.error(f"subscriber number out of range: {number}")
        requests.append(
            AccessRequest(
                client_id=client_id,
                segment_no=segment_no % GROUP_SIZE,
                technology=technology,
                subscriber_number=number,
            )
        )
    return requests


def read_directory(path: str) -> List[VerificationRecord]:
    lines = _Lines(path)
    count = lines.next_int("entry count")
    if not 0 <= count <= MAX_DIRECTORY_SIZE:
        raise lines.error(f"database size {count} exceeds maximum {MAX_DIRECTORY_SIZE}")
    records = []
    for _ in range(count):
        number = lines.next_int("subscriber number")
        technology = lines.next_int("technology")
        try:
            tech = Technology(technology)
        except ValueError:
            raise lines.error(f"unknown technology {technology}") from None
        paid = lines.next_int("paid flag")
        records.append(VerificationRecord(subscriber_number=number, technology=tech, paid=bool(paid)))
    return records
