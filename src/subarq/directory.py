from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple

from .packet import SubscriberStatus, Technology


@dataclass(frozen=True, slots=True)
class VerificationRecord:
    subscriber_number: int
    technology: Technology
    paid: bool


@dataclass(frozen=True, slots=True)
class SubscriberDirectory:
    """Read-only verification table.

    Records are kept in the order they were loaded; duplicates are allowed and
    the first matching record decides the outcome.
    """

    records: Tuple[VerificationRecord, ...] = ()

    @classmethod
    def load(cls, records: Iterable[VerificationRecord]) -> "SubscriberDirectory":
        return cls(tuple(records))

    def verify(self, subscriber_number: int, technology: int) -> SubscriberStatus:
        for record in self.records:
            if record.subscriber_number == subscriber_number and record.technology == technology:
                return SubscriberStatus.ACCESS_OK if record.paid else SubscriberStatus.NOT_PAID
        return SubscriberStatus.NOT_EXIST

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[VerificationRecord]:
        return iter(self.records)
