from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .errors import MalformedPacket, RetriesExhausted, TransportFailure
from .inputs import AccessRequest
from .report import describe_status
from .session import ArqSession

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExchangeOutcome:
    request: AccessRequest
    status: Optional[int]
    transmissions: int
    error: Optional[str] = None

    @property
    def responded(self) -> bool:
        return self.status is not None


def run_requests(session: ArqSession, requests: Iterable[AccessRequest]) -> List[ExchangeOutcome]:
    """Run one exchange per request; a failed exchange affects only that request."""
    outcomes = []
    for request in requests:
        log.info("sending packet: segment %d client %d", request.segment_no, request.client_id)
        sent_before = session.metrics.packets_sent
        try:
            reply = session.exchange(request)
        except RetriesExhausted as exc:
            log.warning("server does not respond")
            outcomes.append(ExchangeOutcome(request, None, exc.attempts, "no response"))
            continue
        except (MalformedPacket, TransportFailure) as exc:
            outcomes.append(ExchangeOutcome(request, None, session.metrics.packets_sent - sent_before, str(exc)))
            continue
        log.info(
            "server responded with subscriber status 0x%04X %s",
            int(reply.message_kind),
            describe_status(reply.message_kind),
        )
        outcomes.append(ExchangeOutcome(request, int(reply.message_kind), session.metrics.packets_sent - sent_before))
    return outcomes
