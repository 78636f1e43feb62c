from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .client import ExchangeOutcome, run_requests
from .constants import DEFAULT_MAX_RETRIES
from .directory import SubscriberDirectory, VerificationRecord
from .inputs import AccessRequest
from .net import Impairment, UdpEndpoint, UdpTransport
from .responder import Server, SubscriberResponder
from .session import ArqSession


@dataclass(frozen=True, slots=True)
class LoopbackResult:
    outcomes: List[ExchangeOutcome]
    duration_s: float
    packets_sent: int
    retransmits: int
    timeouts: int
    server_handled: int


def run_loopback(
    requests: Sequence[AccessRequest],
    records: Iterable[VerificationRecord],
    *,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    timeout_ms: int = 250,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> LoopbackResult:
    """Serve ``records`` on 127.0.0.1 in a background thread and run ``requests`` against it.

    The impairment applies to the server side only, so lost requests and lost
    replies both show up as client timeouts.
    """
    directory = SubscriberDirectory.load(records)
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms)

    server_ep = UdpEndpoint.listening("127.0.0.1", 0, impairment=impair)
    server = Server(server_ep, SubscriberResponder(directory))
    stop = threading.Event()

    def server_runner() -> None:
        try:
            server.serve_forever(stop, poll_ms=50)
        finally:
            server_ep.close()

    t = threading.Thread(target=server_runner, daemon=True)
    t.start()

    client_ep = UdpEndpoint.sending()
    start = time.monotonic()
    try:
        session = ArqSession(
            UdpTransport(client_ep, server_ep.address),
            timeout_ms=timeout_ms,
            max_retries=max_retries,
        )
        outcomes = run_requests(session, requests)
    finally:
        client_ep.close()
        stop.set()
    duration_s = time.monotonic() - start

    t.join(timeout=10.0)

    return LoopbackResult(
        outcomes=outcomes,
        duration_s=duration_s,
        packets_sent=session.metrics.packets_sent,
        retransmits=session.metrics.retransmits,
        timeouts=session.metrics.timeouts,
        server_handled=server.handled,
    )
