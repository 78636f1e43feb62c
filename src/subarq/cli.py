from __future__ import annotations

import argparse
import json
import logging
from typing import BinaryIO, List, Optional

from .client import ExchangeOutcome, run_requests
from .constants import DEFAULT_HOST, DEFAULT_MAX_RETRIES, DEFAULT_PORT, DEFAULT_TIMEOUT_MS, MAX_PAYLOAD
from .directory import SubscriberDirectory
from .errors import ProtocolError, RetriesExhausted, SegmentRejected
from .inputs import read_directory, read_requests
from .loopback import run_loopback
from .net import Impairment, UdpEndpoint, UdpTransport
from .report import describe_reject, describe_status, format_directory, format_subscriber_number
from .responder import SegmentReceiver, Server, SubscriberResponder
from .session import ArqSession, SegmentSender

log = logging.getLogger(__name__)


def _outcome_dict(o: ExchangeOutcome) -> dict:
    return {
        "client_id": o.request.client_id,
        "segment_no": o.request.segment_no,
        "technology": o.request.technology,
        "subscriber_number": o.request.subscriber_number,
        "status": None if o.status is None else f"0x{o.status:04X}",
        "transmissions": o.transmissions,
        "error": o.error,
    }


def _print_outcomes(outcomes: List[ExchangeOutcome], as_json: bool) -> None:
    if as_json:
        print(json.dumps([_outcome_dict(o) for o in outcomes], indent=2))
        return
    for o in outcomes:
        number = format_subscriber_number(o.request.subscriber_number)
        if o.status is None:
            print(f"segment {o.request.segment_no} {number}: {o.error or 'no response'}")
        else:
            print(f"segment {o.request.segment_no} {number}: 0x{o.status:04X}\t{describe_status(o.status)}")


def cmd_server(args: argparse.Namespace) -> int:
    directory = SubscriberDirectory.load(read_directory(args.database))
    if args.print_database:
        print(format_directory(directory))

    impair = Impairment(args.loss_rate, args.delay_ms)
    udp = UdpEndpoint.listening(args.listen_host, args.port, impairment=impair)

    out: Optional[BinaryIO] = open(args.out, "ab") if args.out else None

    def deliver(client_id: int, payload: bytes) -> None:
        log.info("client %d: delivered %d bytes", client_id, len(payload))
        if out is not None:
            out.write(payload)
            out.flush()

    server = Server(
        udp,
        SubscriberResponder(directory),
        SegmentReceiver(deliver=deliver, reject_duplicates=args.reject_duplicates),
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("interrupted")
    finally:
        udp.close()
        if out is not None:
            out.close()

    payload = {"role": "server", "handled": server.handled, "dropped": server.dropped}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def _session(args: argparse.Namespace, udp: UdpEndpoint) -> ArqSession:
    return ArqSession(
        UdpTransport(udp, (args.host, args.port)),
        timeout_ms=args.timeout_ms,
        max_retries=args.max_retries,
    )


def cmd_client(args: argparse.Namespace) -> int:
    requests = read_requests(args.requests)
    udp = UdpEndpoint.sending(impairment=Impairment(args.loss_rate, args.delay_ms))
    try:
        session = _session(args, udp)
        outcomes = run_requests(session, requests)
    finally:
        udp.close()
    _print_outcomes(outcomes, args.json)
    return 0


def cmd_transfer(args: argparse.Namespace) -> int:
    udp = UdpEndpoint.sending(impairment=Impairment(args.loss_rate, args.delay_ms))
    error = None
    try:
        sender = SegmentSender(_session(args, udp), client_id=args.client_id)
        with open(args.file, "rb") as f:
            try:
                segments = sender.send_file(f, segment_size=args.segment_size)
            except SegmentRejected as exc:
                segments, error = None, f"rejected: {describe_reject(exc.reason)}"
            except RetriesExhausted:
                segments, error = None, "no response"
    finally:
        udp.close()

    payload = {
        "role": "transfer",
        "segments": segments,
        "error": error,
        "retransmits": sender.session.metrics.retransmits,
        "timeouts": sender.session.metrics.timeouts,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if error is None else 1


def cmd_loopback(args: argparse.Namespace) -> int:
    r = run_loopback(
        read_requests(args.requests),
        read_directory(args.database),
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        timeout_ms=args.timeout_ms,
        max_retries=args.max_retries,
    )
    _print_outcomes(r.outcomes, args.json)
    summary = {
        "role": "loopback",
        "seconds": r.duration_s,
        "packets_sent": r.packets_sent,
        "retransmits": r.retransmits,
        "timeouts": r.timeouts,
        "server_handled": r.server_handled,
    }
    print(json.dumps(summary, indent=2) if args.json else summary)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="subarq", description="Subscriber access permission over UDP (stop-and-wait).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate datagram loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate send delay")
        x.add_argument("--json", action="store_true")

    def add_retry(x: argparse.ArgumentParser, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        x.add_argument("--timeout-ms", type=int, default=timeout_ms)
        x.add_argument("--max-retries", type=int, default=DEFAULT_MAX_RETRIES)

    server = sub.add_parser("server", help="answer access requests from a verification database")
    add_common(server)
    server.add_argument("--port", type=int, default=DEFAULT_PORT)
    server.add_argument("--listen-host", default="0.0.0.0")
    server.add_argument("--database", required=True)
    server.add_argument("--out", default=None, help="append accepted data segments to this file")
    server.add_argument("--reject-duplicates", action="store_true")
    server.add_argument("--print-database", action="store_true")
    server.set_defaults(func=cmd_server)

    client = sub.add_parser("client", help="send the access requests listed in a file")
    add_common(client)
    client.add_argument("--port", type=int, default=DEFAULT_PORT)
    add_retry(client)
    client.add_argument("--host", default=DEFAULT_HOST)
    client.add_argument("requests")
    client.set_defaults(func=cmd_client)

    transfer = sub.add_parser("transfer", help="send a file as data segments")
    add_common(transfer)
    transfer.add_argument("--port", type=int, default=DEFAULT_PORT)
    add_retry(transfer)
    transfer.add_argument("--host", default=DEFAULT_HOST)
    transfer.add_argument("--client-id", type=int, default=1)
    transfer.add_argument("--segment-size", type=int, default=MAX_PAYLOAD)
    transfer.add_argument("--file", required=True)
    transfer.set_defaults(func=cmd_transfer)

    loopback = sub.add_parser("loopback", help="run server and client on 127.0.0.1")
    add_common(loopback)
    add_retry(loopback, timeout_ms=250)
    loopback.add_argument("--requests", required=True)
    loopback.add_argument("--database", required=True)
    loopback.set_defaults(func=cmd_loopback)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except (ProtocolError, ValueError, OSError) as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
