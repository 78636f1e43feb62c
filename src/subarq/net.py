from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Protocol, Tuple

from .errors import TransportFailure, TransportTimeout

log = logging.getLogger(__name__)

Address = Tuple[str, int]


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class Transport(Protocol):
    def send(self, data: bytes) -> None: ...

    def receive_with_timeout(self, timeout_ms: int) -> bytes: ...


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError as exc:
            sock.close()
            raise TransportFailure(f"cannot bind {host}:{port}: {exc}") from exc
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    @classmethod
    def sending(
        cls,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()

    def settimeout(self, timeout_ms: int) -> None:
        self.sock.settimeout(timeout_ms / 1000.0 if timeout_ms > 0 else None)

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            log.debug("dropped outbound %d bytes to %s", len(data), addr)
            return
        self.impairment.sleep_if_needed()
        try:
            self.sock.sendto(data, addr)
        except OSError as exc:
            raise TransportFailure(f"sendto {addr} failed: {exc}") from exc

    def recvfrom(self, bufsize: int = 65535) -> Tuple[bytes, Address]:
        while True:
            try:
                data, addr = self.sock.recvfrom(bufsize)
            except socket.timeout as exc:
                raise TransportTimeout("receive timed out") from exc
            except OSError as exc:
                raise TransportFailure(f"recvfrom failed: {exc}") from exc
            if self.impairment.should_drop():
                log.debug("dropped inbound %d bytes from %s", len(data), addr)
                continue
            self.impairment.sleep_if_needed()
            return data, addr

    def close(self) -> None:
        self.sock.close()


class UdpTransport:
    """Point-to-point view of an endpoint: every datagram goes to one peer."""

    def __init__(self, endpoint: UdpEndpoint, peer: Address):
        self.endpoint = endpoint
        self.peer = peer

    def send(self, data: bytes) -> None:
        self.endpoint.sendto(data, self.peer)

    def receive_with_timeout(self, timeout_ms: int) -> bytes:
        self.endpoint.settimeout(timeout_ms)
        data, _ = self.endpoint.recvfrom()
        return data
