from __future__ import annotations

from typing import Optional


class ProtocolError(Exception):
    pass


class MalformedPacket(ProtocolError, ValueError):
    """A packet failed decoding or one of the structural rules."""

    def __init__(self, message: str, rule: Optional[object] = None):
        super().__init__(message)
        self.rule = rule


class DecodeError(MalformedPacket):
    pass


class TransportTimeout(ProtocolError, TimeoutError):
    pass


class TransportFailure(ProtocolError):
    pass


class RetriesExhausted(ProtocolError):
    def __init__(self, attempts: int):
        super().__init__(f"no response after {attempts} transmissions")
        self.attempts = attempts


class SegmentRejected(ProtocolError):
    def __init__(self, reason: int, segment_no: int):
        super().__init__(f"segment {segment_no} rejected with reason 0x{reason:04X}")
        self.reason = reason
        self.segment_no = segment_no


class InputFileError(ValueError):
    def __init__(self, path: str, line_no: int, message: str):
        super().__init__(f"{path}:{line_no}: {message}")
        self.path = path
        self.line_no = line_no
