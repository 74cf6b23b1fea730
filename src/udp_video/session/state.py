"""
Session State
=============

Lifecycle states and counters for a stream session.

State Machine:
    IDLE -> BOUND (receiver) | CONNECTED (sender) -> RUNNING -> TERMINATED

    A session reaches TERMINATED exactly once, with a TerminationReason:
        NORMAL: stop() or cancellation
        ERROR:  bind/connect failure, channel failure, oversized first frame
"""

from enum import Enum


class SessionState(str, Enum):
    IDLE = "IDLE"
    BOUND = "BOUND"
    CONNECTED = "CONNECTED"
    RUNNING = "RUNNING"
    TERMINATED = "TERMINATED"


class TerminationReason(str, Enum):
    NORMAL = "NORMAL"
    ERROR = "ERROR"


class SessionMetrics:
    """Per-session counters. Sender and receiver use different subsets."""

    __slots__ = (
        "frames_captured",
        "frames_sent",
        "bytes_sent",
        "capture_failures",
        "encode_failures",
        "oversize_skipped",
        "send_failures",
        "last_payload_size",
        "datagrams_received",
        "frames_displayed",
        "fallbacks_shown",
        "timeouts",
        "empty_payloads",
        "decode_failures",
    )

    def __init__(self) -> None:
        # Sender
        self.frames_captured: int = 0
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.capture_failures: int = 0
        self.encode_failures: int = 0
        self.oversize_skipped: int = 0
        self.send_failures: int = 0
        self.last_payload_size: int = 0

        # Receiver
        self.datagrams_received: int = 0
        self.frames_displayed: int = 0
        self.fallbacks_shown: int = 0
        self.timeouts: int = 0
        self.empty_payloads: int = 0
        self.decode_failures: int = 0

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__slots__}
