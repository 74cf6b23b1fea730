"""
Session Module
==============

Sender and receiver stream sessions and the manager that runs them.

Example:
    from udp_video.session import SessionManager, SessionOptions, display_factory

    manager = SessionManager(
        SessionOptions(receive_timeout=1.0),
        display=display_factory("window"),
    )
    await manager.start(endpoints)
    await manager.wait()
"""

from udp_video.session.state import SessionMetrics, SessionState, TerminationReason
from udp_video.session.base import SessionOptions, StreamSession
from udp_video.session.sender import SenderSession
from udp_video.session.receiver import ReceiverSession
from udp_video.session.manager import (
    SessionManager,
    camera_source_factory,
    display_factory,
    synthetic_source_factory,
)


__all__ = [
    "SessionMetrics",
    "SessionState",
    "TerminationReason",
    "SessionOptions",
    "StreamSession",
    "SenderSession",
    "ReceiverSession",
    "SessionManager",
    "camera_source_factory",
    "display_factory",
    "synthetic_source_factory",
]
