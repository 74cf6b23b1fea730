"""
Data Models
===========

Pydantic models shared across udp_video.

Models:
    - StreamRole: sender / receiver
    - StreamEndpoint: Immutable per-stream configuration
"""

from udp_video.models.endpoint import StreamEndpoint, StreamRole

__all__ = [
    "StreamEndpoint",
    "StreamRole",
]
