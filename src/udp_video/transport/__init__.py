"""
Transport Module
================

UDP channel and frame wire format.

This module provides the network layer for udp_video:
    - DatagramBuffer: Bounded receive queue (drops oldest on overflow)
    - DatagramChannel: asyncio UDP endpoint with bind/connect/send/receive
    - package / unpackage: One-frame-per-datagram wire format

Example:
    from udp_video.transport import DatagramChannel, TransportTimeout, unpackage

    channel = await DatagramChannel.bind(4000)
    try:
        encoded = unpackage(await channel.receive(timeout=1.0))
    except TransportTimeout:
        encoded = b""
"""

from udp_video.transport.buffer import DatagramBuffer
from udp_video.transport.channel import (
    BindError,
    ChannelClosedError,
    ChannelMetrics,
    DatagramChannel,
    TransportTimeout,
)
from udp_video.transport.protocol import (
    IPV4_MAX_PAYLOAD,
    MAX_DATAGRAM_SIZE,
    FrameTooLargeError,
    fits_datagram,
    package,
    unpackage,
)


__all__ = [
    "DatagramBuffer",
    "BindError",
    "ChannelClosedError",
    "ChannelMetrics",
    "DatagramChannel",
    "TransportTimeout",
    "IPV4_MAX_PAYLOAD",
    "MAX_DATAGRAM_SIZE",
    "FrameTooLargeError",
    "fits_datagram",
    "package",
    "unpackage",
]
