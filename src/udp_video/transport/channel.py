"""
Datagram Channel
================

Unreliable, message-oriented UDP endpoint built on asyncio.

This module provides the DatagramChannel class which:
    - Binds a local port for receiving (receiver side)
    - Connects to a remote address for sending (sender side)
    - Sends one payload per datagram, fire-and-forget
    - Receives exactly one datagram per call, with a timeout

Design Rules:
    - No acknowledgement, retry, ordering or reassembly
    - Transient send errors are logged, not raised
    - Backlog is bounded; oldest datagrams are dropped first
    - A timeout is an expected outcome, signalled with TransportTimeout
"""

import asyncio
import logging
from typing import Optional, Tuple

from udp_video.transport.buffer import DatagramBuffer


logger = logging.getLogger(__name__)


class BindError(Exception):
    """Raised when a local endpoint could not be created or bound."""
    pass


class ChannelClosedError(Exception):
    """Raised when sending or receiving on a channel that is gone."""
    pass


class TransportTimeout(Exception):
    """Raised by receive() when no datagram arrived within the timeout."""
    pass


class ChannelMetrics:
    """Counters for DatagramChannel observability."""

    __slots__ = (
        "datagrams_sent",
        "datagrams_received",
        "bytes_sent",
        "bytes_received",
        "send_errors",
    )

    def __init__(self) -> None:
        self.datagrams_sent: int = 0
        self.datagrams_received: int = 0
        self.bytes_sent: int = 0
        self.bytes_received: int = 0
        self.send_errors: int = 0

    def to_dict(self) -> dict:
        return {
            "datagrams_sent": self.datagrams_sent,
            "datagrams_received": self.datagrams_received,
            "bytes_sent": self.bytes_sent,
            "bytes_received": self.bytes_received,
            "send_errors": self.send_errors,
        }


class _ChannelProtocol(asyncio.DatagramProtocol):
    """asyncio callbacks feeding a DatagramBuffer."""

    def __init__(self, channel: "DatagramChannel") -> None:
        self._channel = channel

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self._channel._on_datagram(data)

    def error_received(self, exc: Exception) -> None:
        self._channel._on_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._channel._on_lost(exc)


class DatagramChannel:
    """
    One UDP binding, owned by exactly one session.

    Create instances with the bind() or connect() coroutines; the
    constructor only wires state together.

    Attributes:
        name: Label used in log messages
        remote_address: Destination for send(), or None (receive-only)
        metrics: Operational counters
        last_error: Most recent socket error reported by the transport

    Example:
        async with await DatagramChannel.bind(4000) as channel:
            try:
                payload = await channel.receive(timeout=1.0)
            except TransportTimeout:
                ...

        channel = await DatagramChannel.connect("192.168.1.3", 4000)
        channel.send(payload)
        channel.close()
    """

    def __init__(
        self,
        name: str = "channel",
        remote_address: Optional[Tuple[str, int]] = None,
        queue_size: int = 4,
    ) -> None:
        self.name = name
        self.remote_address = remote_address
        self.metrics = ChannelMetrics()

        self._buffer = DatagramBuffer(maxsize=queue_size)
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._closed: bool = False
        self.last_error: Optional[Exception] = None

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    async def bind(
        cls,
        local_port: int,
        host: str = "0.0.0.0",
        queue_size: int = 4,
        name: Optional[str] = None,
    ) -> "DatagramChannel":
        """
        Allocate a receive-capable endpoint.

        Args:
            local_port: Port to listen on (0 = OS-assigned)
            host: Local interface address
            queue_size: Receive backlog before oldest datagrams are dropped
            name: Log label

        Returns:
            Bound channel

        Raises:
            BindError: Port in use, or the socket could not be created
        """
        channel = cls(name=name or f"udp:{local_port}", queue_size=queue_size)
        loop = asyncio.get_running_loop()

        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ChannelProtocol(channel),
                local_addr=(host, local_port),
            )
        except OSError as e:
            raise BindError(f"Could not bind UDP {host}:{local_port}: {e}") from e

        channel._transport = transport
        logger.info(f"[{channel.name}] Listening on {channel.local_address}")
        return channel

    @classmethod
    async def connect(
        cls,
        remote_host: str,
        remote_port: int,
        local_port: int = 0,
        queue_size: int = 4,
        name: Optional[str] = None,
    ) -> "DatagramChannel":
        """
        Allocate a send-capable endpoint.

        Reachability is not checked; UDP has no handshake.

        Args:
            remote_host: Destination host name or address
            remote_port: Destination port
            local_port: Source port (0 = OS-assigned)
            queue_size: Receive backlog for replies (unused by senders)
            name: Log label

        Raises:
            BindError: Address could not be resolved or socket not created
        """
        address = (remote_host, remote_port)
        channel = cls(
            name=name or f"udp->{remote_host}:{remote_port}",
            remote_address=address,
            queue_size=queue_size,
        )
        loop = asyncio.get_running_loop()

        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ChannelProtocol(channel),
                local_addr=("0.0.0.0", local_port) if local_port else None,
                remote_addr=address,
            )
        except OSError as e:
            raise BindError(
                f"Could not open UDP channel to {remote_host}:{remote_port}: {e}"
            ) from e

        channel._transport = transport
        logger.info(f"[{channel.name}] Sending to {remote_host}:{remote_port}")
        return channel

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def local_address(self) -> Optional[Tuple[str, int]]:
        """(host, port) actually bound, including OS-assigned ports."""
        if self._transport is None:
            return None
        sockname = self._transport.get_extra_info("sockname")
        return (sockname[0], sockname[1]) if sockname else None

    @property
    def buffer(self) -> DatagramBuffer:
        return self._buffer

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    def send(self, payload: bytes) -> bool:
        """
        Send one datagram, best effort.

        A write the kernel refuses (EMSGSIZE, ECONNREFUSED) reaches
        error_received() before sendto() returns and is not counted as
        sent. A write queued behind a busy socket counts as sent.

        Args:
            payload: Entire datagram body

        Returns:
            True if the datagram was handed to the kernel

        Raises:
            ChannelClosedError: If the channel has been closed
        """
        if self._closed or self._transport is None:
            raise ChannelClosedError(f"[{self.name}] send on closed channel")
        if self.remote_address is None:
            raise ChannelClosedError(f"[{self.name}] channel has no remote address")

        errors_before = self.metrics.send_errors
        self._transport.sendto(payload)
        if self.metrics.send_errors != errors_before:
            return False

        self.metrics.datagrams_sent += 1
        self.metrics.bytes_sent += len(payload)
        return True

    async def receive(self, timeout: float) -> bytes:
        """
        Wait for exactly one datagram.

        Args:
            timeout: Maximum seconds to wait

        Returns:
            Payload of one datagram (may be b"")

        Raises:
            TransportTimeout: Nothing arrived within timeout
            ChannelClosedError: The channel was closed
        """
        if self._closed:
            raise ChannelClosedError(f"[{self.name}] receive on closed channel")

        payload = await self._buffer.get(timeout=timeout)

        if payload is None:
            if self._closed:
                raise ChannelClosedError(f"[{self.name}] channel closed while waiting")
            raise TransportTimeout(f"[{self.name}] no datagram within {timeout}s")

        return payload

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            self._transport.close()
        dropped = self._buffer.clear()
        logger.info(f"[{self.name}] Channel closed (discarded {dropped} pending)")

    async def __aenter__(self) -> "DatagramChannel":
        return self

    async def __aexit__(self, *args) -> None:
        self.close()

    def metrics_dict(self) -> dict:
        return {
            **self.metrics.to_dict(),
            "buffer": self._buffer.metrics(),
        }

    # -------------------------------------------------------------------------
    # Protocol callbacks
    # -------------------------------------------------------------------------

    def _on_datagram(self, data: bytes) -> None:
        if self._closed:
            return
        self.metrics.datagrams_received += 1
        self.metrics.bytes_received += len(data)
        self._buffer.put_nowait(data)

    def _on_error(self, exc: Exception) -> None:
        # ICMP port-unreachable etc. Expected while the peer is down.
        self.metrics.send_errors += 1
        self.last_error = exc
        if self.metrics.send_errors == 1:
            logger.warning(f"[{self.name}] Transport error: {exc}")
        else:
            logger.debug(f"[{self.name}] Transport error: {exc}")

    def _on_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            logger.error(f"[{self.name}] Socket lost: {exc}")
        self._closed = True
