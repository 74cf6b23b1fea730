"""
Stream Session Base
===================

Lifecycle shared by sender and receiver sessions.

A session owns exactly one StreamEndpoint, one DatagramChannel and its
own codec and display. Nothing is shared between sessions, so no locks
are needed.

Design Rules:
    - run() never raises; failures are recorded on the session and logged
    - BindError and channel failures terminate only this session
    - stop() is cooperative; the loop exits at its next suspension point
    - The channel is always closed when run() returns
    - Media is released only after in-flight worker-thread calls return
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from udp_video.models.endpoint import StreamEndpoint
from udp_video.session.state import SessionMetrics, SessionState, TerminationReason
from udp_video.transport.channel import BindError, ChannelClosedError, DatagramChannel
from udp_video.transport.protocol import (
    IPV4_MAX_PAYLOAD,
    MAX_DATAGRAM_SIZE,
    FrameTooLargeError,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionOptions:
    """
    Tuning shared by all sessions of a process.

    Attributes:
        receive_timeout: Seconds a receiver waits before showing the fallback
        max_datagram_size: Largest payload allowed on the wire
        receive_queue_size: Receiver backlog before oldest datagrams drop
        bind_host: Interface receivers bind to
        capture_backoff: Seconds a sender waits after a failed capture
        clock_offset_ms: Correction added to the sender's overlay timestamp
        log_every_n_frames: Periodic stats interval
    """

    receive_timeout: float = 1.0
    max_datagram_size: int = IPV4_MAX_PAYLOAD
    receive_queue_size: int = 4
    bind_host: str = "0.0.0.0"
    capture_backoff: float = 0.5
    clock_offset_ms: int = 0
    log_every_n_frames: int = 300

    def __post_init__(self) -> None:
        if self.receive_timeout <= 0:
            raise ValueError("receive_timeout must be positive")
        if not 0 < self.max_datagram_size <= MAX_DATAGRAM_SIZE:
            raise ValueError(f"max_datagram_size must be in (0, {MAX_DATAGRAM_SIZE}]")
        if self.receive_queue_size < 1:
            raise ValueError("receive_queue_size must be >= 1")
        if self.capture_backoff < 0:
            raise ValueError("capture_backoff must be >= 0")


class StreamSession:
    """
    Base class for one running stream.

    Subclasses implement _open() (create the channel) and _loop()
    (the Running state).

    Attributes:
        endpoint: Immutable stream configuration
        options: Process-wide tuning
        state: Current lifecycle state
        termination: Why the session ended, once TERMINATED
        error: One-line error description for ERROR terminations
        metrics: Per-session counters
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        options: Optional[SessionOptions] = None,
    ) -> None:
        self.endpoint = endpoint
        self.options = options or SessionOptions()

        self.state: SessionState = SessionState.IDLE
        self.termination: Optional[TerminationReason] = None
        self.error: Optional[str] = None
        self.metrics = SessionMetrics()
        self.channel: Optional[DatagramChannel] = None

        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._running_event: asyncio.Event = asyncio.Event()
        self._started_at: Optional[float] = None

    @property
    def name(self) -> str:
        return self.endpoint.name

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING

    async def run(self) -> None:
        """
        Open the channel and run until stopped, cancelled or failed.

        Never raises. Inspect state/termination/error afterwards.
        """
        # stop() may already have been called before the task got scheduled.
        self._running = not self._stop_event.is_set()
        self._started_at = time.time()

        logger.info(f"Session starting: {self.endpoint.describe()}")

        try:
            await self._open()
            self._set_state(SessionState.RUNNING)
            self._running_event.set()
            await self._loop()
            self._terminate(TerminationReason.NORMAL)
        except asyncio.CancelledError:
            logger.info(f"[{self.name}] Session cancelled")
            self._terminate(TerminationReason.NORMAL)
        except (BindError, ChannelClosedError, FrameTooLargeError) as e:
            self._terminate(TerminationReason.ERROR, str(e))
        except Exception as e:
            logger.exception(f"[{self.name}] Session failed")
            self._terminate(TerminationReason.ERROR, f"{type(e).__name__}: {e}")
        finally:
            self._running = False
            try:
                await self._settle()
            finally:
                self._release()

    def stop(self) -> None:
        """Ask the loop to exit at its next suspension point."""
        if self._running:
            logger.info(f"[{self.name}] Session stopping...")
        self._running = False
        self._stop_event.set()

    async def wait_running(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the session reaches RUNNING.

        Returns:
            True if RUNNING was reached, False on timeout or termination
        """
        if self.state is SessionState.TERMINATED:
            return False
        try:
            await asyncio.wait_for(self._running_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_running

    def snapshot(self) -> dict:
        """Serializable view for status endpoints."""
        return {
            "name": self.name,
            "role": self.endpoint.role.value,
            "state": self.state.value,
            "termination": self.termination.value if self.termination else None,
            "error": self.error,
            "uptime_seconds": (
                round(time.time() - self._started_at, 1)
                if self._started_at and self.state is SessionState.RUNNING
                else 0.0
            ),
            "metrics": self.metrics.to_dict(),
            "channel": self.channel.metrics_dict() if self.channel else None,
        }

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    async def _open(self) -> None:
        raise NotImplementedError

    async def _loop(self) -> None:
        raise NotImplementedError

    async def _settle(self) -> None:
        """Wait for work still running outside the loop before release."""
        pass

    def _close_media(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        logger.debug(f"[{self.name}] {self.state.value} -> {state.value}")
        self.state = state

    def _terminate(self, reason: TerminationReason, error: Optional[str] = None) -> None:
        if self.state is SessionState.TERMINATED:
            return
        self.termination = reason
        self.error = error
        self._set_state(SessionState.TERMINATED)
        self._running_event.set()

        if reason is TerminationReason.ERROR:
            logger.error(f"[{self.name}] Session terminated: {error}")
        else:
            logger.info(f"[{self.name}] Session stopped")

    def _release(self) -> None:
        if self.channel is not None:
            self.channel.close()
        try:
            self._close_media()
        except Exception as e:
            logger.warning(f"[{self.name}] Error releasing media: {e}")

    async def _pause(self, seconds: float) -> None:
        """Sleep, waking early if stop() is called."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _should_log(self, count: int) -> bool:
        n = self.options.log_every_n_frames
        return n > 0 and count > 0 and count % n == 0
