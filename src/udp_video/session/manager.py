"""
Session Manager
===============

Launches and tracks N independent stream sessions.

Design Rules:
    - One asyncio task per session, no shared channels, codecs or displays
    - A session that fails (bind error, crash) never affects its siblings
    - Sessions are fixed at start(); there is no dynamic add/remove
    - stop() is cooperative first, then cancels anything still running
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional

from udp_video.media.capture import CameraCapture, FrameSource, SyntheticSource
from udp_video.media.display import (
    FrameSink,
    HeadlessDisplay,
    WindowDisplay,
    load_fallback_image,
)
from udp_video.models.endpoint import StreamEndpoint
from udp_video.session.base import SessionOptions, StreamSession
from udp_video.session.receiver import ReceiverSession
from udp_video.session.sender import SenderSession
from udp_video.session.state import SessionState


logger = logging.getLogger(__name__)


SourceFactory = Callable[[StreamEndpoint], FrameSource]
DisplayFactory = Callable[[str], FrameSink]


def camera_source_factory(endpoint: StreamEndpoint) -> FrameSource:
    return CameraCapture(camera=endpoint.camera, scale=endpoint.scale)


def synthetic_source_factory(
    width: int = 1920,
    height: int = 1080,
    fps: float = 30.0,
) -> SourceFactory:
    """Factory producing SyntheticSource instances at each endpoint's scale."""

    def factory(endpoint: StreamEndpoint) -> FrameSource:
        return SyntheticSource(width=width, height=height, scale=endpoint.scale, fps=fps)

    return factory


def display_factory(backend: str = "window", delay_ms: int = 1) -> DisplayFactory:
    """
    Build a display factory for a backend name.

    Args:
        backend: "window" (OpenCV HighGUI) or "none" (headless)
        delay_ms: waitKey delay for window displays

    Raises:
        ValueError: Unknown backend
    """
    if backend == "window":
        return lambda display_id: WindowDisplay(display_id, delay_ms=delay_ms)
    if backend == "none":
        return lambda display_id: HeadlessDisplay(display_id)
    raise ValueError(f"Unknown display backend: {backend}")


class SessionManager:
    """
    Owner of all sessions in the process.

    Attributes:
        options: Tuning passed to every session
        sessions: Sessions in start order
        failed: Endpoint name -> reason, for sessions that could not be built

    Example:
        manager = SessionManager(options, display=display_factory("none"))
        await manager.start(settings.sessions)
        ...
        await manager.stop()
    """

    def __init__(
        self,
        options: Optional[SessionOptions] = None,
        source: Optional[SourceFactory] = None,
        display: Optional[DisplayFactory] = None,
        fallback_image_path: Optional[str] = None,
    ) -> None:
        self.options = options or SessionOptions()
        self._source_factory = source or camera_source_factory
        self._display_factory = display or display_factory("window")
        self._fallback_image_path = fallback_image_path

        self.sessions: List[StreamSession] = []
        self.failed: Dict[str, str] = {}
        self._tasks: List[asyncio.Task] = []
        self._started: bool = False

    def create_session(self, endpoint: StreamEndpoint) -> StreamSession:
        """Build (but do not start) the session for one endpoint."""
        if endpoint.is_sender:
            preview = (
                self._display_factory(endpoint.display_id) if endpoint.preview else None
            )
            return SenderSession(
                endpoint,
                source=self._source_factory(endpoint),
                preview=preview,
                options=self.options,
            )

        return ReceiverSession(
            endpoint,
            display=self._display_factory(endpoint.display_id),
            fallback_image=load_fallback_image(self._fallback_image_path),
            options=self.options,
        )

    async def start(self, endpoints: Iterable[StreamEndpoint]) -> List[StreamSession]:
        """
        Launch one task per endpoint.

        Endpoints whose session cannot even be constructed are logged and
        recorded in `failed`; the rest start normally.

        Returns:
            The started sessions
        """
        if self._started:
            raise RuntimeError("SessionManager.start() may only be called once")
        self._started = True

        for endpoint in endpoints:
            try:
                session = self.create_session(endpoint)
            except Exception as e:
                self.failed[endpoint.name] = f"{type(e).__name__}: {e}"
                logger.error(f"Could not create session {endpoint.name}: {e}")
                continue

            self.sessions.append(session)
            self._tasks.append(
                asyncio.create_task(
                    self._run_isolated(session),
                    name=f"session:{endpoint.name}",
                )
            )

        logger.info(
            f"Started {len(self.sessions)} session(s), "
            f"{len(self.failed)} failed to initialize"
        )
        return self.sessions

    async def _run_isolated(self, session: StreamSession) -> None:
        # run() already records its own failures; this guards the manager
        # against anything escaping it.
        try:
            await session.run()
        except Exception as e:
            logger.exception(f"[{session.name}] Unhandled session error")
            self.failed[session.name] = f"{type(e).__name__}: {e}"

    async def wait(self) -> None:
        """Wait until every session has terminated."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop all sessions.

        Args:
            timeout: Seconds to wait for cooperative shutdown before
                cancelling the remaining tasks
        """
        logger.info("Stopping all sessions...")

        for session in self.sessions:
            session.stop()

        pending = [task for task in self._tasks if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                logger.warning(f"Cancelled {len(still_running)} session(s) after {timeout}s")
                await asyncio.gather(*still_running, return_exceptions=True)

        logger.info("All sessions stopped")

    def running_count(self) -> int:
        return sum(1 for s in self.sessions if s.state is SessionState.RUNNING)

    def snapshot(self) -> List[dict]:
        return [session.snapshot() for session in self.sessions]

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()
