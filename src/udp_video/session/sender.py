"""
Sender Session
==============

Capture -> encode -> package -> send, one datagram per frame.

Loop Semantics:
    - No rate limit beyond the source's own frame rate
    - A failed capture yields nothing to send this cycle, then a short pause
    - The first encoded frame is a size check: if it exceeds max_datagram_size,
      or the kernel refuses it with EMSGSIZE, the configuration is wrong
      and the session terminates with ERROR
    - Later oversized frames are skipped and counted, never truncated
    - A frame counts as sent only once the socket accepted it
"""

import asyncio
import errno
import logging
from typing import Optional

import numpy as np

from udp_video.media.capture import CaptureUnavailable, FrameSource
from udp_video.media.codec import EMPTY_IMAGE, FrameCodec, is_empty
from udp_video.media.display import FrameSink
from udp_video.media.overlay import SENDER_COLOR, SENDER_ORIGIN, draw_timestamp
from udp_video.models.endpoint import StreamEndpoint
from udp_video.session.base import SessionOptions, StreamSession
from udp_video.session.state import SessionState
from udp_video.transport.channel import DatagramChannel
from udp_video.transport.protocol import IPV4_MAX_PAYLOAD, FrameTooLargeError, package


logger = logging.getLogger(__name__)


class SenderSession(StreamSession):
    """
    Streams frames from one source to one remote address.

    Attributes:
        source: Frame source (read() is called in a worker thread)
        codec: JPEG codec at the endpoint's quality
        preview: Optional local sink showing what is being sent

    Example:
        session = SenderSession(endpoint, source=CameraCapture(0, scale=0.6))
        task = asyncio.create_task(session.run())
        ...
        session.stop()
        await task
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        source: FrameSource,
        preview: Optional[FrameSink] = None,
        codec: Optional[FrameCodec] = None,
        options: Optional[SessionOptions] = None,
    ) -> None:
        if not endpoint.is_sender:
            raise ValueError(f"{endpoint.name} is not a sender endpoint")

        super().__init__(endpoint, options)

        self.source = source
        self.preview = preview
        self.codec = codec or FrameCodec(quality=endpoint.quality)
        self._first_frame_sent: bool = False
        self._pending_read: Optional[asyncio.Future] = None

    async def _open(self) -> None:
        remote_host, remote_port = self.endpoint.remote_address
        self.channel = await DatagramChannel.connect(
            remote_host,
            remote_port,
            local_port=self.endpoint.local_port,
            name=self.name,
        )
        self._set_state(SessionState.CONNECTED)

    async def _loop(self) -> None:
        while self._running:
            frame = await self._capture()
            if is_empty(frame):
                continue
            self.send_frame(frame)

    async def _capture(self) -> np.ndarray:
        """Read one frame off the event loop; empty on capture failure."""
        # Shielded: after cancellation _settle() waits for the thread call.
        self._pending_read = asyncio.ensure_future(asyncio.to_thread(self.source.read))
        try:
            frame = await asyncio.shield(self._pending_read)
        except CaptureUnavailable as e:
            self.metrics.capture_failures += 1
            if self.metrics.capture_failures == 1:
                logger.error(f"[{self.name}] Capture unavailable: {e}")
            else:
                logger.debug(f"[{self.name}] Capture unavailable: {e}")
            await self._pause(self.options.capture_backoff)
            return EMPTY_IMAGE

        self.metrics.frames_captured += 1
        return frame

    def send_frame(self, frame: np.ndarray) -> bool:
        """
        Encode and transmit one frame.

        Args:
            frame: Captured BGR image (annotated in place if overlay is on)

        Returns:
            True if the socket accepted the datagram

        Raises:
            FrameTooLargeError: If the first frame does not fit a datagram
        """
        if is_empty(frame):
            return False

        if self.endpoint.overlay:
            draw_timestamp(
                frame,
                origin=SENDER_ORIGIN,
                color=SENDER_COLOR,
                offset_ms=self.options.clock_offset_ms,
            )

        if self.preview is not None:
            self.preview.show(frame)

        encoded = self.codec.encode(frame)
        if not encoded:
            self.metrics.encode_failures += 1
            return False

        first_frame = not self._first_frame_sent
        self._first_frame_sent = True

        try:
            message = package(encoded, self.options.max_datagram_size)
        except FrameTooLargeError as e:
            if first_frame:
                raise
            self.metrics.oversize_skipped += 1
            logger.warning(f"[{self.name}] Skipping frame: {e}")
            return False

        if not self.channel.send(message):
            self.metrics.send_failures += 1
            error = self.channel.last_error
            if getattr(error, "errno", None) == errno.EMSGSIZE:
                if first_frame:
                    raise FrameTooLargeError(len(message), IPV4_MAX_PAYLOAD)
                self.metrics.oversize_skipped += 1
            return False

        self.metrics.frames_sent += 1
        self.metrics.bytes_sent += len(message)
        self.metrics.last_payload_size = len(message)

        if self._should_log(self.metrics.frames_sent):
            logger.info(
                f"[{self.name}] Sent {self.metrics.frames_sent} frames, "
                f"last payload {len(message)} bytes, "
                f"skipped {self.metrics.oversize_skipped} oversized"
            )

        return True

    async def _settle(self) -> None:
        pending, self._pending_read = self._pending_read, None
        if pending is None:
            return

        if not pending.done():
            logger.debug(f"[{self.name}] Waiting for in-flight capture before release")
            await asyncio.wait({pending})
        if not pending.cancelled():
            # Retrieve so a late CaptureUnavailable is not reported as unhandled.
            pending.exception()

    def _close_media(self) -> None:
        self.source.close()
        if self.preview is not None:
            self.preview.close()
