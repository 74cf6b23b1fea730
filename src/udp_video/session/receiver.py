"""
Receiver Session
================

Receive -> unpackage -> decode -> display, latest frame wins.

Loop Semantics:
    - Each receive waits at most options.receive_timeout seconds
    - Timeout or an empty datagram: show the fallback image
    - Undecodable datagram: show nothing new (previous frame stays up)
    - Decoded frame: overwrite the last-frame slot and show it
"""

import logging
from typing import Optional

import numpy as np

from udp_video.media.codec import FrameCodec, is_empty
from udp_video.media.display import FrameSink, placeholder_image
from udp_video.media.overlay import RECEIVER_COLOR, RECEIVER_ORIGIN, draw_timestamp
from udp_video.models.endpoint import StreamEndpoint
from udp_video.session.base import SessionOptions, StreamSession
from udp_video.session.state import SessionState
from udp_video.transport.channel import DatagramChannel, TransportTimeout
from udp_video.transport.protocol import unpackage


logger = logging.getLogger(__name__)


class ReceiverSession(StreamSession):
    """
    Listens on one port and renders into one display.

    Attributes:
        display: Sink for decoded frames and the fallback image
        fallback_image: Shown whenever no frame arrives in time
        codec: JPEG decoder
        last_frame: Most recently decoded frame, or None
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        display: FrameSink,
        fallback_image: Optional[np.ndarray] = None,
        codec: Optional[FrameCodec] = None,
        options: Optional[SessionOptions] = None,
    ) -> None:
        if endpoint.is_sender:
            raise ValueError(f"{endpoint.name} is not a receiver endpoint")

        super().__init__(endpoint, options)

        self.display = display
        self.fallback_image = (
            fallback_image if not is_empty(fallback_image) else placeholder_image()
        )
        self.codec = codec or FrameCodec(quality=endpoint.quality)
        self.last_frame: Optional[np.ndarray] = None

    async def _open(self) -> None:
        self.channel = await DatagramChannel.bind(
            self.endpoint.local_port,
            host=self.options.bind_host,
            queue_size=self.options.receive_queue_size,
            name=self.name,
        )
        self._set_state(SessionState.BOUND)

    async def _loop(self) -> None:
        timeout = self.options.receive_timeout

        while self._running:
            try:
                message = await self.channel.receive(timeout)
            except TransportTimeout:
                self.metrics.timeouts += 1
                self.show_fallback()
                continue

            self.handle_message(message)

    def handle_message(self, message: bytes) -> bool:
        """
        Process one datagram body.

        Returns:
            True if a new frame was displayed
        """
        self.metrics.datagrams_received += 1

        encoded = unpackage(message)
        if not encoded:
            self.metrics.empty_payloads += 1
            self.show_fallback()
            return False

        image = self.codec.decode(encoded)
        if is_empty(image):
            self.metrics.decode_failures += 1
            logger.debug(f"[{self.name}] Dropped undecodable {len(encoded)}-byte datagram")
            return False

        if self.endpoint.overlay:
            draw_timestamp(image, origin=RECEIVER_ORIGIN, color=RECEIVER_COLOR)

        self.last_frame = image
        self.display.show(image)
        self.metrics.frames_displayed += 1

        if self._should_log(self.metrics.frames_displayed):
            logger.info(
                f"[{self.name}] Displayed {self.metrics.frames_displayed} frames, "
                f"{self.metrics.timeouts} timeouts, "
                f"{self.metrics.decode_failures} undecodable"
            )

        return True

    def show_fallback(self) -> None:
        self.display.show(self.fallback_image)
        self.metrics.fallbacks_shown += 1

    def _close_media(self) -> None:
        self.display.close()
