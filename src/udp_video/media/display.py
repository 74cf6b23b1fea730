"""
Frame Display
=============

Display sinks for the receiver side (and sender preview).

Components:
    - FrameSink: Protocol for anything that can show a BGR frame
    - WindowDisplay: OpenCV HighGUI window, one per display_id
    - HeadlessDisplay: Keeps the last frame in memory, renders nothing
    - load_fallback_image: Placeholder shown when no stream is arriving

Design Rules:
    - show() with an empty image is a no-op, never an error
    - Each sink owns exactly one window identity
    - All HighGUI calls happen on the event loop thread
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np

from udp_video.media.codec import is_empty


logger = logging.getLogger(__name__)


class FrameSink(Protocol):
    """Protocol for display backends."""

    def show(self, image: np.ndarray) -> None:
        """Render one frame. Empty images must be ignored."""
        ...

    def close(self) -> None:
        ...


class WindowDisplay:
    """
    OpenCV window sink.

    The window is created lazily on the first non-empty frame, so a
    session that never produces output never opens a window.

    cv2.waitKey() blocks the event loop shared by every session, so each
    shown frame stalls all sessions for delay_ms. Keep it at 1 with
    several windows; larger values only suit a single receiver.

    Attributes:
        window_name: HighGUI window identity (StreamEndpoint.display_id)
        delay_ms: cv2.waitKey delay after each frame
    """

    def __init__(self, window_name: str, delay_ms: int = 1) -> None:
        if delay_ms < 1:
            raise ValueError("delay_ms must be >= 1")

        self.window_name = window_name
        self.delay_ms = delay_ms
        self._created = False

    def show(self, image: np.ndarray) -> None:
        if is_empty(image):
            return

        if not self._created:
            cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
            self._created = True

        cv2.imshow(self.window_name, image)
        cv2.waitKey(self.delay_ms)

    def close(self) -> None:
        if self._created:
            try:
                cv2.destroyWindow(self.window_name)
            except cv2.error as e:
                logger.debug(f"destroyWindow({self.window_name}) failed: {e}")
            self._created = False


class HeadlessDisplay:
    """
    In-memory sink for servers without a screen.

    Keeps the last shown frame and a counter, which also makes it the
    natural sink for tests.
    """

    def __init__(self, window_name: str = "headless") -> None:
        self.window_name = window_name
        self.frames_shown: int = 0
        self.last_image: Optional[np.ndarray] = None
        self.closed: bool = False

    def show(self, image: np.ndarray) -> None:
        if is_empty(image):
            return
        self.last_image = image
        self.frames_shown += 1

    def close(self) -> None:
        self.closed = True


def placeholder_image(
    size: Tuple[int, int] = (480, 640),
    text: str = "NO SIGNAL",
) -> np.ndarray:
    """
    Build a plain placeholder frame.

    Args:
        size: (height, width) in pixels
        text: Caption drawn in the centre

    Returns:
        BGR image
    """
    height, width = size
    image = np.full((height, width, 3), 32, dtype=np.uint8)

    font = cv2.FONT_HERSHEY_SIMPLEX
    (text_w, text_h), _ = cv2.getTextSize(text, font, 1.5, 2)
    origin = ((width - text_w) // 2, (height + text_h) // 2)
    cv2.putText(image, text, origin, font, 1.5, (200, 200, 200), 2)

    return image


def load_fallback_image(path: Optional[str] = None) -> np.ndarray:
    """
    Load the image shown while no stream is arriving.

    Falls back to a generated placeholder if the path is unset or unreadable.

    Args:
        path: Image file path (any format cv2.imread understands)

    Returns:
        BGR image, never empty
    """
    if path:
        if Path(path).exists():
            image = cv2.imread(path, cv2.IMREAD_COLOR)
            if not is_empty(image):
                logger.info(f"Loaded fallback image: {path}")
                return image
            logger.warning(f"Fallback image unreadable, using placeholder: {path}")
        else:
            logger.warning(f"Fallback image not found, using placeholder: {path}")

    return placeholder_image()
