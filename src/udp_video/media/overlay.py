"""
Timestamp Overlay
=================

Burns a wall-clock timestamp into a frame. Presentation only; nothing in
the transport depends on it.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple

import cv2
import numpy as np

from udp_video.media.codec import is_empty


# BGR
SENDER_COLOR = (0, 255, 0)
RECEIVER_COLOR = (0, 0, 255)

SENDER_ORIGIN = (16, 100)
RECEIVER_ORIGIN = (16, 40)

FONT = cv2.FONT_HERSHEY_COMPLEX_SMALL
FONT_SCALE = 1.6
THICKNESS = 2


def format_timestamp(now: datetime) -> str:
    """HH:MM:SS.mmm"""
    return now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"


def draw_timestamp(
    image: np.ndarray,
    origin: Tuple[int, int] = RECEIVER_ORIGIN,
    color: Tuple[int, int, int] = RECEIVER_COLOR,
    offset_ms: int = 0,
    now: Optional[datetime] = None,
) -> np.ndarray:
    """
    Draw the current time onto an image in place.

    Args:
        image: BGR image to annotate. Empty images are returned unchanged.
        origin: Bottom-left corner of the text in pixels
        color: BGR text color
        offset_ms: Clock correction added to the wall time
        now: Fixed time (tests); defaults to datetime.now()

    Returns:
        The same image object
    """
    if is_empty(image):
        return image

    stamp = (now or datetime.now()) + timedelta(milliseconds=offset_ms)
    cv2.putText(
        image,
        format_timestamp(stamp),
        origin,
        FONT,
        FONT_SCALE,
        color,
        THICKNESS,
    )
    return image
