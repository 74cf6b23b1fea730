"""
Frame Capture
=============

Frame sources for the sender side.

This module provides a black-box abstraction for acquisition.
Sessions consume ONLY the frames produced here, never device handles.

Components:
    - FrameSource: Protocol for anything that yields raw BGR frames
    - CameraCapture: OpenCV camera (cv2.VideoCapture)
    - SyntheticSource: Deterministic test pattern, no hardware needed

Design Rules:
    - read() is blocking and is always called from a worker thread
    - A source that cannot produce a frame raises CaptureUnavailable
    - Downscaling happens here, before the codec sees the frame
"""

import logging
import time
from typing import Optional, Protocol

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CaptureUnavailable(Exception):
    """Raised when a source cannot produce a frame this cycle."""
    pass


def downscale(image: np.ndarray, scale: float) -> np.ndarray:
    """
    Resize an image by a factor in (0, 1].

    Args:
        image: BGR image
        scale: Scale factor. 1.0 returns the image unchanged.

    Returns:
        Resized image (never smaller than 1x1)
    """
    if not 0 < scale <= 1.0:
        raise ValueError("scale must be in (0, 1]")
    if scale >= 1.0:
        return image

    height, width = image.shape[:2]
    size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


class FrameSource(Protocol):
    """
    Protocol for frame sources.

    Implementations:
        - CameraCapture (production)
        - SyntheticSource (tests, demos)
    """

    def read(self) -> np.ndarray:
        """
        Block until the next frame is available.

        Returns:
            BGR image (H, W, 3), dtype=uint8

        Raises:
            CaptureUnavailable: If no frame could be produced
        """
        ...

    def close(self) -> None:
        ...


class CameraCapture:
    """
    OpenCV camera source.

    The device is opened on construction. If it cannot be opened, every
    read() raises CaptureUnavailable; the session decides how to react.

    Attributes:
        camera: Device index passed to cv2.VideoCapture
        scale: Downscale factor in (0, 1]
    """

    def __init__(self, camera: int = 0, scale: float = 1.0) -> None:
        if not 0 < scale <= 1.0:
            raise ValueError("scale must be in (0, 1]")

        self.camera = camera
        self.scale = scale
        self._capture = cv2.VideoCapture(camera)

        if self._capture.isOpened():
            logger.info(f"Camera {camera} opened (scale={scale})")
        else:
            logger.error(f"Camera {camera} could not be opened")

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def read(self) -> np.ndarray:
        if not self.is_open:
            raise CaptureUnavailable(f"Camera {self.camera} not available")

        ok, image = self._capture.read()
        if not ok or image is None:
            raise CaptureUnavailable(f"Camera {self.camera} returned no frame")

        return downscale(image, self.scale)

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.camera} released")


class SyntheticSource:
    """
    Deterministic test-pattern source.

    Produces a smooth colour gradient with a moving bar so successive
    frames differ. Useful for loopback tests and camera-less demos.

    Attributes:
        width: Frame width before scaling
        height: Frame height before scaling
        scale: Downscale factor in (0, 1]
        fps: Frame rate to pace reads at (0 = unpaced)
        frame_count: Frames produced so far
    """

    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        scale: float = 1.0,
        fps: float = 0.0,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("width and height must be positive")
        if not 0 < scale <= 1.0:
            raise ValueError("scale must be in (0, 1]")
        if fps < 0:
            raise ValueError("fps must be >= 0")

        self.width = width
        self.height = height
        self.scale = scale
        self.fps = fps
        self.frame_count = 0
        self._base: Optional[np.ndarray] = None

    def _gradient(self) -> np.ndarray:
        if self._base is None:
            xs = np.linspace(0, 255, self.width, dtype=np.float32)
            ys = np.linspace(0, 255, self.height, dtype=np.float32)
            blue = np.tile(xs, (self.height, 1))
            green = np.tile(ys[:, None], (1, self.width))
            red = (blue + green) / 2
            self._base = np.dstack([blue, green, red]).astype(np.uint8)
        return self._base

    def read(self) -> np.ndarray:
        if self.fps > 0:
            # Paced like a real camera; read() runs off the event loop.
            time.sleep(1.0 / self.fps)

        image = self._gradient().copy()
        bar_width = max(1, self.width // 20)
        x = (self.frame_count * bar_width) % self.width
        image[:, x:x + bar_width] = 255
        self.frame_count += 1

        return downscale(image, self.scale)

    def close(self) -> None:
        pass
