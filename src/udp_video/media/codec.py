"""
Frame Codec
===========

JPEG compression of captured frames and decoding of received payloads.

Design Rules:
    - This is the ONLY place in the codebase that encodes or decodes images
    - Never raises on bad input: encode returns b"", decode returns EMPTY_IMAGE
    - Stateless apart from the configured quality
"""

import logging
from typing import Optional

import cv2
import numpy as np


logger = logging.getLogger(__name__)


JPEG_EXTENSION = ".jpg"

# Zero-size BGR image. Returned by decode() for empty or malformed payloads.
EMPTY_IMAGE = np.empty((0, 0, 3), dtype=np.uint8)
EMPTY_IMAGE.flags.writeable = False


class CodecError(Exception):
    """Raised internally when a payload cannot be decoded."""
    pass


def is_empty(image: Optional[np.ndarray]) -> bool:
    """True for None, the empty sentinel, or any image with a zero dimension."""
    if image is None:
        return True
    if image.ndim < 2:
        return True
    return image.shape[0] == 0 or image.shape[1] == 0


class FrameCodec:
    """
    Lossy JPEG codec for video frames.

    Attributes:
        quality: JPEG quality in [0, 100]

    Example:
        codec = FrameCodec(quality=60)
        payload = codec.encode(frame)
        image = codec.decode(payload)
        if is_empty(image):
            ...
    """

    def __init__(self, quality: int = 60) -> None:
        """
        Initialize codec.

        Args:
            quality: JPEG quality. Must be in [0, 100].
        """
        if not 0 <= quality <= 100:
            raise ValueError("quality must be in [0, 100]")

        self.quality = quality
        self._params = [cv2.IMWRITE_JPEG_QUALITY, quality]

    def encode(self, image: Optional[np.ndarray]) -> bytes:
        """
        Compress an image to JPEG bytes.

        Args:
            image: BGR image as np.ndarray (H, W, 3), dtype=uint8

        Returns:
            JPEG bytes, or b"" if the image is structurally invalid
        """
        if is_empty(image):
            return b""

        try:
            ok, buffer = cv2.imencode(JPEG_EXTENSION, image, self._params)
        except cv2.error as e:
            logger.warning(f"JPEG encode failed for shape {image.shape}: {e}")
            return b""

        if not ok:
            logger.warning(f"JPEG encode returned failure for shape {image.shape}")
            return b""

        return buffer.tobytes()

    def decode(self, data: bytes) -> np.ndarray:
        """
        Decode JPEG bytes to a BGR image.

        Args:
            data: Payload bytes as received from the transport

        Returns:
            BGR image (H, W, 3), or EMPTY_IMAGE for empty/malformed input
        """
        if not data:
            return EMPTY_IMAGE

        try:
            return self._decode_strict(data)
        except CodecError as e:
            logger.debug(f"Discarding undecodable payload: {e}")
            return EMPTY_IMAGE

    def _decode_strict(self, data: bytes) -> np.ndarray:
        nparr = np.frombuffer(data, np.uint8)

        try:
            bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise CodecError(f"cv2.imdecode failed on {len(data)} bytes: {e}")

        if bgr is None:
            raise CodecError(f"cv2.imdecode returned None for {len(data)} bytes")

        if bgr.ndim != 3 or bgr.shape[2] != 3:
            raise CodecError(f"Invalid image shape: {bgr.shape}")

        if is_empty(bgr):
            raise CodecError("Decoded image has zero dimensions")

        return bgr
