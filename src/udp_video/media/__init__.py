"""
Media Module
============

Everything that touches pixels: capture, codec, overlay and display.

Components:
    - FrameCodec: JPEG encode/decode with an empty-image sentinel
    - CameraCapture, SyntheticSource: Frame sources
    - WindowDisplay, HeadlessDisplay: Frame sinks
"""

from udp_video.media.codec import EMPTY_IMAGE, CodecError, FrameCodec, is_empty
from udp_video.media.capture import (
    CameraCapture,
    CaptureUnavailable,
    FrameSource,
    SyntheticSource,
    downscale,
)
from udp_video.media.display import (
    FrameSink,
    HeadlessDisplay,
    WindowDisplay,
    load_fallback_image,
    placeholder_image,
)


__all__ = [
    "EMPTY_IMAGE",
    "CodecError",
    "FrameCodec",
    "is_empty",
    "CameraCapture",
    "CaptureUnavailable",
    "FrameSource",
    "SyntheticSource",
    "downscale",
    "FrameSink",
    "HeadlessDisplay",
    "WindowDisplay",
    "load_fallback_image",
    "placeholder_image",
]
