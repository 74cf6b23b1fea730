"""
Test Configuration
==================

Pytest fixtures and test configuration for udp_video.

Async code is driven with asyncio.run() from plain test functions.
Network tests use UDP on 127.0.0.1 only.
"""

import socket
import threading
import time

import numpy as np
import pytest

from udp_video.media.capture import CaptureUnavailable
from udp_video.models.endpoint import StreamEndpoint, StreamRole
from udp_video.session.base import SessionOptions


def _free_udp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FailingSource:
    """Source whose camera is never available."""

    def __init__(self) -> None:
        self.reads = 0
        self.closed = False

    def read(self):
        self.reads += 1
        raise CaptureUnavailable("no camera attached")

    def close(self) -> None:
        self.closed = True


class SlowSource:
    """Source whose read() blocks like a camera waiting for exposure."""

    def __init__(self, delay: float = 0.3) -> None:
        self.delay = delay
        self.events = []
        self.read_started = threading.Event()
        self._in_read = False

    def read(self):
        self._in_read = True
        self.events.append("read-start")
        self.read_started.set()
        time.sleep(self.delay)
        self.events.append("read-end")
        self._in_read = False
        return np.zeros((48, 64, 3), dtype=np.uint8)

    def close(self) -> None:
        self.events.append(f"close(in_read={self._in_read})")


class FixedPayloadCodec:
    """Codec stand-in that always produces a payload of a given size."""

    def __init__(self, size: int) -> None:
        self.payload = b"x" * size

    def encode(self, image) -> bytes:
        return self.payload


@pytest.fixture
def free_port():
    """Return a callable producing currently-unused UDP ports."""
    return _free_udp_port


@pytest.fixture
def fast_options():
    """Session options with short timeouts for tests."""
    return SessionOptions(
        receive_timeout=0.05,
        bind_host="127.0.0.1",
        capture_backoff=0.01,
        log_every_n_frames=0,
    )


@pytest.fixture
def receiver_endpoint(free_port):
    """Factory for receiver endpoints on free loopback ports."""

    def make(name: str = "rx", port: int = 0, **kwargs) -> StreamEndpoint:
        return StreamEndpoint(
            name=name,
            role=StreamRole.RECEIVER,
            local_port=port or free_port(),
            display_id=f"window-{name}",
            **kwargs,
        )

    return make


@pytest.fixture
def sender_endpoint():
    """Factory for sender endpoints targeting loopback."""

    def make(port: int, name: str = "tx", **kwargs) -> StreamEndpoint:
        kwargs.setdefault("quality", 60)
        kwargs.setdefault("scale", 1.0)
        return StreamEndpoint(
            name=name,
            role=StreamRole.SENDER,
            remote_host="127.0.0.1",
            remote_port=port,
            **kwargs,
        )

    return make


@pytest.fixture
def failing_source():
    return FailingSource()


@pytest.fixture
def slow_source():
    return SlowSource(delay=0.3)


@pytest.fixture
def fixed_payload_codec():
    """Factory for codecs that emit a payload of exactly `size` bytes."""
    return FixedPayloadCodec


@pytest.fixture
def gradient_image():
    """Smooth 1920x1080 BGR test image."""
    xs = np.linspace(0, 255, 1920, dtype=np.float32)
    ys = np.linspace(0, 255, 1080, dtype=np.float32)
    blue = np.tile(xs, (1080, 1))
    green = np.tile(ys[:, None], (1, 1920))
    red = (blue + green) / 2
    return np.dstack([blue, green, red]).astype(np.uint8)


@pytest.fixture
def noise_image():
    """Incompressible 640x480 BGR image."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(480, 640, 3), dtype=np.uint8)
