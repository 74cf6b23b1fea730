"""
Session Tests
=============

Sender and receiver loops, fallback behaviour, cancellation and the
first-frame size check.
"""

import asyncio
import socket
import time

import numpy as np
import pytest

from udp_video.media.capture import SyntheticSource
from udp_video.media.codec import EMPTY_IMAGE, FrameCodec
from udp_video.media.display import HeadlessDisplay
from udp_video.session.base import SessionOptions
from udp_video.session.receiver import ReceiverSession
from udp_video.session.sender import SenderSession
from udp_video.session.state import SessionState, TerminationReason
from udp_video.transport.channel import DatagramChannel
from udp_video.transport.protocol import IPV4_MAX_PAYLOAD, MAX_DATAGRAM_SIZE


async def _run_for(session, seconds: float) -> None:
    task = asyncio.create_task(session.run())
    await asyncio.sleep(seconds)
    session.stop()
    await asyncio.wait_for(task, timeout=2.0)


class TestReceiverSession:
    """Tests for ReceiverSession."""

    def test_timeout_shows_fallback_each_interval(self, receiver_endpoint, fast_options):
        """With no sender the fallback is shown about once per timeout."""
        display = HeadlessDisplay()
        session = ReceiverSession(receiver_endpoint(), display, options=fast_options)

        started = time.monotonic()
        asyncio.run(_run_for(session, 0.4))
        elapsed = time.monotonic() - started

        # 0.05s timeout over ~0.4s
        assert session.metrics.timeouts >= 3
        assert session.metrics.fallbacks_shown == session.metrics.timeouts
        assert display.frames_shown == session.metrics.fallbacks_shown
        assert session.metrics.frames_displayed == 0
        assert elapsed < 0.4 + fast_options.receive_timeout + 0.5

    def test_stop_terminates_normally(self, receiver_endpoint, fast_options):
        display = HeadlessDisplay()
        session = ReceiverSession(receiver_endpoint(), display, options=fast_options)

        asyncio.run(_run_for(session, 0.1))

        assert session.state is SessionState.TERMINATED
        assert session.termination is TerminationReason.NORMAL
        assert session.error is None
        assert session.channel.closed
        assert display.closed

    def test_cancellation_terminates_normally(self, receiver_endpoint):
        options = SessionOptions(receive_timeout=10.0, bind_host="127.0.0.1")
        session = ReceiverSession(receiver_endpoint(), HeadlessDisplay(), options=options)

        async def scenario():
            task = asyncio.create_task(session.run())
            assert await session.wait_running(timeout=2.0)
            task.cancel()
            await asyncio.wait_for(task, timeout=2.0)

        asyncio.run(scenario())

        assert session.termination is TerminationReason.NORMAL
        assert session.channel.closed

    def test_empty_payload_shows_fallback(self, receiver_endpoint):
        display = HeadlessDisplay()
        fallback = np.full((20, 30, 3), 7, dtype=np.uint8)
        session = ReceiverSession(receiver_endpoint(), display, fallback_image=fallback)

        assert session.handle_message(b"") is False

        assert session.metrics.empty_payloads == 1
        assert session.metrics.fallbacks_shown == 1
        assert display.last_image is fallback
        assert session.last_frame is None

    def test_undecodable_payload_keeps_previous_frame(self, receiver_endpoint):
        display = HeadlessDisplay()
        session = ReceiverSession(receiver_endpoint(overlay=False), display)
        frame = np.full((48, 64, 3), 128, dtype=np.uint8)

        assert session.handle_message(FrameCodec(quality=80).encode(frame))
        previous = session.last_frame

        assert session.handle_message(b"garbage bytes") is False

        assert session.metrics.decode_failures == 1
        assert session.last_frame is previous
        assert display.frames_shown == 1

    def test_scaled_full_hd_scenario(self, receiver_endpoint):
        """Sender at scale 0.6 / quality 60 -> receiver shows same aspect ratio."""
        source = SyntheticSource(width=1920, height=1080, scale=0.6)
        payload = FrameCodec(quality=60).encode(source.read())
        assert len(payload) < 65535

        display = HeadlessDisplay()
        session = ReceiverSession(receiver_endpoint(), display)

        assert session.handle_message(payload)

        shown = display.last_image
        assert shown.shape == (648, 1152, 3)
        assert shown.shape[1] / shown.shape[0] == pytest.approx(1920 / 1080)

    def test_showing_empty_sentinel_is_safe(self, receiver_endpoint):
        display = HeadlessDisplay()
        session = ReceiverSession(receiver_endpoint(), display)

        display.show(EMPTY_IMAGE)
        session.handle_message(b"")

        assert session.last_frame is None
        assert display.frames_shown == 1  # fallback only

    def test_rejects_sender_endpoint(self, sender_endpoint):
        with pytest.raises(ValueError):
            ReceiverSession(sender_endpoint(4000), HeadlessDisplay())

    def test_port_in_use_terminates_with_error(self, receiver_endpoint, fast_options):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            endpoint = receiver_endpoint(port=blocker.getsockname()[1])
            session = ReceiverSession(endpoint, HeadlessDisplay(), options=fast_options)

            asyncio.run(session.run())

        assert session.state is SessionState.TERMINATED
        assert session.termination is TerminationReason.ERROR
        assert "Could not bind" in session.error


class TestSenderSession:
    """Tests for SenderSession."""

    def test_loopback_frame_reaches_receiver(
        self, receiver_endpoint, sender_endpoint, fast_options
    ):
        rx_endpoint = receiver_endpoint()
        display = HeadlessDisplay()
        receiver = ReceiverSession(rx_endpoint, display, options=fast_options)
        sender = SenderSession(
            sender_endpoint(rx_endpoint.local_port),
            source=SyntheticSource(width=320, height=240, fps=50),
            options=fast_options,
        )

        async def scenario():
            rx_task = asyncio.create_task(receiver.run())
            assert await receiver.wait_running(timeout=2.0)
            tx_task = asyncio.create_task(sender.run())

            deadline = time.monotonic() + 3.0
            while receiver.metrics.frames_displayed == 0 and time.monotonic() < deadline:
                await asyncio.sleep(0.02)

            sender.stop()
            receiver.stop()
            await asyncio.wait_for(asyncio.gather(rx_task, tx_task), timeout=3.0)

        asyncio.run(scenario())

        assert sender.metrics.frames_sent >= 1
        assert receiver.metrics.frames_displayed >= 1
        assert receiver.last_frame.shape == (240, 320, 3)
        assert sender.channel.remote_address == sender.endpoint.remote_address
        assert sender.termination is TerminationReason.NORMAL
        assert receiver.termination is TerminationReason.NORMAL

    def test_capture_failure_is_absorbed(self, sender_endpoint, failing_source, free_port, fast_options):
        session = SenderSession(sender_endpoint(free_port()), source=failing_source, options=fast_options)

        asyncio.run(_run_for(session, 0.15))

        assert session.metrics.capture_failures >= 1
        assert session.metrics.frames_sent == 0
        assert session.termination is TerminationReason.NORMAL
        assert failing_source.closed

    def test_oversized_first_frame_fails_fast(self, sender_endpoint, free_port):
        options = SessionOptions(max_datagram_size=1000, log_every_n_frames=0)
        session = SenderSession(
            sender_endpoint(free_port()),
            source=SyntheticSource(width=640, height=480),
            options=options,
        )

        asyncio.run(session.run())

        assert session.termination is TerminationReason.ERROR
        assert "datagram limit is 1000" in session.error
        assert session.metrics.frames_sent == 0

    def test_later_oversized_frames_are_skipped(self, sender_endpoint, free_port, noise_image):
        options = SessionOptions(max_datagram_size=5000, log_every_n_frames=0)
        session = SenderSession(
            sender_endpoint(free_port(), overlay=False),
            source=SyntheticSource(width=32, height=32),
            options=options,
        )
        small = np.full((32, 32, 3), 90, dtype=np.uint8)

        async def scenario():
            session.channel = await DatagramChannel.connect("127.0.0.1", free_port())
            try:
                return session.send_frame(small), session.send_frame(noise_image.copy())
            finally:
                session.channel.close()

        sent_small, sent_big = asyncio.run(scenario())

        assert sent_small is True
        assert sent_big is False
        assert session.metrics.oversize_skipped == 1
        assert session.metrics.frames_sent == 1

    def test_preview_shows_sent_frames(self, sender_endpoint, free_port):
        preview = HeadlessDisplay()
        session = SenderSession(
            sender_endpoint(free_port(), preview=True),
            source=SyntheticSource(width=64, height=48),
            preview=preview,
        )
        frame = np.zeros((48, 64, 3), dtype=np.uint8)

        async def scenario():
            session.channel = await DatagramChannel.connect("127.0.0.1", free_port())
            try:
                return session.send_frame(frame)
            finally:
                session.channel.close()

        assert asyncio.run(scenario())
        assert preview.frames_shown == 1
        assert preview.last_image is frame

    def test_stop_before_run(self, sender_endpoint, free_port):
        session = SenderSession(sender_endpoint(free_port()), source=SyntheticSource(64, 48))
        session.stop()

        asyncio.run(asyncio.wait_for(session.run(), timeout=2.0))

        assert session.termination is TerminationReason.NORMAL
        assert session.metrics.frames_captured == 0

    def test_rejects_receiver_endpoint(self, receiver_endpoint):
        with pytest.raises(ValueError):
            SenderSession(receiver_endpoint(), source=SyntheticSource(64, 48))

    def test_snapshot(self, sender_endpoint, free_port):
        session = SenderSession(sender_endpoint(free_port(), name="cam"), source=SyntheticSource(64, 48))
        snapshot = session.snapshot()

        assert snapshot["name"] == "cam"
        assert snapshot["role"] == "sender"
        assert snapshot["state"] == "IDLE"
        assert snapshot["channel"] is None
        assert snapshot["metrics"]["frames_sent"] == 0

    def test_first_frame_refused_by_kernel_fails_fast(
        self, sender_endpoint, free_port, fixed_payload_codec
    ):
        """A limit raised to 65535 still fails fast when IPv4 cannot carry the frame."""
        options = SessionOptions(max_datagram_size=MAX_DATAGRAM_SIZE, log_every_n_frames=0)
        session = SenderSession(
            sender_endpoint(free_port(), overlay=False),
            source=SyntheticSource(width=64, height=48),
            codec=fixed_payload_codec(IPV4_MAX_PAYLOAD + 13),
            options=options,
        )

        asyncio.run(asyncio.wait_for(session.run(), timeout=2.0))

        assert session.termination is TerminationReason.ERROR
        assert f"datagram limit is {IPV4_MAX_PAYLOAD}" in session.error
        assert session.metrics.frames_sent == 0
        assert session.metrics.bytes_sent == 0
        assert session.metrics.send_failures == 1

    def test_later_refused_frame_is_not_counted_as_sent(
        self, sender_endpoint, free_port, fixed_payload_codec
    ):
        options = SessionOptions(max_datagram_size=MAX_DATAGRAM_SIZE, log_every_n_frames=0)
        session = SenderSession(
            sender_endpoint(free_port(), overlay=False),
            source=SyntheticSource(width=64, height=48),
            options=options,
        )
        frame = np.full((48, 64, 3), 60, dtype=np.uint8)

        async def scenario():
            session.channel = await DatagramChannel.connect("127.0.0.1", free_port())
            try:
                first = session.send_frame(frame.copy())
                session.codec = fixed_payload_codec(IPV4_MAX_PAYLOAD + 13)
                second = session.send_frame(frame.copy())
                return first, second
            finally:
                session.channel.close()

        first, second = asyncio.run(scenario())

        assert first is True
        assert second is False
        assert session.metrics.frames_sent == 1
        assert session.metrics.send_failures == 1
        assert session.metrics.oversize_skipped == 1
        assert session.metrics.last_payload_size < IPV4_MAX_PAYLOAD

    def test_cancel_waits_for_inflight_capture_before_close(
        self, sender_endpoint, free_port, slow_source
    ):
        """The source is closed only after a blocked read() has returned."""
        session = SenderSession(sender_endpoint(free_port()), source=slow_source)

        async def scenario():
            task = asyncio.create_task(session.run())
            assert await session.wait_running(timeout=2.0)
            while not slow_source.read_started.is_set():
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.05)
            task.cancel()
            await asyncio.wait_for(task, timeout=2.0)

        asyncio.run(scenario())

        assert slow_source.events[:3] == ["read-start", "read-end", "close(in_read=False)"]
        assert session.termination is TerminationReason.NORMAL
        assert session.channel.closed

    def test_channel_failure_while_running_is_fatal(self, sender_endpoint, free_port):
        session = SenderSession(
            sender_endpoint(free_port(), overlay=False),
            source=SyntheticSource(width=64, height=48, fps=50),
            options=SessionOptions(log_every_n_frames=0),
        )

        async def scenario():
            task = asyncio.create_task(session.run())
            assert await session.wait_running(timeout=2.0)
            session.channel.close()
            await asyncio.wait_for(task, timeout=2.0)

        asyncio.run(scenario())

        assert session.state is SessionState.TERMINATED
        assert session.termination is TerminationReason.ERROR
        assert "send on closed channel" in session.error
