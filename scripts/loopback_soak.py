#!/usr/bin/env python3
"""
Loopback Soak Script
====================

Standalone script that runs a synthetic sender and a headless receiver
over 127.0.0.1 and reports throughput.

This script:
    1. Binds a receiver on the given port
    2. Streams a synthetic test pattern to it at the given scale/quality
    3. Logs session stats at a fixed interval
    4. Reports a final summary and exits non-zero if nothing arrived

Usage:
    python scripts/loopback_soak.py --duration 30
    python scripts/loopback_soak.py --port 4000 --scale 0.6 --quality 60
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from udp_video.models.endpoint import StreamEndpoint, StreamRole
from udp_video.session import (
    SessionManager,
    SessionOptions,
    SessionState,
    display_factory,
    synthetic_source_factory,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_soak(
    port: int,
    duration: int,
    scale: float,
    quality: int,
    fps: float,
    report_interval: int,
) -> dict:
    """
    Run sender and receiver side by side.

    Returns:
        Final counters
    """
    logger.info("=" * 60)
    logger.info(f"Loopback soak: port={port} scale={scale} quality={quality} fps={fps}")
    logger.info("=" * 60)

    receiver_endpoint = StreamEndpoint(
        name="soak-rx", role=StreamRole.RECEIVER, local_port=port, overlay=False
    )
    sender_endpoint = StreamEndpoint(
        name="soak-tx",
        role=StreamRole.SENDER,
        remote_host="127.0.0.1",
        remote_port=port,
        quality=quality,
        scale=scale,
    )

    manager = SessionManager(
        options=SessionOptions(bind_host="127.0.0.1", log_every_n_frames=0),
        source=synthetic_source_factory(fps=fps),
        display=display_factory("none"),
    )

    start_time = time.time()

    async with manager:
        receiver, sender = await manager.start([receiver_endpoint, sender_endpoint])

        last_report_time = start_time
        last_count = 0

        while time.time() - start_time < duration:
            if SessionState.TERMINATED in (receiver.state, sender.state):
                logger.error("A session terminated early")
                break

            if time.time() - last_report_time >= report_interval:
                shown = receiver.metrics.frames_displayed
                rate = (shown - last_count) / (time.time() - last_report_time)
                logger.info("-" * 40)
                logger.info(f"  Sent: {sender.metrics.frames_sent}")
                logger.info(f"  Displayed: {shown} ({rate:.1f} fps)")
                logger.info(f"  Last payload: {sender.metrics.last_payload_size} bytes")
                logger.info(f"  Fallbacks: {receiver.metrics.fallbacks_shown}")
                last_report_time = time.time()
                last_count = shown

            await asyncio.sleep(0.5)

    total_time = time.time() - start_time
    result = {
        "duration": total_time,
        "frames_sent": sender.metrics.frames_sent,
        "frames_displayed": receiver.metrics.frames_displayed,
        "fallbacks_shown": receiver.metrics.fallbacks_shown,
        "last_payload_size": sender.metrics.last_payload_size,
        "sender_error": sender.error,
        "receiver_error": receiver.error,
    }

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    for key, value in result.items():
        logger.info(f"{key}: {value}")

    return result


def main():
    parser = argparse.ArgumentParser(description="UDP video loopback soak test")
    parser.add_argument("--port", type=int, default=4000, help="Receiver port")
    parser.add_argument("--duration", type=int, default=30, help="Seconds to run")
    parser.add_argument("--scale", type=float, default=0.6, help="Downscale (0, 1]")
    parser.add_argument("--quality", type=int, default=60, help="JPEG quality")
    parser.add_argument("--fps", type=float, default=30.0, help="Synthetic frame rate")
    parser.add_argument("--report-interval", type=int, default=5, help="Seconds between reports")

    args = parser.parse_args()

    result = asyncio.run(run_soak(
        port=args.port,
        duration=args.duration,
        scale=args.scale,
        quality=args.quality,
        fps=args.fps,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames_displayed"] > 0 else 1)


if __name__ == "__main__":
    main()
