"""
udp_video
=========

Latest-frame-wins camera streaming over UDP datagrams.

A sender captures frames, JPEG-compresses them and sends each one as a
single datagram. A receiver listens on a port, decodes whatever arrives
and shows the most recent frame, falling back to a placeholder image
when nothing arrives within the poll window.

Components:
    - media: Capture sources, JPEG codec, overlay and display sinks
    - transport: asyncio UDP channel and the one-frame-per-datagram format
    - session: Sender/receiver loops and the session manager
    - models: StreamEndpoint configuration
    - config: YAML + environment settings

Example:
    from udp_video.config import settings
    from udp_video.main import run_sessions

    asyncio.run(run_sessions(settings))
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
