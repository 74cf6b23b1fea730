"""
Frame Transport Protocol
========================

Wire format for one video frame.

Wire Format:
    One datagram per frame. The datagram body is the JPEG payload with
    no header, sequence number or checksum. A zero-length body means
    "no new frame available".

Consequences:
    - Receivers cannot detect loss, duplication or reordering
    - A lost frame leaves the previous frame on screen
    - A frame larger than one datagram is a configuration error and is
      never fragmented
"""

# Hard ceiling on the datagram body.
MAX_DATAGRAM_SIZE = 65535

# Largest body an IPv4 UDP socket will actually send (65535 - 8 - 20).
IPV4_MAX_PAYLOAD = 65507


class FrameTooLargeError(ValueError):
    """Raised when an encoded frame does not fit in one datagram."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Encoded frame is {size} bytes, datagram limit is {limit}. "
            f"Lower the scale or quality."
        )
        self.size = size
        self.limit = limit


def fits_datagram(encoded: bytes, max_size: int = MAX_DATAGRAM_SIZE) -> bool:
    return len(encoded) <= max_size


def package(encoded: bytes, max_size: int = MAX_DATAGRAM_SIZE) -> bytes:
    """
    Build the datagram body for one encoded frame.

    Args:
        encoded: JPEG bytes from FrameCodec.encode
        max_size: Datagram ceiling

    Returns:
        Datagram body (the encoded bytes unchanged)

    Raises:
        FrameTooLargeError: If the frame exceeds max_size
    """
    if len(encoded) > max_size:
        raise FrameTooLargeError(len(encoded), max_size)
    return bytes(encoded)


def unpackage(message: bytes) -> bytes:
    """
    Extract the encoded frame from a datagram body.

    An empty message is valid and yields b"", which the codec decodes
    to the empty-image sentinel.
    """
    return bytes(message)
