"""
Stream Endpoint Schema
======================

This module defines the immutable configuration of one logical stream.

A StreamEndpoint is created when a session starts and never changes for
the lifetime of that session. It carries everything the session needs to
bind its channel and identify its capture device or display window.

Example (YAML):
    sessions:
      - name: front-camera
        role: sender
        camera: 0
        remote_host: 192.168.43.168
        remote_port: 6000
        quality: 60
        scale: 0.6

      - name: dock-0
        role: receiver
        local_port: 4000
        display_id: "Streaming Video 0"
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StreamRole(str, Enum):
    """Direction of a stream relative to this process."""

    SENDER = "sender"
    RECEIVER = "receiver"


class StreamEndpoint(BaseModel):
    """
    Identity and tuning of a single sender or receiver stream.

    Attributes:
        name: Human readable stream name used in logs and status output
        role: sender or receiver
        local_port: Port to bind (receiver) or 0 for an ephemeral port (sender)
        remote_host: Destination host (sender only)
        remote_port: Destination port (sender only)
        camera: Capture device index (sender only)
        display_id: Window identity used for on-screen rendering
        quality: JPEG quality used by the sender codec
        scale: Downscale factor applied to captured frames, in (0, 1]
        preview: Show the captured frame locally before sending (sender)
        overlay: Burn a wall-clock timestamp into the image
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="stream", description="Stream name")
    role: StreamRole = Field(..., description="sender or receiver")
    local_port: int = Field(default=0, ge=0, le=65535, description="Local port")
    remote_host: Optional[str] = Field(default=None, description="Destination host")
    remote_port: Optional[int] = Field(
        default=None, ge=1, le=65535, description="Destination port"
    )
    camera: int = Field(default=0, ge=0, description="Capture device index")
    display_id: str = Field(default="Streaming Video", description="Window identity")
    quality: int = Field(default=60, ge=0, le=100, description="JPEG quality")
    scale: float = Field(default=0.6, gt=0, le=1.0, description="Downscale factor")
    preview: bool = Field(default=False, description="Show captured frames locally")
    overlay: bool = Field(default=True, description="Burn timestamp overlay")

    @model_validator(mode="after")
    def _check_role_fields(self) -> "StreamEndpoint":
        if self.role is StreamRole.SENDER:
            if not self.remote_host or self.remote_port is None:
                raise ValueError("sender endpoints need remote_host and remote_port")
        elif self.local_port == 0:
            raise ValueError("receiver endpoints need a non-zero local_port")
        return self

    @property
    def is_sender(self) -> bool:
        return self.role is StreamRole.SENDER

    @property
    def remote_address(self) -> Optional[tuple]:
        """(host, port) destination, or None for receivers."""
        if self.remote_host is None or self.remote_port is None:
            return None
        return (self.remote_host, self.remote_port)

    def describe(self) -> str:
        if self.is_sender:
            return (
                f"{self.name} [sender camera={self.camera} -> "
                f"{self.remote_host}:{self.remote_port}]"
            )
        return f"{self.name} [receiver :{self.local_port} window='{self.display_id}']"
