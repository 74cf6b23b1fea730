"""
udp_video Configuration
=======================

This module handles configuration loading for the streaming service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    UDP_VIDEO_CONFIG            -> path of the YAML file to load
    UDP_VIDEO_RECEIVE_TIMEOUT   -> transport.receive_timeout_seconds
    UDP_VIDEO_MAX_DATAGRAM_SIZE -> transport.max_datagram_size
    UDP_VIDEO_CAPTURE_BACKEND   -> capture.backend
    UDP_VIDEO_DISPLAY_BACKEND   -> display.backend
    UDP_VIDEO_FALLBACK_IMAGE    -> display.fallback_image
    UDP_VIDEO_PORT              -> server.port
    UDP_VIDEO_LOG_LEVEL         -> logging.level
    PORT                        -> server.port

Example:
    from udp_video.config import settings

    print(settings.transport.receive_timeout_seconds)
    for endpoint in settings.sessions:
        print(endpoint.describe())
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from udp_video.models.endpoint import StreamEndpoint
from udp_video.session.base import SessionOptions
from udp_video.transport.protocol import IPV4_MAX_PAYLOAD, MAX_DATAGRAM_SIZE


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification."""

    name: str = Field(default="udp-video", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class TransportConfig(BaseModel):
    """UDP transport configuration."""

    max_datagram_size: int = Field(
        default=IPV4_MAX_PAYLOAD,
        gt=0,
        le=MAX_DATAGRAM_SIZE,
        description="Largest frame payload allowed in one datagram",
    )
    receive_timeout_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Receiver poll window before the fallback image is shown",
    )
    receive_queue_size: int = Field(
        default=4,
        ge=1,
        description="Datagrams buffered per receiver before oldest are dropped",
    )
    bind_host: str = Field(default="0.0.0.0", description="Receiver bind address")


class CaptureConfig(BaseModel):
    """Sender-side capture configuration."""

    backend: str = Field(
        default="camera",
        description="Frame source: 'camera' or 'synthetic'",
    )
    failure_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Pause after a failed capture before retrying",
    )
    clock_offset_ms: int = Field(
        default=-1990,
        description="Correction added to the sender timestamp overlay",
    )
    synthetic_width: int = Field(default=1920, gt=0, description="Synthetic frame width")
    synthetic_height: int = Field(default=1080, gt=0, description="Synthetic frame height")
    synthetic_fps: float = Field(default=30.0, ge=0, description="Synthetic frame rate")


class DisplayConfig(BaseModel):
    """Receiver-side display configuration."""

    backend: str = Field(
        default="window",
        description="Display backend: 'window' or 'none'",
    )
    delay_ms: int = Field(
        default=1,
        ge=1,
        description="cv2.waitKey delay after each displayed frame; blocks every session",
    )
    fallback_image: Optional[str] = Field(
        default=None,
        description="Image shown while no stream is arriving",
    )


class ServerConfig(BaseModel):
    """Status API configuration."""

    enabled: bool = Field(default=True, description="Serve the status API")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    stats_every_n_frames: int = Field(
        default=300,
        ge=0,
        description="Log per-session stats every N frames (0 = never)",
    )


class Settings(BaseModel):
    """
    Main settings class for udp_video.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sessions: List[StreamEndpoint] = Field(default_factory=list)

    def session_options(self) -> SessionOptions:
        """Build the per-session tuning from these settings."""
        return SessionOptions(
            receive_timeout=self.transport.receive_timeout_seconds,
            max_datagram_size=self.transport.max_datagram_size,
            receive_queue_size=self.transport.receive_queue_size,
            bind_host=self.transport.bind_host,
            capture_backoff=self.capture.failure_backoff_seconds,
            clock_offset_ms=self.capture.clock_offset_ms,
            log_every_n_frames=self.logging.stats_every_n_frames,
        )


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, uses UDP_VIDEO_CONFIG
            or searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("UDP_VIDEO_CONFIG")

    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Transport settings
    if env_timeout := os.environ.get("UDP_VIDEO_RECEIVE_TIMEOUT"):
        config_data.setdefault("transport", {})["receive_timeout_seconds"] = float(env_timeout)
    if env_size := os.environ.get("UDP_VIDEO_MAX_DATAGRAM_SIZE"):
        config_data.setdefault("transport", {})["max_datagram_size"] = int(env_size)

    # Capture / display backends
    if env_capture := os.environ.get("UDP_VIDEO_CAPTURE_BACKEND"):
        config_data.setdefault("capture", {})["backend"] = env_capture
    if env_display := os.environ.get("UDP_VIDEO_DISPLAY_BACKEND"):
        config_data.setdefault("display", {})["backend"] = env_display
    if env_fallback := os.environ.get("UDP_VIDEO_FALLBACK_IMAGE"):
        config_data.setdefault("display", {})["fallback_image"] = env_fallback

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("UDP_VIDEO_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("UDP_VIDEO_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
