"""
Configuration Tests
===================

Settings loading, environment overrides and endpoint validation.
"""

import pytest
from pydantic import ValidationError

from udp_video.config import Settings, load_config
from udp_video.models.endpoint import StreamEndpoint, StreamRole
from udp_video.session.base import SessionOptions
from udp_video.transport.protocol import IPV4_MAX_PAYLOAD, MAX_DATAGRAM_SIZE


CONFIG_YAML = """
transport:
  receive_timeout_seconds: 0.5
capture:
  backend: synthetic
display:
  backend: none
sessions:
  - name: cam
    role: sender
    remote_host: 10.0.0.2
    remote_port: 6000
    quality: 60
    scale: 0.6
  - name: dock
    role: receiver
    local_port: 4000
    display_id: Streaming Video 0
"""


class TestSettings:
    """Tests for Settings defaults and loading."""

    def test_defaults(self):
        settings = Settings()

        assert settings.transport.max_datagram_size == IPV4_MAX_PAYLOAD
        assert settings.transport.receive_timeout_seconds == 1.0
        assert settings.display.delay_ms == 1
        assert settings.sessions == []

    def test_session_options_mapping(self):
        settings = Settings.model_validate({
            "transport": {"receive_timeout_seconds": 0.25, "receive_queue_size": 8},
            "capture": {"clock_offset_ms": 0, "failure_backoff_seconds": 0.1},
        })
        options = settings.session_options()

        assert options.receive_timeout == 0.25
        assert options.receive_queue_size == 8
        assert options.clock_offset_ms == 0
        assert options.capture_backoff == 0.1

    def test_load_from_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        settings = load_config(str(path))

        assert settings.transport.receive_timeout_seconds == 0.5
        assert settings.capture.backend == "synthetic"
        assert [s.name for s in settings.sessions] == ["cam", "dock"]
        assert settings.sessions[0].remote_address == ("10.0.0.2", 6000)
        assert settings.sessions[1].role is StreamRole.RECEIVER

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        monkeypatch.setenv("UDP_VIDEO_RECEIVE_TIMEOUT", "2.5")
        monkeypatch.setenv("UDP_VIDEO_DISPLAY_BACKEND", "window")
        monkeypatch.setenv("UDP_VIDEO_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PORT", "9000")

        settings = load_config(str(path))

        assert settings.transport.receive_timeout_seconds == 2.5
        assert settings.display.backend == "window"
        assert settings.logging.level == "DEBUG"
        assert settings.server.port == 9000

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yaml"
        path.write_text("transport:\n  receive_queue_size: 9\n")
        monkeypatch.setenv("UDP_VIDEO_CONFIG", str(path))

        assert load_config().transport.receive_queue_size == 9

    def test_oversized_datagram_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"transport": {"max_datagram_size": MAX_DATAGRAM_SIZE + 1}})

    def test_datagram_limit_defaults_to_ipv4_ceiling(self):
        """The 65535 protocol maximum is opt-in; the default is what IPv4 can send."""
        assert SessionOptions().max_datagram_size == IPV4_MAX_PAYLOAD
        assert Settings().session_options().max_datagram_size == IPV4_MAX_PAYLOAD

        raised = Settings.model_validate({"transport": {"max_datagram_size": MAX_DATAGRAM_SIZE}})
        assert raised.session_options().max_datagram_size == MAX_DATAGRAM_SIZE


class TestStreamEndpoint:
    """Tests for StreamEndpoint validation."""

    def test_sender_requires_remote(self):
        with pytest.raises(ValidationError):
            StreamEndpoint(role="sender", remote_port=6000)

    def test_receiver_requires_port(self):
        with pytest.raises(ValidationError):
            StreamEndpoint(role="receiver")

    @pytest.mark.parametrize("scale", [0.0, -0.1, 1.01])
    def test_scale_range(self, scale):
        with pytest.raises(ValidationError):
            StreamEndpoint(role="receiver", local_port=4000, scale=scale)

    def test_quality_range(self):
        with pytest.raises(ValidationError):
            StreamEndpoint(role="receiver", local_port=4000, quality=150)

    def test_endpoint_is_immutable(self):
        endpoint = StreamEndpoint(role="receiver", local_port=4000)
        with pytest.raises(ValidationError):
            endpoint.local_port = 5000

    def test_describe(self):
        sender = StreamEndpoint(
            name="cam", role="sender", camera=1, remote_host="h", remote_port=5000
        )
        receiver = StreamEndpoint(name="dock", role="receiver", local_port=4000)

        assert sender.is_sender
        assert "h:5000" in sender.describe()
        assert receiver.remote_address is None
        assert ":4000" in receiver.describe()
