"""
Unit tests for BridgeConfig and logging setup.
"""

import logging

import pytest

from httpbridge.config import BridgeConfig, setup_logging


class TestBridgeConfig:
    """Tests for defaults and validation."""

    def test_defaults(self):
        """Defaults are valid and serve JSON on 8080."""
        config = BridgeConfig()

        assert config.host == "127.0.0.1"
        assert config.port == 8080
        assert config.response_content_type == "application/json"
        assert config.response_timeout == 30.0
        config.validate()

    def test_port_zero_is_valid(self):
        """Port 0 asks the OS for a free port."""
        BridgeConfig(port=0).validate()

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"handler_workers": 0},
        {"buffer_size": 512},
        {"timeout": 0},
        {"response_timeout": 0},
        {"response_content_type": ""},
        {"log_level": "CHATTY"},
    ])
    def test_invalid_values(self, overrides):
        """Out-of-range settings fail validation."""
        with pytest.raises(ValueError):
            BridgeConfig(**overrides).validate()

    def test_from_env(self, monkeypatch):
        """BRIDGE_* variables override the defaults."""
        monkeypatch.setenv("BRIDGE_HOST", "0.0.0.0")
        monkeypatch.setenv("BRIDGE_PORT", "3000")
        monkeypatch.setenv("BRIDGE_WORKERS", "32")
        monkeypatch.setenv("BRIDGE_HANDLER_WORKERS", "4")
        monkeypatch.setenv("BRIDGE_RESPONSE_TIMEOUT", "2.5")
        monkeypatch.setenv("BRIDGE_LOG_LEVEL", "DEBUG")

        config = BridgeConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 3000
        assert config.max_workers == 32
        assert config.handler_workers == 4
        assert config.response_timeout == 2.5
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch):
        """Unset variables fall back to the defaults."""
        for name in ("BRIDGE_HOST", "BRIDGE_PORT", "BRIDGE_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = BridgeConfig.from_env()

        assert config.port == 8080
        assert config.log_level == "INFO"


class TestSetupLogging:
    def test_sets_package_level(self):
        """setup_logging() sets the package logger level."""
        logger = logging.getLogger("httpbridge")
        previous = logger.level
        try:
            setup_logging("DEBUG")
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(previous)
