"""
Unit tests for ServerConfig.
"""

import dataclasses
from pathlib import Path

import pytest

from minihttp.config import ServerConfig


class TestServerConfig:
    """Tests for defaults, environment and overrides."""

    def test_defaults(self):
        """Test default values."""
        config = ServerConfig()

        assert config.host == "127.0.0.1"
        assert config.port == 8080
        assert config.root_dir == "public"
        assert config.index_file == "index.html"
        assert config.max_header_size == 8192
        assert config.timeout == 30.0

    def test_frozen(self):
        """Test config cannot be mutated once shared."""
        config = ServerConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 9000

    def test_from_env(self):
        """Test environment variables override defaults."""
        config = ServerConfig.from_env({
            "HTTP_HOST": "0.0.0.0",
            "HTTP_PORT": "3000",
            "HTTP_ROOT": "/srv/www",
            "HTTP_WORKERS": "8",
            "HTTP_TIMEOUT": "2.5",
            "HTTP_LOG_LEVEL": "DEBUG",
        })

        assert config.host == "0.0.0.0"
        assert config.port == 3000
        assert config.root_dir == "/srv/www"
        assert config.max_workers == 8
        assert config.timeout == 2.5
        assert config.log_level == "DEBUG"

    def test_from_env_empty(self):
        """Test an empty environment gives the defaults."""
        assert ServerConfig.from_env({}) == ServerConfig()

    def test_from_env_few_workers(self):
        """Test min_workers never exceeds a small HTTP_WORKERS."""
        config = ServerConfig.from_env({"HTTP_WORKERS": "2"})

        assert config.max_workers == 2
        assert config.min_workers == 2

    def test_from_env_bad_number(self):
        """Test non-numeric values fail loudly."""
        with pytest.raises(ValueError):
            ServerConfig.from_env({"HTTP_PORT": "eighty"})

    def test_replace_ignores_none(self):
        """Test replace() keeps fields passed as None."""
        config = ServerConfig().replace(port=9000, host=None)

        assert config.port == 9000
        assert config.host == "127.0.0.1"

    def test_root_path_is_absolute(self, content_root: Path):
        config = ServerConfig(root_dir=str(content_root))
        assert config.root_path == content_root.resolve()


class TestValidate:
    """Tests for startup validation."""

    def test_valid(self, config: ServerConfig):
        """Test the fixture config passes."""
        config.validate()

    @pytest.mark.parametrize("changes", [
        {"port": -1},
        {"port": 65536},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"buffer_size": 100},
        {"max_header_size": 10},
        {"timeout": 0},
        {"log_level": "LOUD"},
    ])
    def test_invalid_values(self, config: ServerConfig, changes: dict):
        """Test each invalid setting is rejected."""
        with pytest.raises(ValueError):
            dataclasses.replace(config, **changes).validate()

    def test_missing_root(self, config: ServerConfig, tmp_path: Path):
        """Test a missing content root is a configuration error."""
        with pytest.raises(ValueError, match="Content root"):
            config.replace(root_dir=str(tmp_path / "nope")).validate()

    def test_port_zero_allowed(self, config: ServerConfig):
        """Test port 0 (OS-assigned) is valid."""
        config.replace(port=0).validate()
