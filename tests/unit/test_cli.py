"""
Unit tests for the command-line entry point.
"""

import socket
from pathlib import Path
from unittest import mock

import pytest

from minihttp import __version__
from minihttp.__main__ import build_config, build_parser, main


class TestBuildConfig:
    """Tests for layering CLI arguments over the environment."""

    def test_cli_overrides_env(self):
        args = build_parser().parse_args(["--port", "9001", "-r", "/srv/site"])
        config = build_config(args, {"HTTP_PORT": "3000", "HTTP_HOST": "0.0.0.0"})

        assert config.port == 9001
        assert config.root_dir == "/srv/site"
        assert config.host == "0.0.0.0"  # From the environment

    def test_defaults_untouched(self):
        config = build_config(build_parser().parse_args([]), {})

        assert config.port == 8080
        assert config.root_dir == "public"

    def test_workers(self):
        """Test --workers caps both pool bounds."""
        args = build_parser().parse_args(["--workers", "2"])
        config = build_config(args, {})

        assert config.max_workers == 2
        assert config.min_workers == 2

    def test_all_options(self):
        args = build_parser().parse_args([
            "-H", "0.0.0.0",
            "-p", "0",
            "--timeout", "5",
            "--index", "home.html",
            "--not-found-page", "404.html",
            "--max-header-size", "4096",
            "-l", "debug",
        ])
        config = build_config(args, {})

        assert config.host == "0.0.0.0"
        assert config.port == 0
        assert config.timeout == 5.0
        assert config.index_file == "home.html"
        assert config.not_found_page == "404.html"
        assert config.max_header_size == 4096
        assert config.log_level == "DEBUG"


class TestMain:
    """Tests for exit codes."""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_bad_usage(self):
        """Test argparse errors exit 2."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--port", "not-a-number"])
        assert exc_info.value.code == 2

    def test_missing_root(self, tmp_path: Path, capsys):
        """Test an invalid configuration exits 1."""
        assert main(["--root", str(tmp_path / "nope"), "--port", "0"]) == 1
        assert "Content root" in capsys.readouterr().err

    def test_bind_failure(self, content_root: Path):
        """Test an occupied port exits 1 without retrying."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupier:
            occupier.bind(("127.0.0.1", 0))
            occupier.listen(1)
            port = occupier.getsockname()[1]

            code = main([
                "--root", str(content_root),
                "--host", "127.0.0.1",
                "--port", str(port),
                "--log-level", "ERROR",
            ])

        assert code == 1

    def test_graceful_shutdown(self, content_root: Path):
        """Test run() returning normally exits 0."""
        with mock.patch("minihttp.__main__.HTTPServer") as server_cls:
            code = main(["--root", str(content_root), "--port", "0"])

        assert code == 0
        server_cls.return_value.run.assert_called_once()
