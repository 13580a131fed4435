"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m minihttp --port 3000                            │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_PORT=3000 python -m minihttp                         │
    │                                                                      │
    │   3. Defaults in this dataclass                                     │
    │      └── 127.0.0.1:8080, serving ./public                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHARED, READ-ONLY
=============================================================================

The config object is the only state shared between connection workers.
It is a frozen dataclass: every worker gets the same instance, and nobody
can change it underneath them. Use replace() to derive a modified copy
(the CLI does this to layer its arguments over the environment).

=============================================================================
"""

import os
import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    HTTP SETTINGS
    - max_header_size, server_name

    CONTENT
    - root_dir, index_file, not_found_page, stream_threshold

    THREADING SETTINGS
    - min_workers, max_workers, queue_size

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (development)
    - "0.0.0.0" - All network interfaces (containers)
    """

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Maximum number of queued connections waiting for accept()."""

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    timeout: Optional[float] = 30.0
    """
    Per-connection socket timeout in seconds, applied to every read and
    write. None = blocking forever (not recommended).
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_header_size: int = 8 * 1024
    """
    Upper bound on request line + headers, in bytes. Larger heads are
    answered with 400 and the connection is closed.
    """

    server_name: str = "minihttp/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "public"
    """Content root. Every served file must resolve inside it."""

    index_file: str = "index.html"
    """Document served for "/" and for directory paths."""

    not_found_page: Optional[str] = None
    """
    Optional file (relative to root_dir) used as the 404 body.
    When unset or unreadable, a fixed minimal HTML page is used.
    """

    stream_threshold: int = 1024 * 1024
    """
    Files larger than this are streamed from disk in chunks instead of
    being read into memory first.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 16
    """Upper limit when the pool scales up under load."""

    queue_size: int = 100
    """Accepted connections waiting for a worker. Full queue → 503."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    @property
    def root_path(self) -> Path:
        """Absolute, symlink-free content root."""
        return Path(self.root_dir).resolve()

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTP_HOST       Server host (default: 127.0.0.1)
        HTTP_PORT       Server port (default: 8080)
        HTTP_ROOT       Content root (default: public)
        HTTP_WORKERS    Max worker threads (default: 16)
        HTTP_TIMEOUT    Socket timeout in seconds (default: 30)
        HTTP_LOG_LEVEL  Logging level (default: INFO)

        =====================================================================
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        max_workers = int(env.get("HTTP_WORKERS", defaults.max_workers))
        return cls(
            host=env.get("HTTP_HOST", defaults.host),
            port=int(env.get("HTTP_PORT", defaults.port)),
            root_dir=env.get("HTTP_ROOT", defaults.root_dir),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            timeout=float(env.get("HTTP_TIMEOUT", defaults.timeout)),
            log_level=env.get("HTTP_LOG_LEVEL", defaults.log_level),
        )

    def replace(self, **changes) -> "ServerConfig":
        """Return a copy with the given fields changed. None values are ignored."""
        changes = {key: value for key, value in changes.items() if value is not None}
        return dataclasses.replace(self, **changes)

    def validate(self) -> None:
        """
        Validate configuration values.

        Runs at startup so a bad value fails the process immediately rather
        than on the first request.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_header_size < 64:
            raise ValueError("max_header_size must be >= 64")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not self.root_path.is_dir():
            raise ValueError(f"Content root is not a directory: {self.root_dir}")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.log_level}")
