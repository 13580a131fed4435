"""
=============================================================================
MINIHTTP CLI ENTRY POINT
=============================================================================

    # Serve ./public on 127.0.0.1:8080
    python -m minihttp

    # Another root and port
    python -m minihttp --root ./site --port 3000

    # Listen on all interfaces (containers)
    python -m minihttp --host 0.0.0.0

    # Same thing through the environment
    HTTP_HOST=0.0.0.0 HTTP_PORT=3000 HTTP_ROOT=./site python -m minihttp

=============================================================================
CONFIGURATION ORDER
=============================================================================

    1. Defaults                     ServerConfig()
    2. Environment variables        ServerConfig.from_env()
    3. Command-line arguments       config.replace(...)

=============================================================================
EXIT CODES
=============================================================================

    0   Graceful shutdown (SIGINT / SIGTERM)
    1   Bind failure or invalid configuration
    2   Bad command-line usage (argparse)

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .config import ServerConfig
from .errors import BindFailure
from .server import HTTPServer


logger = logging.getLogger("minihttp")


def build_parser() -> argparse.ArgumentParser:
    """Argument parser. Every option defaults to None: unset means "keep"."""
    parser = argparse.ArgumentParser(
        prog="minihttp",
        description="Minimal HTTP/1.1 static file server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m minihttp                          # ./public on 127.0.0.1:8080
  python -m minihttp --root ./site -p 3000    # Custom root and port
  python -m minihttp --host 0.0.0.0           # Listen on all interfaces
  python -m minihttp --not-found-page 404.html
        """
    )

    # ──────────────────────────────────────
    # NETWORK ARGUMENTS
    # ──────────────────────────────────────
    parser.add_argument(
        "--host", "-H",
        help="Host to bind to (default: 127.0.0.1, env HTTP_HOST)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on, 0 for any free port (default: 8080, env HTTP_PORT)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Socket read/write timeout in seconds (default: 30, env HTTP_TIMEOUT)"
    )

    # ──────────────────────────────────────
    # CONTENT ARGUMENTS
    # ──────────────────────────────────────
    parser.add_argument(
        "--root", "-r",
        dest="root_dir",
        help="Directory to serve (default: ./public, env HTTP_ROOT)"
    )
    parser.add_argument(
        "--index",
        dest="index_file",
        help="Document served for directories (default: index.html)"
    )
    parser.add_argument(
        "--not-found-page",
        help="File inside the root used as the 404 body"
    )
    parser.add_argument(
        "--max-header-size",
        type=int,
        help="Largest accepted request head in bytes (default: 8192)"
    )

    # ──────────────────────────────────────
    # PERFORMANCE ARGUMENTS
    # ──────────────────────────────────────
    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Maximum worker threads (default: 16, env HTTP_WORKERS)"
    )

    # ──────────────────────────────────────
    # META ARGUMENTS
    # ──────────────────────────────────────
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO, env HTTP_LOG_LEVEL)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"minihttp {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace, environ: Optional[dict] = None) -> ServerConfig:
    """
    Layer CLI arguments over the environment.

    Raises:
        ValueError: An environment variable holds a non-numeric value.
    """
    config = ServerConfig.from_env(environ)

    min_workers = None
    if args.workers is not None:
        min_workers = max(1, min(config.min_workers, args.workers))

    return config.replace(
        host=args.host,
        port=args.port,
        timeout=args.timeout,
        root_dir=args.root_dir,
        index_file=args.index_file,
        not_found_page=args.not_found_page,
        max_header_size=args.max_header_size,
        min_workers=min_workers,
        max_workers=args.workers,
        log_level=args.log_level,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the server until it is stopped.

    Returns:
        Process exit code (see module docstring).
    """
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
        server = HTTPServer(config)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        server.run()
    except BindFailure as e:
        logger.error(str(e))
        return 1

    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================
# python -m minihttp

if __name__ == "__main__":
    sys.exit(main())
