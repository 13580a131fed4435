"""
=============================================================================
MINIHTTP - Minimal HTTP/1.1 Static File Server
=============================================================================

Serves files from one directory over raw sockets. One request per
connection, GET and HEAD only, exact Content-Length on every response.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    minihttp/
    ├── __init__.py          # Package exports
    ├── __main__.py          # CLI entry point (python -m minihttp)
    ├── server.py            # HTTPServer: listener + pool + handler
    ├── config.py            # ServerConfig frozen dataclass
    ├── errors.py            # Exception hierarchy
    ├── core/
    │   ├── socket_server.py # TCP listener, lazy stream of connections
    │   ├── connection.py    # Client socket wrapper and lifecycle states
    │   └── thread_pool.py   # Bounded worker pool
    ├── http/
    │   ├── request.py       # Request-head parser
    │   ├── response.py      # Response model, builder, error pages
    │   ├── status_codes.py  # HTTPStatus enum
    │   └── mime_types.py    # Extension → Content-Type
    └── handlers/
        ├── connection.py    # One exchange per connection
        └── static.py        # Path → file under the content root

=============================================================================
QUICK START
=============================================================================

    from minihttp import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(root_dir="public", port=8080))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import BindFailure
from .server import HTTPServer

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "BindFailure",
    "__version__",
]
