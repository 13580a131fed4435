"""
Request handlers.

    ConnectionHandler   one full exchange per accepted connection
    StaticFileHandler   request path → file under the content root
"""

from .static import StaticFileHandler
from .connection import ConnectionHandler

__all__ = ["StaticFileHandler", "ConnectionHandler"]
