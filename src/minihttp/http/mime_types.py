"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the Content-Type sent with a served file.

The browser uses Content-Type to decide what to do with the body:

    text/html                  → render as a page
    image/png                  → display as an image
    application/octet-stream   → unknown binary, usually downloaded

Anything not in the table falls back to application/octet-stream, which
is the safe default: the client will not try to interpret it.

=============================================================================
"""

from pathlib import Path


# =============================================================================
# MIME TYPE DATABASE
# =============================================================================
#
# Keys are lowercase extensions including the dot.
#
# =============================================================================

MIME_TYPES = {
    # -------------------------------------------------------------------------
    # TEXT
    # -------------------------------------------------------------------------
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".txt": "text/plain",
    ".json": "application/json",
    ".xml": "application/xml",

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",

    # -------------------------------------------------------------------------
    # DOCUMENTS
    # -------------------------------------------------------------------------
    ".pdf": "application/pdf",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def get_content_type(path: str | Path) -> str:
    """
    Get the Content-Type header value for a file.

    Examples:
        >>> get_content_type("index.html")
        'text/html'

        >>> get_content_type("/srv/www/LOGO.PNG")
        'image/png'

        >>> get_content_type("archive.xyz")
        'application/octet-stream'
    """
    if isinstance(path, str):
        path = Path(path)

    return MIME_TYPES.get(path.suffix.lower(), DEFAULT_MIME_TYPE)
