"""
=============================================================================
MIME TYPE LOOKUP
=============================================================================

Maps a file extension to the value of the Content-Type header.

The table stores full Content-Type values, some with a charset parameter.
Responses only ever carry the primary media type:

    "text/html; charset=utf-8"  ──media_type()──►  "text/html"
    "image/png"                 ──media_type()──►  "image/png"

Unknown extensions fall back to application/octet-stream, which tells a
browser "binary data, probably download it".

=============================================================================
"""

import os
from typing import Optional


# Lower-case extension (with the dot) → Content-Type value.
MIME_TYPES = {
    # text
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "text/javascript; charset=utf-8",
    ".mjs": "text/javascript; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
    ".md": "text/markdown; charset=utf-8",
    ".csv": "text/csv; charset=utf-8",
    ".xml": "text/xml; charset=utf-8",
    ".json": "application/json",
    ".map": "application/json",

    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # audio / video
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".wasm": "application/wasm",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def get_content_type(path: str, default: Optional[str] = None) -> str:
    """
    Full Content-Type value for ``path``, parameters included.

        >>> get_content_type("/srv/a.com/index.HTML")
        'text/html; charset=utf-8'
        >>> get_content_type("archive.unknown")
        'application/octet-stream'
    """
    extension = os.path.splitext(path)[1].lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def media_type(path: str) -> str:
    """
    Primary media type for ``path``, any ``;`` parameter suffix stripped.

        >>> media_type("index.html")
        'text/html'
    """
    return get_content_type(path).split(";", 1)[0].strip()
