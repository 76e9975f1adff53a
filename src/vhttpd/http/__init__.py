"""
=============================================================================
HTTP PROTOCOL PACKAGE
=============================================================================

Everything that knows what HTTP/1.1 bytes look like, and nothing that
knows about sockets or threads:

    reader.py        CRLF line framing over any recv()-able source
    request.py       Request dataclass and RequestParser
    response.py      Response dataclass, constructors, wire serializer
    status_codes.py  The three status codes the server produces
    mime_types.py    Extension → media type
    errors.py        Exception taxonomy shared by the layers above

Data flow for one request:

    socket ──recv──► LineReader ──lines──► RequestParser ──► Request
                                                               │
    socket ◄──write── Response.write_to() ◄── Response ◄── handler

=============================================================================
"""

from .errors import (
    HTTPParseError,
    IncompleteLine,
    InvalidTarget,
    LineTooLong,
    MalformedHeaderLine,
    MalformedRequestLine,
    ResolutionError,
    UnsupportedMethod,
    UnsupportedProtocol,
)
from .mime_types import get_content_type, media_type
from .reader import DEFAULT_MAX_LINE_SIZE, LineReader
from .request import (
    SUPPORTED_METHOD,
    SUPPORTED_VERSION,
    Request,
    RequestParser,
    canonical_header_key,
    read_request,
)
from .response import Response, bad_request, format_http_date, not_found, ok
from .status_codes import HTTPStatus

__all__ = [
    # Framing
    "LineReader",
    "DEFAULT_MAX_LINE_SIZE",

    # Requests
    "Request",
    "RequestParser",
    "read_request",
    "canonical_header_key",
    "SUPPORTED_METHOD",
    "SUPPORTED_VERSION",

    # Responses
    "Response",
    "ok",
    "not_found",
    "bad_request",
    "format_http_date",
    "HTTPStatus",

    # MIME types
    "get_content_type",
    "media_type",

    # Errors
    "HTTPParseError",
    "MalformedRequestLine",
    "UnsupportedMethod",
    "InvalidTarget",
    "UnsupportedProtocol",
    "MalformedHeaderLine",
    "LineTooLong",
    "IncompleteLine",
    "ResolutionError",
]
