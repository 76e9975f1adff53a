"""
Exception types raised while reading, parsing and resolving requests.

The connection loop sorts every failure into one of three buckets:

    EOFError / IncompleteLine   → peer went away, close silently
    socket.timeout              → idle deadline fired, close silently
    HTTPParseError subclasses   → send 400 Bad Request, then close

ResolutionError never escapes the virtual host handler; it becomes a 404.
"""


class HTTPParseError(Exception):
    """
    Raised when the bytes on the wire are not an acceptable request.

    Carries the HTTP status that should be returned to the client. Every
    parse error maps to 400 because the server never tries to resync on a
    byte stream it could not understand.
    """

    status_code = 400

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line  # offending line, for logs only


class MalformedRequestLine(HTTPParseError):
    """Request line is not exactly ``METHOD SP TARGET SP VERSION``."""


class UnsupportedMethod(HTTPParseError):
    """Method token is anything other than GET."""


class InvalidTarget(HTTPParseError):
    """Request target does not start with ``/``."""


class UnsupportedProtocol(HTTPParseError):
    """Version token is not ``HTTP/1.1``."""


class MalformedHeaderLine(HTTPParseError):
    """Header line has no colon, or its key is empty after trimming."""


class LineTooLong(HTTPParseError):
    """A request or header line grew past the configured limit before its CRLF."""


class IncompleteLine(EOFError):
    """
    The stream ended before a CRLF terminator arrived.

    Subclasses EOFError so callers that only care about "the peer is gone"
    can catch the builtin. ``partial`` holds whatever bytes were buffered
    when the stream ended (empty if the peer closed between requests).
    """

    def __init__(self, partial: bytes = b""):
        super().__init__(
            f"stream ended before CRLF ({len(partial)} bytes buffered)"
        )
        self.partial = partial


class ResolutionError(Exception):
    """A request could not be mapped to a servable file."""

    def __init__(self, reason: str, host: str = "", target: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.host = host
        self.target = target
