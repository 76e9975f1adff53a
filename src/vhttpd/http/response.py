"""
=============================================================================
HTTP RESPONSE MODEL & SERIALIZER
=============================================================================

A Response is a small data container plus a writer that puts it on the
wire. The body is never held in the Response itself: a successful
response only remembers *which file* to send, and the file is read while
serializing.

=============================================================================
WIRE FORMAT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 200 OK\r\n                          ← status line         │
    │  Connection: close\r\n                        ← only if closing     │
    │  Content-Length: 1234\r\n                     ┐                     │
    │  Content-Type: text/html\r\n                  │ sorted by name      │
    │  Date: Sun, 06 Nov 1994 08:49:37 GMT\r\n      │                     │
    │  Last-Modified: Sat, 05 Nov 1994 ... GMT\r\n  ┘                     │
    │  \r\n                                         ← end of headers      │
    │  <file bytes>                                 ← 200 only            │
    └─────────────────────────────────────────────────────────────────────┘

Headers are written in sorted order so the same header mapping always
produces the same bytes, whatever order it was built in.

=============================================================================
THE THREE RESPONSES
=============================================================================

    ok(request, file)     200, file metadata headers, Connection: close
                          iff the request asked for it
    not_found(request)    404, no body, Connection: close iff requested
    bad_request()         400, no body, Connection: close always, no
                          request and no file attached

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, BinaryIO, Dict, Optional, Union

from .mime_types import media_type
from .request import Request, SUPPORTED_VERSION
from .status_codes import HTTPStatus

if TYPE_CHECKING:
    from ..handlers.vhost import ResolvedFile


@dataclass
class Response:
    """
    One outgoing response.

    Attributes:
        status: Status code (enum member, compares equal to the int).
        headers: Header name → value. Serialized in sorted key order.
        request: The request this answers, None for 400 responses.
        file_path: Absolute path of the body file, 200 responses only.
        version: Protocol version for the status line.
    """

    status: HTTPStatus
    headers: Dict[str, str] = field(default_factory=dict)
    request: Optional[Request] = None
    file_path: Optional[str] = None
    version: str = SUPPORTED_VERSION

    @property
    def status_text(self) -> str:
        return self.status.phrase

    @property
    def status_line(self) -> str:
        """e.g. ``HTTP/1.1 404 Not Found``"""
        return f"{self.version} {self.status:d} {self.status_text}"

    @property
    def closes_connection(self) -> bool:
        """True when the response announces that the connection will close."""
        return self.headers.get("Connection") == "close"

    @property
    def has_body(self) -> bool:
        return self.status.is_success and self.file_path is not None

    def head_bytes(self) -> bytes:
        """Status line, sorted headers and the terminating empty line."""
        lines = [self.status_line]
        for name in sorted(self.headers):
            lines.append(f"{name}: {self.headers[name]}")
        lines.append("")
        return ("\r\n".join(lines) + "\r\n").encode("utf-8")

    def write_to(self, sink: BinaryIO) -> int:
        """
        Serialize the response into ``sink`` and flush it.

        The body file is opened, read in full and closed inside this call.
        Any OSError (file vanished, peer reset, broken pipe) propagates at
        the step where it happened and nothing more is written.

        Args:
            sink: Binary writable with ``write`` and ``flush``, usually
                  ``socket.makefile("wb")``.

        Returns:
            Number of body bytes written.
        """
        sink.write(self.head_bytes())
        sink.flush()

        if not self.has_body:
            return 0

        with open(self.file_path, "rb") as f:
            body = f.read()

        sink.write(body)
        sink.flush()
        return len(body)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(when: Union[datetime, float, None] = None) -> str:
    """
    Format a time as an HTTP-date (RFC 7231 IMF-fixdate).

        >>> format_http_date(784111777)
        'Sun, 06 Nov 1994 08:49:37 GMT'

    Args:
        when: Aware datetime, POSIX timestamp, or None for "now".
              Always rendered in UTC.
    """
    if when is None:
        dt = datetime.now(timezone.utc)
    elif isinstance(when, datetime):
        dt = when.astimezone(timezone.utc)
    else:
        dt = datetime.fromtimestamp(when, tz=timezone.utc)

    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def _base_headers(request: Optional[Request]) -> Dict[str, str]:
    headers = {"Date": format_http_date()}
    if request is not None and request.close:
        headers["Connection"] = "close"
    return headers


# =============================================================================
# RESPONSE CONSTRUCTORS
# =============================================================================

def ok(request: Request, resolved: "ResolvedFile") -> Response:
    """
    200 OK for a file the resolver found.

    Adds Content-Length, Content-Type (media type only) and Last-Modified
    from the file's metadata.
    """
    headers = _base_headers(request)
    headers["Content-Length"] = str(resolved.size)
    headers["Content-Type"] = media_type(resolved.path)
    headers["Last-Modified"] = format_http_date(resolved.modified)

    return Response(
        status=HTTPStatus.OK,
        headers=headers,
        request=request,
        file_path=resolved.path,
    )


def not_found(request: Optional[Request]) -> Response:
    """404 Not Found. No body; Connection: close only if the request asked."""
    return Response(
        status=HTTPStatus.NOT_FOUND,
        headers=_base_headers(request),
        request=request,
    )


def bad_request() -> Response:
    """
    400 Bad Request.

    Always carries Connection: close. There is no request to attach,
    because the bytes never parsed into one.
    """
    headers = _base_headers(None)
    headers["Connection"] = "close"
    return Response(status=HTTPStatus.BAD_REQUEST, headers=headers)
