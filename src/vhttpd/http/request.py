"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns CRLF-terminated lines from a LineReader into an immutable Request.

=============================================================================
WHAT THE SERVER ACCEPTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  REQUEST LINE                                                       │
    │                                                                     │
    │    GET /docs/index.html HTTP/1.1\r\n                                │
    │    ─┬─ ────────┬─────── ────┬───                                    │
    │     │          │            │                                       │
    │   method     target      version                                    │
    │   (GET only) (starts /)  (HTTP/1.1 only)                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │  HEADERS (zero or more)                                             │
    │                                                                     │
    │    Host: a.com\r\n               → request.host = "a.com"           │
    │    connection:   close  \r\n     → request.close = True             │
    │    X-Anything: kept\r\n          → request.headers["X-Anything"]    │
    ├─────────────────────────────────────────────────────────────────────┤
    │  EMPTY LINE                                                         │
    │                                                                     │
    │    \r\n                          → request complete                 │
    └─────────────────────────────────────────────────────────────────────┘

There is no body. A request that carries one is not supported, and its
bytes would be read as the next request line.

=============================================================================
ERROR MAPPING
=============================================================================

    Request line not three tokens      → MalformedRequestLine
    Method other than GET              → UnsupportedMethod
    Target not starting with "/"       → InvalidTarget
    Version other than HTTP/1.1        → UnsupportedProtocol
    Header with no colon / empty key   → MalformedHeaderLine

    End of stream, timeout, socket errors → raised as-is from the reader

Checks run in that order, so "POST nope HTTP/9" reports the method.

=============================================================================
"""

import string
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from .errors import (
    InvalidTarget,
    MalformedHeaderLine,
    MalformedRequestLine,
    UnsupportedMethod,
    UnsupportedProtocol,
)
from .reader import LineReader


SUPPORTED_METHOD = "GET"
SUPPORTED_VERSION = "HTTP/1.1"

_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")


def canonical_header_key(key: str) -> str:
    """
    Normalize a header name to its canonical form.

    The first letter and every letter following a hyphen are upper-cased,
    everything else is lower-cased:

        >>> canonical_header_key("content-TYPE")
        'Content-Type'
        >>> canonical_header_key("HOST")
        'Host'

    Names containing characters that are not valid in an HTTP token
    (spaces, for example) are returned unchanged.
    """
    if not key or any(ch not in _TOKEN_CHARS for ch in key):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


@dataclass(frozen=True)
class Request:
    """
    A parsed request.

    Frozen, and ``headers`` is a read-only view, so nothing downstream of
    the parser can change what the client sent.

    Attributes:
        method: Always "GET".
        target: Request target exactly as sent, e.g. "/docs/".
        version: Always "HTTP/1.1".
        headers: Canonical header name → trimmed value. Last one wins.
        host: Value of the Host header, "" if absent.
        close: True iff the Connection header value is exactly "close".
    """

    method: str
    target: str
    version: str = SUPPORTED_VERSION
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    host: str = ""
    close: bool = False

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.target} {self.version}"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(canonical_header_key(name), default)


class RequestParser:
    """
    Reads one request at a time from a LineReader.

    The parser is stateless; all buffering lives in the reader, so one
    parser instance can be shared by every connection.

        parser = RequestParser()
        reader = LineReader(sock)
        request = parser.parse(reader)
    """

    def parse(self, reader: LineReader) -> Request:
        """
        Parse the next request from ``reader``.

        Returns:
            The parsed Request.

        Raises:
            HTTPParseError: A subclass naming what was wrong with the bytes.
            IncompleteLine: End of stream before the request was complete.
            OSError: Timeout or socket error from the reader.
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Request line
        # ─────────────────────────────────────────────────────────────────
        method, target, _ = self._parse_request_line(reader.read_line())

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: Headers until the empty line
        # ─────────────────────────────────────────────────────────────────
        headers: dict[str, str] = {}
        while True:
            line = reader.read_line()
            if line == "":
                break
            key, value = self._parse_header_line(line)
            headers[key] = value

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: Special headers
        # ─────────────────────────────────────────────────────────────────
        # Derived from the final mapping so duplicate headers resolve the
        # same way for field access and for generic lookup.
        return Request(
            method=method,
            target=target,
            version=SUPPORTED_VERSION,
            headers=MappingProxyType(headers),
            host=headers.get("Host", ""),
            close=headers.get("Connection") == "close",
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        tokens = line.split(" ")
        if len(tokens) != 3:
            raise MalformedRequestLine(
                f"Invalid request line: expected 3 tokens, got {len(tokens)}", line
            )

        method, target, version = tokens

        if method != SUPPORTED_METHOD:
            raise UnsupportedMethod(f"Unsupported method: {method!r}", line)

        if not target.startswith("/"):
            raise InvalidTarget(f"Invalid target: {target!r}", line)

        if version != SUPPORTED_VERSION:
            raise UnsupportedProtocol(f"Unsupported protocol: {version!r}", line)

        return method, target, version

    def _parse_header_line(self, line: str) -> Tuple[str, str]:
        """
        Split ``Key: value`` on the first colon.

            "Host: a.com"          → ("Host", "a.com")
            "  x-id  :  a:b:c  "   → ("X-Id", "a:b:c")
            "Host a.com"           → MalformedHeaderLine (no colon)
            "   : value"           → MalformedHeaderLine (empty key)
        """
        key, sep, value = line.partition(":")
        if not sep:
            raise MalformedHeaderLine("Header line has no colon", line)

        key = key.strip()
        if not key:
            raise MalformedHeaderLine("Header line has an empty key", line)

        return canonical_header_key(key), value.strip()


def read_request(reader: LineReader) -> Request:
    """Parse one request from ``reader`` with a default RequestParser."""
    return RequestParser().parse(reader)
