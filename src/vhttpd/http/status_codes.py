"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The server only ever produces three status codes:

    ┌──────┬───────────────┬──────────────────────────────────────────────┐
    │ Code │ Phrase        │ When                                         │
    ├──────┼───────────────┼──────────────────────────────────────────────┤
    │ 200  │ OK            │ Request resolved to a file, body is streamed │
    │ 400  │ Bad Request   │ Request bytes could not be parsed            │
    │ 404  │ Not Found     │ Unknown host, missing file or missing index  │
    └──────┴───────────────┴──────────────────────────────────────────────┘

The set is fixed, so the code → phrase table is a module constant that is
built once at import time and never mutated.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    Status codes produced by the server.

    Inherits from IntEnum so a member compares equal to its number and
    formats as the bare number inside f-strings:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> f"{HTTPStatus.OK:d}"
        '200'
    """

    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404

    @property
    def phrase(self) -> str:
        """
        Canonical reason phrase for the status line.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      │
                      │      └── phrase
                      └───────── code
        """
        return _STATUS_PHRASES[self]

    @property
    def is_success(self) -> bool:
        """True for 2xx codes. Only successful responses carry a body."""
        return 200 <= self < 300


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
}
