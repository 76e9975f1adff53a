"""
=============================================================================
CRLF LINE READER
=============================================================================

HTTP/1.1 framing for a body-less request is entirely line based:

    GET /index.html HTTP/1.1\r\n     ← request line
    Host: a.com\r\n                  ← header line
    Connection: close\r\n            ← header line
    \r\n                             ← empty line = end of request

TCP does not deliver lines. A single recv() can return half a line, or a
line and a half, or the tail of one request plus the start of the next:

    recv() → b"GET /index.ht"
    recv() → b"ml HTTP/1.1\r\nHo"
    recv() → b"st: a.com\r\n\r\n"

LineReader keeps a byte buffer between calls and only hands out a line
once its CRLF has arrived. Bytes after the CRLF stay buffered for the next
call, including bytes that belong to the next request on the connection.

=============================================================================
TERMINATOR RULES
=============================================================================

    b"abc\r\n"              → "abc"
    b"abc\ndef\r\n"         → "abc\ndef"     (bare LF is just another byte)
    b"abc\n" then EOF       → IncompleteLine (LF alone never terminates)
    b"abc" then EOF         → IncompleteLine
    recv() raises           → the exception propagates unchanged
    over max_line_size      → LineTooLong (answered with 400)

=============================================================================
"""

from typing import Protocol

from .errors import IncompleteLine, LineTooLong


CRLF = b"\r\n"

DEFAULT_MAX_LINE_SIZE = 8192


class ByteSource(Protocol):
    """Anything with a socket-style ``recv`` (a socket, or a test double)."""

    def recv(self, bufsize: int) -> bytes:
        ...


class LineReader:
    """
    Buffered CRLF line reader over a ByteSource.

    Usage:

        reader = LineReader(sock)
        request_line = reader.read_line()     # "GET / HTTP/1.1"

    Timeouts and socket errors raised by ``source.recv`` are not caught
    here. The caller decides what a timeout means.

    A line longer than ``max_line_size`` bytes (CRLF excluded) raises
    LineTooLong as soon as that is certain, without waiting for the CRLF.
    """

    def __init__(
        self,
        source: ByteSource,
        buffer_size: int = 4096,
        max_line_size: int = DEFAULT_MAX_LINE_SIZE,
    ):
        self._source = source
        self.buffer_size = buffer_size
        self.max_line_size = max_line_size
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of bytes received but not yet returned as a line."""
        return len(self._buffer)

    def read_line(self) -> str:
        """
        Return the next line with its CRLF stripped.

        Raises:
            LineTooLong: The line exceeds ``max_line_size``.
            IncompleteLine: The source reported end of stream before CRLF.
            OSError: Anything the source raised, including socket.timeout.
        """
        search_from = 0

        while True:
            end = self._buffer.find(CRLF, search_from)
            if end != -1:
                if end > self.max_line_size:
                    raise LineTooLong(f"line exceeds {self.max_line_size} bytes")
                line = bytes(self._buffer[:end])
                del self._buffer[:end + len(CRLF)]
                return line.decode("utf-8", errors="replace")

            # Without a CRLF, all but a trailing CR belongs to the line.
            if len(self._buffer) > self.max_line_size + 1:
                raise LineTooLong(f"line exceeds {self.max_line_size} bytes")

            # A CR at the very end may pair with an LF in the next chunk.
            search_from = max(len(self._buffer) - 1, 0)

            chunk = self._source.recv(self.buffer_size)
            if not chunk:
                partial = bytes(self._buffer)
                self._buffer.clear()
                raise IncompleteLine(partial)

            self._buffer += chunk
