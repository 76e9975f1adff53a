"""
=============================================================================
CONNECTION STATE MACHINE
=============================================================================

Drives one accepted TCP connection from first byte to close.

=============================================================================
STATES
=============================================================================

    ┌──────────────────┐  arm idle deadline   ┌──────────────────┐
    │ AWAITING_REQUEST │ ───────────────────► │     SERVING      │
    │   (initial)      │                      │ parse → resolve  │
    └──────────────────┘ ◄─────────────────── │ → respond        │
              ▲           response written,   └────────┬─────────┘
              │           no close requested           │
              │                                        │ end of stream
              │                                        │ idle timeout
              │                                        │ socket error
              │                                        │ malformed request (after 400)
              │                                        │ Connection: close
              │                                        │ write failure
              │                                        ▼
              │                               ┌──────────────────┐
              └─ (never) ──────────────────── │     CLOSING      │
                                              │   (terminal)     │
                                              └──────────────────┘

=============================================================================
THE IDLE DEADLINE
=============================================================================

The deadline is an absolute point in time, armed fresh before every parse
attempt:

    deadline = now + idle_timeout

Every recv() made while parsing gets only the time that is left:

    ┌─────────────────────────────────────────────────────────────────┐
    │  t=0.0   deadline armed (idle_timeout = 5s)                     │
    │  t=1.0   recv() with timeout 4.0  → b"GET / HT"                 │
    │  t=4.5   recv() with timeout 0.5  → b"TP/1.1\r\n"               │
    │  t=5.0   recv() with timeout 0.0  → socket.timeout              │
    └─────────────────────────────────────────────────────────────────┘

A client that drips one byte per second can therefore not hold a
connection open forever, while a client that keeps sending complete
requests within the window can keep the connection as long as it likes.

A timeout is never answered. Whether zero bytes or half a request line
arrived, the connection closes silently.

Writes are not covered by the deadline. The socket is switched back to
fully blocking before a response is written.

=============================================================================
READ OUTCOMES
=============================================================================

Each parse attempt is reduced to a tagged ReadResult:

    REQUEST          → resolve, respond, maybe loop
    END_OF_STREAM    → close, nothing written
    TIMEOUT          → close, nothing written
    TRANSPORT_ERROR  → close, nothing written
    MALFORMED        → write 400 (Connection: close), then close

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, BinaryIO, Callable, Optional

from ..access_log import AccessLogger
from ..http.errors import HTTPParseError
from ..http.reader import DEFAULT_MAX_LINE_SIZE, LineReader
from ..http.request import Request, RequestParser
from ..http.response import Response, bad_request


logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 5.0

# Upper bound on how long close() waits for the peer's FIN.
_DRAIN_TIMEOUT = 0.5


class ConnectionState(Enum):
    AWAITING_REQUEST = "awaiting_request"
    SERVING = "serving"
    CLOSING = "closing"


class ReadOutcome(Enum):
    REQUEST = "request"
    END_OF_STREAM = "end_of_stream"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    MALFORMED = "malformed"


@dataclass
class ReadResult:
    """What one parse attempt produced."""

    outcome: ReadOutcome
    request: Optional[Request] = None
    error: Optional[BaseException] = None


@dataclass
class Connection:
    """
    One client connection and its request loop.

    Attributes:
        socket: The accepted client socket.
        address: Peer address as returned by accept().
        handler: Turns a parsed Request into a Response.
        idle_timeout: Seconds allowed for each request to arrive in full.
        buffer_size: Bytes per recv() call.
        max_line_size: Longest request or header line accepted.
        parser: Shared, stateless request parser.
        access_log: Where to record each response, None to skip.
        id: Short random id used in log lines.
        state: Current ConnectionState.
        requests_handled: Responses written so far.
    """

    socket: socket.socket
    address: Any
    handler: Callable[[Request], Response]
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    buffer_size: int = 4096
    max_line_size: int = DEFAULT_MAX_LINE_SIZE
    parser: RequestParser = field(default_factory=RequestParser)
    access_log: Optional[AccessLogger] = None

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.AWAITING_REQUEST
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    _deadline: Optional[float] = field(default=None, repr=False)
    _reader: LineReader = field(init=False, repr=False)
    _writer: BinaryIO = field(init=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self._reader = LineReader(self, self.buffer_size, self.max_line_size)
        self._writer = self.socket.makefile("wb")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        if isinstance(self.address, tuple) and self.address:
            return str(self.address[0])
        return str(self.address or "")

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSING

    # =========================================================================
    # READING
    # =========================================================================

    def arm_deadline(self) -> None:
        """Start a fresh idle window for the next request."""
        self._deadline = time.monotonic() + self.idle_timeout

    def recv(self, bufsize: int) -> bytes:
        """
        socket.recv() bounded by the armed deadline.

        This is the byte source behind the connection's LineReader.

        Raises:
            socket.timeout: The deadline has passed, or passes while waiting.
            OSError: Any other socket failure.
        """
        if self._deadline is None:
            self.socket.settimeout(None)
        else:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("idle deadline exceeded")
            self.socket.settimeout(remaining)
        return self.socket.recv(bufsize)

    def next_request(self) -> ReadResult:
        """
        Parse one request under the armed deadline.

        Never raises for anything the peer can cause; every failure comes
        back as a tagged ReadResult.
        """
        try:
            request = self.parser.parse(self._reader)
        except EOFError as e:
            # includes IncompleteLine: stream ended mid-line
            return ReadResult(ReadOutcome.END_OF_STREAM, error=e)
        except socket.timeout as e:
            return ReadResult(ReadOutcome.TIMEOUT, error=e)
        except HTTPParseError as e:
            return ReadResult(ReadOutcome.MALFORMED, error=e)
        except OSError as e:
            return ReadResult(ReadOutcome.TRANSPORT_ERROR, error=e)
        return ReadResult(ReadOutcome.REQUEST, request=request)

    # =========================================================================
    # THE LOOP
    # =========================================================================

    def serve(self) -> None:
        """
        Run the request loop until the connection reaches CLOSING.

        Always closes the socket before returning.
        """
        logger.debug(f"[{self.id}] Connection opened from {self.client_ip or 'local'}")
        try:
            while not self.is_closed:
                self._serve_one()
        finally:
            self.close()

    def _serve_one(self) -> None:
        # ─────────────────────────────────────────────────────────────────
        # AWAITING_REQUEST → SERVING
        # ─────────────────────────────────────────────────────────────────
        self.arm_deadline()
        self.state = ConnectionState.SERVING
        result = self.next_request()
        started = time.monotonic()

        # ─────────────────────────────────────────────────────────────────
        # Nothing to answer: peer gone, idle, or socket broken
        # ─────────────────────────────────────────────────────────────────
        if result.outcome is ReadOutcome.END_OF_STREAM:
            logger.debug(f"[{self.id}] Peer closed the connection")
            self.state = ConnectionState.CLOSING
            return

        if result.outcome is ReadOutcome.TIMEOUT:
            logger.debug(f"[{self.id}] Idle timeout after {self.idle_timeout}s")
            self.state = ConnectionState.CLOSING
            return

        if result.outcome is ReadOutcome.TRANSPORT_ERROR:
            logger.info(f"[{self.id}] Read failed: {result.error}")
            self.state = ConnectionState.CLOSING
            return

        # ─────────────────────────────────────────────────────────────────
        # Malformed: answer 400 and close unconditionally
        # ─────────────────────────────────────────────────────────────────
        if result.outcome is ReadOutcome.MALFORMED:
            logger.info(f"[{self.id}] Bad request: {result.error}")
            self._send(bad_request(), started)
            self.state = ConnectionState.CLOSING
            return

        # ─────────────────────────────────────────────────────────────────
        # Well-formed: resolve, respond, decide
        # ─────────────────────────────────────────────────────────────────
        request = result.request
        response = self.handler(request)
        sent = self._send(response, started)

        if not sent or request.close or response.closes_connection:
            self.state = ConnectionState.CLOSING
        else:
            self.state = ConnectionState.AWAITING_REQUEST

    # =========================================================================
    # WRITING
    # =========================================================================

    def _send(self, response: Response, started: float) -> bool:
        """
        Write ``response`` with blocking I/O.

        Returns:
            True if every byte was written and flushed, False on failure.
        """
        self._deadline = None
        body_bytes = 0
        try:
            self.socket.settimeout(None)
            body_bytes = response.write_to(self._writer)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        finally:
            self._log_access(response, body_bytes, started)

        self.requests_handled += 1
        return True

    def _log_access(self, response: Response, body_bytes: int, started: float) -> None:
        if self.access_log is None:
            return
        request = response.request
        self.access_log.log(self.access_log.entry(
            connection_id=self.id,
            client_ip=self.client_ip,
            request_line=request.request_line if request else "-",
            host=request.host if request else "-",
            status_code=response.status,
            body_bytes=body_bytes,
            started=started,
        ))

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection. Safe to call more than once.

        Sends FIN first and briefly drains what the peer still sends, so a
        400 written just before closing is not destroyed by a TCP reset.
        """
        self.state = ConnectionState.CLOSING

        if self.socket.fileno() == -1:
            return

        try:
            self._writer.close()
        except OSError:
            pass  # unflushed bytes of a failed write

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            drain_until = time.monotonic() + _DRAIN_TIMEOUT
            while True:
                remaining = drain_until - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(self.buffer_size):
                    break
        except OSError:
            pass  # includes socket.timeout

        try:
            self.socket.close()
        except OSError:
            pass

        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} responses")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
