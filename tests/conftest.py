"""
pytest configuration and fixtures.
"""

import socket
import threading
from dataclasses import dataclass, field
from typing import Dict, Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vhttpd import HTTPServer, ServerConfig
from vhttpd.core import Connection
from vhttpd.handlers import VirtualHostResolver


INDEX_HTML = b"<html><body>a.com home</body></html>\n"
DOCS_HTML = b"<html><body>a.com docs</body></html>\n"
STYLE_CSS = b"body { color: red; }\n"
BINARY = bytes(range(256)) * 4


@pytest.fixture
def sites(tmp_path: Path) -> Dict[str, Path]:
    """
    Two document roots plus a file outside both of them.

        tmp_path/
        ├── secret.txt
        ├── a.com/
        │   ├── index.html
        │   ├── style.css
        │   ├── data.bin
        │   ├── docs/index.html
        │   ├── empty/
        │   └── weird/index.html/      (a directory named index.html)
        └── b.org/
            └── hello.txt
    """
    (tmp_path / "secret.txt").write_text("do not serve")

    a = tmp_path / "a.com"
    (a / "docs").mkdir(parents=True)
    (a / "empty").mkdir()
    (a / "weird" / "index.html").mkdir(parents=True)
    (a / "index.html").write_bytes(INDEX_HTML)
    (a / "style.css").write_bytes(STYLE_CSS)
    (a / "data.bin").write_bytes(BINARY)
    (a / "docs" / "index.html").write_bytes(DOCS_HTML)

    b = tmp_path / "b.org"
    b.mkdir()
    (b / "hello.txt").write_text("hello from b.org\n")

    return {"a.com": a, "b.org": b}


@pytest.fixture
def virtual_hosts(sites: Dict[str, Path]) -> Dict[str, str]:
    return {host: str(root) for host, root in sites.items()}


@pytest.fixture
def resolver(virtual_hosts: Dict[str, str]) -> VirtualHostResolver:
    return VirtualHostResolver(virtual_hosts)


class ChunkedSource:
    """
    Test double for a socket: hands out pre-recorded chunks from recv().

    When the chunks run out it either reports end of stream (b"") or
    raises ``exhausted_error`` if one is given.
    """

    def __init__(self, chunks: List[bytes], exhausted_error: Optional[BaseException] = None):
        self.chunks = list(chunks)
        self.exhausted_error = exhausted_error
        self.calls = 0

    def recv(self, bufsize: int) -> bytes:
        self.calls += 1
        if self.chunks:
            chunk = self.chunks.pop(0)
            if len(chunk) > bufsize:
                self.chunks.insert(0, chunk[bufsize:])
                chunk = chunk[:bufsize]
            return chunk
        if self.exhausted_error is not None:
            raise self.exhausted_error
        return b""


@dataclass
class RawResponse:
    status_line: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def status(self) -> int:
        return int(self.status_line.split(" ")[1])


class ResponseReader:
    """Reads responses off a client socket, one at a time."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.buffer = b""

    def _fill(self) -> bool:
        chunk = self.sock.recv(65536)
        self.buffer += chunk
        return bool(chunk)

    def read_response(self) -> RawResponse:
        while b"\r\n\r\n" not in self.buffer:
            if not self._fill():
                raise EOFError(f"connection closed, buffered {self.buffer!r}")

        head, self.buffer = self.buffer.split(b"\r\n\r\n", 1)
        lines = head.decode("utf-8").split("\r\n")
        response = RawResponse(status_line=lines[0])
        for line in lines[1:]:
            name, _, value = line.partition(": ")
            response.headers[name] = value

        length = int(response.headers.get("Content-Length", "0")) if response.status == 200 else 0
        while len(self.buffer) < length:
            if not self._fill():
                raise EOFError("connection closed mid-body")
        response.body, self.buffer = self.buffer[:length], self.buffer[length:]
        return response

    def at_eof(self) -> bool:
        """True if the server closed its side with nothing left unread."""
        return not self.buffer and not self._fill()


@pytest.fixture
def serve_connection(resolver: VirtualHostResolver):
    """
    Start a Connection on one end of a socketpair, serving in a thread.

    Returns a factory: ``client, conn, thread = serve_connection(idle_timeout=...)``
    """
    started = []

    def _start(idle_timeout: float = 1.0, access_log=None, handler=None, **options):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(
            socket=server_sock,
            address=("127.0.0.1", 54321),
            handler=handler or resolver.handle,
            idle_timeout=idle_timeout,
            access_log=access_log,
            **options,
        )
        thread = threading.Thread(target=conn.serve, daemon=True)
        thread.start()
        client_sock.settimeout(5.0)
        started.append((client_sock, thread))
        return client_sock, conn, thread

    yield _start

    for client_sock, thread in started:
        client_sock.close()
        thread.join(timeout=5.0)


@pytest.fixture
def live_server(virtual_hosts: Dict[str, str]) -> Generator[HTTPServer, None, None]:
    """An HTTPServer on an ephemeral port, running in a background thread."""
    server = HTTPServer(ServerConfig(
        host="127.0.0.1",
        port=0,
        idle_timeout=0.5,
        virtual_hosts=virtual_hosts,
        log_level="WARNING",
    ))
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    if not server.wait_until_ready(timeout=5.0):
        raise RuntimeError("Server failed to start")

    yield server

    server.shutdown()
    thread.join(timeout=5.0)
