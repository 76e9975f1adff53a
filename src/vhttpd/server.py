"""
=============================================================================
HTTP SERVER
=============================================================================

Wires the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTPServer                                                         │
    │                                                                     │
    │   ServerConfig ──validate()──► VirtualHostResolver (read-only)      │
    │                                                                     │
    │   SocketServer.start(_on_accept)                                    │
    │        │                                                            │
    │        └──► for each accepted socket:                               │
    │                 Connection(socket, handler=resolver.handle)         │
    │                 threading.Thread(target=connection.serve).start()   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONCURRENCY MODEL
=============================================================================

One thread per connection. Threads share only immutable state: the
resolver's host table and the stateless request parser. A slow or stuck
client ties up its own thread and nothing else.

Within a connection everything is strictly sequential. Request N+1 is not
read until response N has been flushed.

There is no cap on the number of connections. The idle deadline is what
reclaims threads from clients that stop talking.

=============================================================================
"""

import logging
import socket
import threading
from typing import Optional, Tuple

from .access_log import AccessLogger
from .config import ServerConfig, log_level_number
from .core import Connection, SocketServer
from .handlers import VirtualHostResolver
from .http import RequestParser


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure root logging for the process.

    ``log_format`` only affects the access log; diagnostic lines always use
    the plain text format below.
    """
    numeric_level = log_level_number(level)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("vhttpd").setLevel(numeric_level)


class HTTPServer:
    """
    Static file server for a set of virtual hosts.

    Usage:

        config = ServerConfig(port=8080, virtual_hosts={"a.com": "/srv/a"})
        HTTPServer(config).run()          # blocks until SIGINT/SIGTERM

    In tests, run it on a background thread and stop it with shutdown().
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.resolver = VirtualHostResolver(self.config.virtual_hosts)
        self._parser = RequestParser()
        self._access_log = AccessLogger(self.config.log_format)
        self._socket_server = SocketServer(self.config)

        self._threads_lock = threading.Lock()
        self._threads: set[threading.Thread] = set()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    @property
    def active_connections(self) -> int:
        with self._threads_lock:
            return len(self._threads)

    def run(self) -> None:
        """Start listening and serve until shutdown(). Blocks."""
        logger.info(
            f"Starting {self.config.server_name} with hosts: "
            f"{', '.join(self.resolver.hosts)}"
        )
        try:
            self._socket_server.start(self._on_accept)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            logger.info(f"Server stopped ({self.active_connections} connections still open)")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def shutdown(self) -> None:
        """
        Stop accepting new connections.

        Connections already being served run to completion; the idle
        deadline guarantees they end.
        """
        self._socket_server.shutdown()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _on_accept(self, client_socket: socket.socket, client_address) -> None:
        conn = Connection(
            socket=client_socket,
            address=client_address,
            handler=self.resolver.handle,
            idle_timeout=self.config.idle_timeout,
            buffer_size=self.config.buffer_size,
            max_line_size=self.config.max_line_size,
            parser=self._parser,
            access_log=self._access_log,
        )
        thread = threading.Thread(
            target=self._run_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads.add(thread)
        thread.start()

    def _run_connection(self, conn: Connection) -> None:
        try:
            conn.serve()
        except Exception:
            logger.exception(f"[{conn.id}] Unexpected error while serving")
        finally:
            with self._threads_lock:
                self._threads.discard(threading.current_thread())
