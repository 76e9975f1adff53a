"""
Socket-level components.

    socket_server.py   listening socket and accept loop
    connection.py      per-connection request loop (state machine)
"""

from .connection import (
    Connection,
    ConnectionState,
    ReadOutcome,
    ReadResult,
)
from .socket_server import SocketServer

__all__ = [
    "Connection",
    "ConnectionState",
    "ReadOutcome",
    "ReadResult",
    "SocketServer",
]
