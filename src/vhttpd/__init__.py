"""
=============================================================================
VHTTPD - Static File HTTP/1.1 Server With Virtual Hosts
=============================================================================

A small origin server built directly on sockets. It answers GET requests
by streaming files out of per-host document roots, over persistent
connections with an idle deadline.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    vhttpd/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m vhttpd)
    ├── server.py            # HTTPServer: listener + one thread per connection
    ├── config.py            # ServerConfig dataclass, vhosts file loading
    ├── access_log.py        # Access log records (text / JSON)
    ├── core/
    │   ├── socket_server.py # Listening socket, accept loop, signals
    │   └── connection.py    # Per-connection state machine
    ├── http/
    │   ├── reader.py        # CRLF line reader
    │   ├── request.py       # Request + RequestParser
    │   ├── response.py      # Response + serializer
    │   ├── status_codes.py  # 200 / 400 / 404
    │   ├── mime_types.py    # Extension → media type
    │   └── errors.py        # Exception taxonomy
    └── handlers/
        └── vhost.py         # Host + target → file in a document root

=============================================================================
QUICK START
=============================================================================

    from vhttpd import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(
        port=8080,
        virtual_hosts={"localhost": "./public"},
    ))
    server.run()

    $ curl -H "Host: localhost" http://127.0.0.1:8080/

=============================================================================
"""

__version__ = "1.0.0"

from .config import ConfigError, ServerConfig
from .server import HTTPServer, setup_logging

__all__ = ["HTTPServer", "ServerConfig", "ConfigError", "setup_logging", "__version__"]
