"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All knobs live in one dataclass, ServerConfig. It can be built three ways:

    # In code
    ServerConfig(port=8080, virtual_hosts={"a.com": "./sites/a"})

    # From the environment
    VHTTPD_PORT=8080 VHTTPD_VHOSTS=./vhosts.json python -m vhttpd

    # From the command line (see __main__.py)
    python -m vhttpd --port 8080 --vhost a.com=./sites/a

=============================================================================
VIRTUAL HOSTS FILE
=============================================================================

A JSON object mapping host names to document roots:

    {
        "a.com": "sites/a",
        "b.org": "/srv/www/b"
    }

Relative roots are resolved against the directory the JSON file is in,
so the file can travel together with the sites it describes.

=============================================================================
VALIDATION
=============================================================================

validate() runs once at startup and raises ConfigError on the first
problem it finds. After it returns, every document root is an absolute
path to an existing directory, and the connection code never has to
check again.

=============================================================================
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .http.reader import DEFAULT_MAX_LINE_SIZE


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


class ConfigError(ValueError):
    """Invalid configuration. Raised before any socket is opened."""


@dataclass
class ServerConfig:
    """
    Configuration for the server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK          host, port, backlog, buffer_size
    HTTP             idle_timeout, max_line_size
    VIRTUAL HOSTS    virtual_hosts
    LOGGING          log_level, log_format
    IDENTITY         server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on every interface."""

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free one."""

    backlog: int = 128
    """Completed handshakes the kernel queues before refusing."""

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    idle_timeout: float = 5.0
    """
    Seconds a connection may take to deliver each complete request.
    Re-armed before every request, so busy keep-alive clients stay
    connected and idle ones are dropped.
    """

    max_line_size: int = DEFAULT_MAX_LINE_SIZE
    """
    Longest request or header line accepted, CRLF excluded. Anything
    longer is answered with 400 and the connection closes.
    """

    # ─────────────────────────────────────────────────────────────────────
    # VIRTUAL HOSTS
    # ─────────────────────────────────────────────────────────────────────

    virtual_hosts: Dict[str, str] = field(default_factory=dict)
    """Host header value → document root directory."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: "text" (common log style) or "json"."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "vhttpd/1.0"
    """Shown in the startup log line. Not sent to clients."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from environment variables.

        VHTTPD_HOST          bind address (default 127.0.0.1)
        VHTTPD_PORT          port (default 8080)
        VHTTPD_IDLE_TIMEOUT  seconds (default 5)
        VHTTPD_MAX_LINE_SIZE bytes (default 8192)
        VHTTPD_VHOSTS        path to a virtual hosts JSON file
        VHTTPD_LOG_LEVEL     DEBUG / INFO / WARNING / ERROR (default INFO)
        VHTTPD_LOG_FORMAT    text / json (default text)

        Raises:
            ConfigError: A numeric variable does not parse, or the
                         virtual hosts file is unreadable.
        """
        try:
            port = int(os.getenv("VHTTPD_PORT", "8080"))
            idle_timeout = float(os.getenv("VHTTPD_IDLE_TIMEOUT", "5"))
            max_line_size = int(os.getenv("VHTTPD_MAX_LINE_SIZE", str(DEFAULT_MAX_LINE_SIZE)))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric environment variable: {e}") from e

        vhosts_file = os.getenv("VHTTPD_VHOSTS")
        virtual_hosts = load_virtual_hosts(vhosts_file) if vhosts_file else {}

        return cls(
            host=os.getenv("VHTTPD_HOST", "127.0.0.1"),
            port=port,
            idle_timeout=idle_timeout,
            max_line_size=max_line_size,
            virtual_hosts=virtual_hosts,
            log_level=os.getenv("VHTTPD_LOG_LEVEL", "INFO"),
            log_format=os.getenv("VHTTPD_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Check every value and normalize document roots to absolute paths.

        Raises:
            ConfigError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ConfigError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ConfigError("buffer_size must be >= 1")

        if self.max_line_size < 1:
            raise ConfigError("max_line_size must be >= 1")

        if self.idle_timeout <= 0:
            raise ConfigError("idle_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level!r}")

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"Unknown log format: {self.log_format!r}")

        if not self.virtual_hosts:
            raise ConfigError("At least one virtual host is required")

        roots = {}
        for host, root in self.virtual_hosts.items():
            if not host:
                raise ConfigError("Virtual host name must not be empty")
            if not os.path.isdir(root):
                raise ConfigError(f"Document root for {host!r} is not a directory: {root}")
            roots[host] = os.path.abspath(root)
        self.virtual_hosts = roots


def load_virtual_hosts(path: str) -> Dict[str, str]:
    """
    Read a virtual hosts JSON file.

    Raises:
        ConfigError: Unreadable file, invalid JSON, or not a
                     string → string object.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read virtual hosts file {path}: {e.strerror}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object of host → document root")

    base_dir = os.path.dirname(os.path.abspath(path))
    virtual_hosts = {}
    for host, root in data.items():
        if not isinstance(root, str):
            raise ConfigError(f"Document root for {host!r} in {path} must be a string")
        virtual_hosts[host] = os.path.join(base_dir, root)

    return virtual_hosts


def parse_vhost_arg(value: str) -> Tuple[str, str]:
    """
    Parse one ``NAME=DOCROOT`` command line mapping.

        >>> parse_vhost_arg("a.com=./sites/a")
        ('a.com', './sites/a')
    """
    host, sep, root = value.partition("=")
    host, root = host.strip(), root.strip()
    if not sep or not host or not root:
        raise ConfigError(f"Expected NAME=DOCROOT, got {value!r}")
    return host, root


def log_level_number(name: Optional[str]) -> int:
    """Map a level name to the logging constant, INFO if unknown."""
    return getattr(logging, (name or "INFO").upper(), logging.INFO)
