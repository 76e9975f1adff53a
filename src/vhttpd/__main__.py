"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m vhttpd --vhost a.com=./sites/a --vhost b.org=./sites/b
    python -m vhttpd -f vhosts.json --port 8000 --idle-timeout 10
    vhttpd -f vhosts.json --log-format json

Exit status:

    0   clean shutdown (Ctrl+C / SIGTERM)
    1   startup failure, e.g. the port is already taken
    2   invalid arguments or configuration

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ConfigError, ServerConfig, load_virtual_hosts, parse_vhost_arg
from .http.reader import DEFAULT_MAX_LINE_SIZE
from .server import HTTPServer, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vhttpd",
        description="Static file HTTP/1.1 server with virtual hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vhttpd --vhost localhost=./public                 # one site
  vhttpd -f vhosts.json                             # hosts from a file
  vhttpd -f vhosts.json --vhost test.local=./tmp    # file plus override
  vhttpd -f vhosts.json --host 0.0.0.0 --port 80    # all interfaces
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Address to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8080,
        help="Port to listen on (default: 8080)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # VIRTUAL HOST ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--vhost", "-V",
        action="append",
        default=[],
        metavar="NAME=DOCROOT",
        help="Serve DOCROOT for Host: NAME (repeatable, overrides --vhosts-file)",
    )
    parser.add_argument(
        "--vhosts-file", "-f",
        metavar="PATH",
        help="JSON object mapping host names to document roots",
    )

    # ─────────────────────────────────────────────────────────────────────
    # HTTP / LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--idle-timeout", "-t",
        type=float,
        default=5.0,
        metavar="SECONDS",
        help="Time allowed for each request to arrive (default: 5)",
    )
    parser.add_argument(
        "--max-line-size",
        type=int,
        default=DEFAULT_MAX_LINE_SIZE,
        metavar="BYTES",
        help=f"Longest request or header line accepted (default: {DEFAULT_MAX_LINE_SIZE})",
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default="text",
        help="Access log format (default: text)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"vhttpd {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Translate parsed arguments into a validated ServerConfig.

    Raises:
        ConfigError: Bad --vhost syntax, unreadable file, or any
                     ServerConfig.validate() failure.
    """
    virtual_hosts = {}
    if args.vhosts_file:
        virtual_hosts.update(load_virtual_hosts(args.vhosts_file))
    for value in args.vhost:
        host, root = parse_vhost_arg(value)
        virtual_hosts[host] = root

    config = ServerConfig(
        host=args.host,
        port=args.port,
        idle_timeout=args.idle_timeout,
        max_line_size=args.max_line_size,
        virtual_hosts=virtual_hosts,
        log_level=args.log_level,
        log_format=args.log_format,
    )
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_format)

    try:
        HTTPServer(config).run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
