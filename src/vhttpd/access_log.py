"""
=============================================================================
ACCESS LOGGING
=============================================================================

One log record per response written, on the ``vhttpd.access`` logger.

Two output formats:

    text (common-log style, for humans and GoAccess-type tools):

        127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET / HTTP/1.1" 200 1234 0.41ms

    json (for log aggregators):

        {"connection_id": "1f2e3d4c", "client_ip": "127.0.0.1",
         "request_line": "GET / HTTP/1.1", "host": "a.com",
         "status_code": 200, "body_bytes": 1234, "duration_ms": 0.41,
         "timestamp": "19/Oct/2026:10:00:00 +0000"}

The logger is namespaced so it can be routed separately:

    logging.getLogger("vhttpd.access").addHandler(file_handler)

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass


logger = logging.getLogger("vhttpd.access")

LOG_FORMATS = ("text", "json")


@dataclass
class AccessLogEntry:
    """Structured access log record."""

    connection_id: str
    client_ip: str
    request_line: str      # "-" when the request never parsed
    host: str
    status_code: int
    body_bytes: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.request_line}" {self.status_code} '
            f'{self.body_bytes} {self.duration_ms:.2f}ms'
        )


class AccessLogger:
    """
    Emits AccessLogEntry records in the configured format.

    Args:
        log_format: "text" or "json".
        log_level: Level for access records (INFO by default).
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        if log_format not in LOG_FORMATS:
            raise ValueError(f"Unknown log format: {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level

    def entry(
        self,
        connection_id: str,
        client_ip: str,
        request_line: str,
        host: str,
        status_code: int,
        body_bytes: int,
        started: float,
    ) -> AccessLogEntry:
        """Build an entry; ``started`` is a time.monotonic() reading."""
        return AccessLogEntry(
            connection_id=connection_id,
            client_ip=client_ip,
            request_line=request_line,
            host=host,
            status_code=int(status_code),
            body_bytes=body_bytes,
            duration_ms=(time.monotonic() - started) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def log(self, entry: AccessLogEntry) -> None:
        if not logger.isEnabledFor(self.log_level):
            return
        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
