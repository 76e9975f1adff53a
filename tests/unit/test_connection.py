"""
Unit tests for the connection state machine.

Each test drives a real Connection over a socketpair, so the idle
deadline, half-closes and blocking writes all behave as they would on a
TCP socket.
"""

import json
import logging
import os
import socket
import time

import pytest

from vhttpd.access_log import AccessLogger
from vhttpd.core import Connection, ConnectionState, ReadOutcome
from vhttpd.http.response import not_found

from conftest import BINARY, DOCS_HTML, INDEX_HTML, ResponseReader


def get(target: str, host: str = "a.com", close: bool = False) -> bytes:
    raw = f"GET {target} HTTP/1.1\r\nHost: {host}\r\n"
    if close:
        raw += "Connection: close\r\n"
    return (raw + "\r\n").encode("ascii")


class TestScenarios:
    """End-to-end request/response exchanges on one connection."""

    def test_serves_file(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(get("/index.html"))
        response = reader.read_response()

        assert response.status_line == "HTTP/1.1 200 OK"
        assert response.headers["Content-Length"] == str(len(INDEX_HTML))
        assert response.headers["Content-Type"] == "text/html"
        assert response.body == INDEX_HTML
        assert "Connection" not in response.headers

    def test_missing_file_keeps_connection_open(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(get("/missing.html"))
        response = reader.read_response()

        assert response.status == 404
        assert response.body == b""
        assert "Connection" not in response.headers
        assert "Content-Length" not in response.headers

        client.sendall(get("/"))
        assert reader.read_response().status == 200

    def test_unsupported_method(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(b"POST / HTTP/1.1\r\nHost: a.com\r\n\r\n")
        response = reader.read_response()

        assert response.status_line == "HTTP/1.1 400 Bad Request"
        assert response.headers["Connection"] == "close"
        assert reader.at_eof()
        thread.join(timeout=5.0)
        assert conn.state is ConnectionState.CLOSING

    def test_connection_close(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(get("/", close=True))
        response = reader.read_response()

        assert response.status == 200
        assert response.headers["Connection"] == "close"
        assert response.body == INDEX_HTML
        assert reader.at_eof()

    def test_keep_alive_then_idle_close(self, serve_connection):
        client, conn, thread = serve_connection(idle_timeout=0.3)
        reader = ResponseReader(client)

        client.sendall(get("/"))
        assert reader.read_response().body == INDEX_HTML
        client.sendall(get("/docs/"))
        assert reader.read_response().body == DOCS_HTML

        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert reader.at_eof()
        assert conn.requests_handled == 2


class TestDeadline:
    """Tests for the per-request idle deadline."""

    def test_silent_close_without_bytes(self, serve_connection):
        client, conn, thread = serve_connection(idle_timeout=0.2)

        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert ResponseReader(client).at_eof()
        assert conn.requests_handled == 0

    def test_partial_request_line_times_out_silently(self, serve_connection):
        client, conn, thread = serve_connection(idle_timeout=0.3)

        client.sendall(b"GET / HT")
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert ResponseReader(client).at_eof()

    def test_dripping_client_is_cut_off(self, serve_connection):
        """Bytes arriving within the window do not extend it."""
        client, conn, thread = serve_connection(idle_timeout=0.5)

        started = time.monotonic()
        try:
            for byte in get("/"):
                client.send(bytes([byte]))
                time.sleep(0.1)
                if not thread.is_alive():
                    break
        except OSError:
            pass
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert time.monotonic() - started < 3.0
        assert conn.requests_handled == 0

    def test_deadline_rearmed_per_request(self, serve_connection):
        client, conn, thread = serve_connection(idle_timeout=0.4)
        reader = ResponseReader(client)

        for _ in range(3):
            time.sleep(0.25)
            client.sendall(get("/"))
            assert reader.read_response().status == 200

        assert thread.is_alive()

    def test_recv_after_deadline_raises_timeout(self, serve_connection):
        client, conn, thread = serve_connection(idle_timeout=0.2)
        thread.join(timeout=5.0)

        conn._deadline = time.monotonic() - 1
        with pytest.raises(socket.timeout):
            conn.recv(1)


class TestReadOutcomes:
    """Tests for peer-caused terminations."""

    def test_bad_request_then_eof(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(b"GET /index.html HTTP/1.0\r\nHost: a.com\r\n\r\n")
        assert reader.read_response().status == 400
        assert reader.at_eof()

    def test_malformed_header(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(b"GET / HTTP/1.1\r\nno colon here\r\n\r\n")
        response = reader.read_response()

        assert response.status == 400
        assert "Content-Length" not in response.headers
        assert reader.at_eof()

    def test_malformed_after_good_request(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(get("/") + b"garbage\r\n\r\n")

        assert reader.read_response().status == 200
        assert reader.read_response().status == 400
        assert reader.at_eof()

    def test_peer_close_is_silent(self, serve_connection):
        client, conn, thread = serve_connection()

        client.shutdown(socket.SHUT_WR)
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert ResponseReader(client).at_eof()

    def test_peer_close_mid_line_is_silent(self, serve_connection):
        client, conn, thread = serve_connection()

        client.sendall(b"GET / HTTP/1.1\r\nHost: a.c")
        client.shutdown(socket.SHUT_WR)
        thread.join(timeout=5.0)

        assert ResponseReader(client).at_eof()

    def test_pipelined_requests(self, serve_connection):
        client, conn, thread = serve_connection()
        reader = ResponseReader(client)

        client.sendall(get("/") + get("/data.bin") + get("/nope", close=True))

        assert reader.read_response().body == INDEX_HTML
        assert reader.read_response().body == BINARY
        last = reader.read_response()
        assert last.status == 404
        assert last.headers["Connection"] == "close"
        assert reader.at_eof()

    def test_next_request_outcomes(self, resolver):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(server_sock, ("127.0.0.1", 1), resolver.handle, idle_timeout=0.2)
        try:
            client_sock.sendall(get("/") + b"BREW / HTTP/1.1\r\n")

            conn.arm_deadline()
            first = conn.next_request()
            assert first.outcome is ReadOutcome.REQUEST
            assert first.request.host == "a.com"

            conn.arm_deadline()
            assert conn.next_request().outcome is ReadOutcome.MALFORMED

            conn.arm_deadline()
            assert conn.next_request().outcome is ReadOutcome.TIMEOUT

            client_sock.close()
            conn.arm_deadline()
            assert conn.next_request().outcome is ReadOutcome.END_OF_STREAM
        finally:
            conn.close()
            client_sock.close()

    def test_handler_close_header_ends_connection(self, resolver):
        """A response that says close ends the loop even if the request did not."""
        server_sock, client_sock = socket.socketpair()

        def handler(request):
            response = not_found(request)
            response.headers["Connection"] = "close"
            return response

        conn = Connection(server_sock, ("127.0.0.1", 1), handler, idle_timeout=1.0)
        client_sock.settimeout(5.0)
        client_sock.sendall(get("/"))
        conn.serve()

        reader = ResponseReader(client_sock)
        assert reader.read_response().status == 404
        assert reader.at_eof()
        client_sock.close()

    def test_close_is_idempotent(self, resolver):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(server_sock, ("127.0.0.1", 1), resolver.handle)
        client_sock.close()

        conn.close()
        conn.close()

        assert conn.is_closed


class TestLineLimit:
    """Tests for oversized request and header lines."""

    def test_long_request_line_gets_400(self, serve_connection):
        client, conn, thread = serve_connection(max_line_size=64)
        reader = ResponseReader(client)

        client.sendall(b"GET /" + b"a" * 200 + b" HTTP/1.1\r\nHost: a.com\r\n\r\n")
        response = reader.read_response()

        assert response.status == 400
        assert response.headers["Connection"] == "close"
        assert reader.at_eof()
        thread.join(timeout=5.0)
        assert conn.requests_handled == 1

    def test_long_header_without_crlf_gets_400(self, serve_connection):
        """The 400 goes out before any CRLF arrives."""
        client, conn, thread = serve_connection(max_line_size=64)
        reader = ResponseReader(client)

        client.sendall(b"GET / HTTP/1.1\r\nX-Filler: " + b"x" * 500)

        assert reader.read_response().status == 400
        assert reader.at_eof()

    def test_line_at_limit_is_served(self, serve_connection):
        request_line = b"GET /index.html HTTP/1.1"
        client, conn, thread = serve_connection(max_line_size=len(request_line))
        reader = ResponseReader(client)

        client.sendall(request_line + b"\r\nHost: a.com\r\n\r\n")

        assert reader.read_response().body == INDEX_HTML


class TestWriteFailure:
    """Tests for a response that cannot be written in full."""

    def test_file_vanishing_before_write_closes_connection(self, serve_connection, resolver):
        def handler(request):
            response = resolver.handle(request)
            if response.file_path:
                os.unlink(response.file_path)
            return response

        client, conn, thread = serve_connection(handler=handler)
        client.sendall(get("/style.css") + get("/"))

        thread.join(timeout=5.0)
        received = b""
        while True:
            chunk = client.recv(65536)
            if not chunk:
                break
            received += chunk

        assert not thread.is_alive()
        assert conn.state is ConnectionState.CLOSING
        assert conn.requests_handled == 0
        assert received.startswith(b"HTTP/1.1 200 OK\r\n")
        assert received.count(b"HTTP/1.1 ") == 1


class TestAccessLog:
    """Tests for access log records written by the connection."""

    def test_text_records(self, serve_connection, caplog):
        caplog.set_level(logging.INFO, logger="vhttpd.access")
        client, conn, thread = serve_connection(access_log=AccessLogger("text"))
        reader = ResponseReader(client)

        client.sendall(get("/") + b"PUT / HTTP/1.1\r\n\r\n")
        reader.read_response()
        reader.read_response()
        thread.join(timeout=5.0)

        messages = [r.getMessage() for r in caplog.records if r.name == "vhttpd.access"]
        assert len(messages) == 2
        assert f'"GET / HTTP/1.1" 200 {len(INDEX_HTML)}' in messages[0]
        assert messages[0].startswith("127.0.0.1 - - [")
        assert '"-" 400 0' in messages[1]

    def test_json_records(self, serve_connection, caplog):
        caplog.set_level(logging.INFO, logger="vhttpd.access")
        client, conn, thread = serve_connection(access_log=AccessLogger("json"))
        reader = ResponseReader(client)

        client.sendall(get("/missing", host="b.org", close=True))
        reader.read_response()
        thread.join(timeout=5.0)

        records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "vhttpd.access"]
        assert len(records) == 1
        assert records[0]["status_code"] == 404
        assert records[0]["host"] == "b.org"
        assert records[0]["request_line"] == "GET /missing HTTP/1.1"
        assert records[0]["connection_id"] == conn.id
        assert records[0]["body_bytes"] == 0

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            AccessLogger("xml")
