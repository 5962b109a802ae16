"""
Tests for protocol.py — line framing, file lists and length-prefixed payloads.
"""

import io
import socket
import struct
import threading

import pytest

from peerlink.errors import ProtocolError, ShortReadError
from peerlink.protocol import (
    parse_count,
    read_file_list,
    read_length_prefixed,
    read_line,
    write_file_list,
    write_length_prefixed,
    write_line,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_socket_pair():
    """Return a connected (client, server) socket pair."""
    server_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server_sock.bind(("127.0.0.1", 0))
    server_sock.listen(1)
    port = server_sock.getsockname()[1]

    client = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    client.connect(("127.0.0.1", port))
    server, _ = server_sock.accept()
    server_sock.close()
    return client, server


def framed(payload: bytes, declared: int | None = None) -> io.BytesIO:
    size = len(payload) if declared is None else declared
    return io.BytesIO(struct.pack("!Q", size) + payload)


# ---------------------------------------------------------------------------
# write_line / read_line
# ---------------------------------------------------------------------------


class TestLineFraming:
    def test_write_line_appends_newline(self):
        out = io.BytesIO()
        write_line(out, "LIST_FILES")
        assert out.getvalue() == b"LIST_FILES\n"

    def test_read_line_strips_newline(self):
        assert read_line(io.BytesIO(b"OK\n")) == "OK"

    def test_read_line_accepts_crlf(self):
        assert read_line(io.BytesIO(b"OK\r\nrest")) == "OK"

    def test_read_line_returns_none_at_end_of_stream(self):
        assert read_line(io.BytesIO(b"")) is None

    def test_read_line_returns_unterminated_tail(self):
        assert read_line(io.BytesIO(b"partial")) == "partial"

    def test_unicode_over_socket(self):
        client, server = make_socket_pair()
        try:
            writer = client.makefile("wb")
            reader = server.makefile("rb")
            write_line(writer, "résumé — 報告.txt")
            assert read_line(reader) == "résumé — 報告.txt"
            writer.close()
            reader.close()
        finally:
            client.close()
            server.close()

    def test_returns_none_when_peer_closes(self):
        client, server = make_socket_pair()
        client.close()
        reader = server.makefile("rb")
        try:
            assert read_line(reader) is None
        finally:
            reader.close()
            server.close()


# ---------------------------------------------------------------------------
# File lists
# ---------------------------------------------------------------------------


class TestFileList:
    def test_write_format(self):
        out = io.BytesIO()
        write_file_list(out, ["a.txt", "b.bin"])
        assert out.getvalue() == b"2\na.txt\nb.bin\n"

    def test_empty_list(self):
        out = io.BytesIO()
        write_file_list(out, [])
        assert out.getvalue() == b"0\n"
        assert read_file_list(io.BytesIO(out.getvalue())) == []

    def test_reads_exactly_count_lines(self):
        stream = io.BytesIO(b"2\nfirst\nsecond\nthird\n")
        assert read_file_list(stream) == ["first", "second"]
        assert read_line(stream) == "third"

    def test_missing_count(self):
        with pytest.raises(ProtocolError):
            read_file_list(io.BytesIO(b""))

    def test_non_numeric_count(self):
        with pytest.raises(ProtocolError):
            read_file_list(io.BytesIO(b"ERROR: nope\n"))

    def test_premature_end(self):
        with pytest.raises(ProtocolError):
            read_file_list(io.BytesIO(b"3\none\ntwo\n"))

    def test_parse_count(self):
        assert parse_count("12") == 12
        assert parse_count(" 3 ") == 3
        for bad in (None, "", "-1", "1.5", "three"):
            with pytest.raises(ProtocolError):
                parse_count(bad)


# ---------------------------------------------------------------------------
# Length-prefixed payloads
# ---------------------------------------------------------------------------


class TestLengthPrefixed:
    def test_header_is_8_byte_big_endian(self):
        out = io.BytesIO()
        write_length_prefixed(out, 5, io.BytesIO(b"hello"))
        assert out.getvalue() == b"\x00\x00\x00\x00\x00\x00\x00\x05hello"

    @pytest.mark.parametrize("size", [0, 1, 4096, 10000])
    def test_roundtrip_over_socket(self, size):
        content = bytes(i % 251 for i in range(size))
        client, server = make_socket_pair()
        try:

            def sender():
                with client.makefile("wb") as writer:
                    write_length_prefixed(writer, size, io.BytesIO(content))
                client.close()

            t = threading.Thread(target=sender)
            t.start()
            sink = io.BytesIO()
            with server.makefile("rb") as reader:
                received = read_length_prefixed(reader, sink)
            t.join()
        finally:
            server.close()

        assert received == size
        assert sink.getvalue() == content

    def test_stops_after_declared_size(self):
        stream = io.BytesIO(struct.pack("!Q", 3) + b"abcNEXT\n")
        sink = io.BytesIO()
        assert read_length_prefixed(stream, sink) == 3
        assert sink.getvalue() == b"abc"
        assert read_line(stream) == "NEXT"

    def test_short_payload_raises(self):
        sink = io.BytesIO()
        with pytest.raises(ShortReadError) as info:
            read_length_prefixed(framed(b"x" * 100, declared=5000), sink)
        assert info.value.received == 100
        assert info.value.expected == 5000

    def test_truncated_header_raises_protocol_error(self):
        with pytest.raises(ProtocolError):
            read_length_prefixed(io.BytesIO(b"\x00\x00\x01"), io.BytesIO())

    def test_source_shorter_than_size(self):
        with pytest.raises(ShortReadError):
            write_length_prefixed(io.BytesIO(), 10, io.BytesIO(b"abc"))

    def test_progress_callback_called(self):
        content = b"x" * 8192
        calls = []

        def progress(current, total):
            calls.append((current, total))

        read_length_prefixed(framed(content), io.BytesIO(), progress)

        assert len(calls) > 0
        assert calls[-1] == (len(content), len(content))
