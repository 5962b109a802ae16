"""
Protocol helpers for sending/receiving lines and files over TCP sockets.

All helpers work on buffered binary streams obtained from
``socket.makefile("rb")`` / ``socket.makefile("wb")``.  The same reader is
used for text lines and raw payload so bytes buffered while reading a line
are never lost.

Two message shapes travel on the wire:

    <UTF-8 text>\\n                               commands, responses, names
    [ 8 bytes: big-endian size ][ size bytes ]   file payload
"""

import logging
import struct

from typing_extensions import BinaryIO, Callable, Iterable

from .config import BUFFER_SIZE, PROGRESS_STEP
from .errors import ProtocolError, ShortReadError

logger = logging.getLogger(__name__)

SIZE_PREFIX = struct.Struct("!Q")

ProgressCallback = Callable[[int, int], None]


# ---------------------------------------------------------------------------
# Line framing (commands, responses, file-list entries)
# ---------------------------------------------------------------------------


def write_line(stream: BinaryIO, text: str) -> None:
    """Write *text* followed by a newline and flush."""
    stream.write(text.encode("utf-8") + b"\n")
    stream.flush()


def read_line(stream: BinaryIO) -> str | None:
    """Read one newline-terminated line. Returns None on end of stream."""
    raw = stream.readline()
    if not raw:
        return None
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ProtocolError(f"Line is not valid UTF-8: {raw[:40]!r}") from None
    return text.rstrip("\r\n")


# ---------------------------------------------------------------------------
# File listing
# ---------------------------------------------------------------------------


def parse_count(line: str | None) -> int:
    """Parse a file-list count line, raising ProtocolError if it is not one."""
    if line is None:
        raise ProtocolError("Peer closed the connection before sending a count")
    text = line.strip()
    if not (text.isascii() and text.isdigit()):
        raise ProtocolError(f"Invalid file count from peer: {line!r}")
    return int(text)


def write_file_list(stream: BinaryIO, names: Iterable[str]) -> None:
    """Send the count followed by one line per name."""
    names = list(names)
    write_line(stream, str(len(names)))
    for name in names:
        write_line(stream, name)


def read_file_list(stream: BinaryIO) -> list[str]:
    """Read a count line and exactly that many names."""
    count = parse_count(read_line(stream))
    names = []
    for index in range(count):
        name = read_line(stream)
        if name is None:
            raise ProtocolError(
                f"File list ended after {index} of {count} entries"
            )
        names.append(name)
    return names


# ---------------------------------------------------------------------------
# Length-prefixed payload
# ---------------------------------------------------------------------------


def write_length_prefixed(
    stream: BinaryIO,
    size: int,
    source: BinaryIO,
    progress_callback: ProgressCallback | None = None,
) -> int:
    """Send the 8-byte size, then *size* bytes from *source* in chunks.

    Raises ShortReadError if *source* runs dry before *size* bytes were sent.
    """
    stream.write(SIZE_PREFIX.pack(size))
    sent = 0
    while sent < size:
        chunk = source.read(min(BUFFER_SIZE, size - sent))
        if not chunk:
            raise ShortReadError(sent, size)
        stream.write(chunk)
        sent += len(chunk)
        _report(sent, len(chunk), size, progress_callback)
    stream.flush()
    return sent


def read_length_prefixed(
    stream: BinaryIO,
    sink: BinaryIO,
    progress_callback: ProgressCallback | None = None,
) -> int:
    """Read the 8-byte size, then copy exactly that many bytes into *sink*.

    Returns the number of bytes received.  Raises ProtocolError if the size
    header is cut off and ShortReadError if the payload is.
    """
    header = _read_exactly(stream, SIZE_PREFIX.size)
    if len(header) < SIZE_PREFIX.size:
        raise ProtocolError("Peer closed the connection before sending a size")
    size = SIZE_PREFIX.unpack(header)[0]

    received = 0
    while received < size:
        chunk = stream.read1(min(BUFFER_SIZE, size - received))
        if not chunk:
            raise ShortReadError(received, size)
        sink.write(chunk)
        received += len(chunk)
        _report(received, len(chunk), size, progress_callback)
    return received


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_exactly(stream: BinaryIO, num_bytes: int) -> bytes:
    """Read up to *num_bytes*, stopping early only at end of stream."""
    data = bytearray()
    while len(data) < num_bytes:
        packet = stream.read1(num_bytes - len(data))
        if not packet:
            break
        data.extend(packet)
    return bytes(data)


def _report(
    current: int,
    chunk: int,
    total: int,
    progress_callback: ProgressCallback | None,
) -> None:
    if progress_callback:
        progress_callback(current, total)
    if current // PROGRESS_STEP > (current - chunk) // PROGRESS_STEP:
        logger.debug("Transferred %d/%d bytes", current, total)
