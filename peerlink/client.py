"""
TCP client — connects to a remote peer and performs file operations.

A PeerClient targets one remote (host, port) at a time and owns at most one
live socket.  Every operation returns a Result instead of raising: an
unreachable peer, a malformed reply or a truncated download all come back
as ``Result.failure(error)`` so the caller can simply retry.

The listener closes each connection after a single command, so by default
the client closes its side too once a command completes; the next command
needs a fresh ``connect_to_peer()``.
"""

import logging
import socket

from .config import (
    CONNECT_TIMEOUT,
    DOWNLOAD_FILE,
    ERROR_PREFIX,
    LIST_FILES,
    PROBE_TIMEOUT,
    STATUS_OK,
)
from .errors import (
    ConnectError,
    InvalidFileNameError,
    NotFoundError,
    PeerlinkError,
    ProtocolError,
    Result,
)
from .protocol import (
    ProgressCallback,
    read_file_list,
    read_length_prefixed,
    read_line,
    write_line,
)
from .store import FileStore, check_file_name

logger = logging.getLogger(__name__)

_NOT_FOUND_PREFIX = f"{ERROR_PREFIX}File not found: "


def _connect(host: str, port: int, timeout: float) -> socket.socket:
    """Open a TCP connection to a remote peer."""
    return socket.create_connection((host, port), timeout=timeout)


def format_size(size_bytes: int | float) -> str:
    """Human-readable file size."""
    for unit in ("B", "KB", "MB", "GB"):
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def test_peer_reachability(host: str, port: int, timeout: float = PROBE_TIMEOUT) -> bool:
    """Open and immediately close a probe connection."""
    logger.info("Testing connectivity to %s:%d...", host, port)
    try:
        probe = _connect(host, port, timeout)
    except OSError:
        logger.info("Peer is not reachable: %s:%d", host, port)
        return False
    probe.close()
    logger.info("Peer is reachable: %s:%d", host, port)
    return True


# Keep pytest from collecting this when imported into a test module.
test_peer_reachability.__test__ = False


class PeerClient:
    """Outbound connection to a single remote peer."""

    def __init__(
        self,
        host: str,
        port: int,
        store: FileStore,
        connect_timeout: float = CONNECT_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.store = store
        self.connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._reader = None
        self._writer = None

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @property
    def target(self) -> tuple[str, int]:
        return self.host, self.port

    @property
    def connection_info(self) -> str:
        if self.is_connected():
            return f"Connected to peer: {self.host}:{self.port}"
        return "Not connected to any peer"

    def connect_to_peer(self) -> Result[None]:
        """Connect to the current target, replacing any existing connection."""
        self.disconnect()
        logger.info("Attempting to connect to peer: %s:%d", self.host, self.port)
        try:
            sock = _connect(self.host, self.port, self.connect_timeout)
        except OSError as e:
            error = ConnectError(self.host, self.port, str(e))
            logger.error("%s", error)
            return Result.failure(error)

        # The timeout only bounds the connect; established reads block.
        sock.settimeout(None)
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._writer = sock.makefile("wb")
        logger.info("Successfully connected to peer: %s:%d", self.host, self.port)
        return Result.success()

    def is_connected(self) -> bool:
        return self._sock is not None and self._sock.fileno() != -1

    def disconnect(self) -> None:
        """Close the connection. Safe to call when not connected."""
        if self._sock is None:
            return
        for stream in (self._writer, self._reader):
            try:
                stream.close()
            except OSError:
                pass
        self._sock.close()
        self._sock = self._reader = self._writer = None
        logger.info("Disconnected from peer: %s:%d", self.host, self.port)

    def switch_to_peer(self, host: str, port: int) -> Result[None]:
        """Drop the current connection and connect to a different peer."""
        if self.is_connected():
            logger.info("Switching from %s:%d to %s:%d", self.host, self.port, host, port)
        self.disconnect()
        self.host = host
        self.port = port
        return self.connect_to_peer()

    test_peer_reachability = staticmethod(test_peer_reachability)

    def __enter__(self) -> "PeerClient":
        return self

    def __exit__(self, *exc) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request_file_list(self, keep_open: bool = False) -> Result[list[str]]:
        """Ask the peer for its shared file names."""
        if not self.is_connected():
            return self._not_connected()

        try:
            logger.info("Requesting file list from %s:%d", self.host, self.port)
            write_line(self._writer, LIST_FILES)
            names = read_file_list(self._reader)
        except (OSError, PeerlinkError) as e:
            self.disconnect()
            return self._failed("Error requesting file list", e)

        if not keep_open:
            self.disconnect()
        logger.info("Received %d files from peer", len(names))
        return Result.success(names)

    def download_file(
        self,
        filename: str,
        keep_open: bool = False,
        progress_callback: ProgressCallback | None = None,
    ) -> Result[int]:
        """Download *filename* into the store. Returns the bytes received."""
        try:
            filename = check_file_name(filename)
        except InvalidFileNameError as e:
            logger.error("Refusing to request %r: %s", filename, e)
            return Result.failure(e)
        if not self.is_connected():
            return self._not_connected()

        try:
            logger.info("Requesting download: %s", filename)
            write_line(self._writer, DOWNLOAD_FILE)
            write_line(self._writer, filename)

            response = read_line(self._reader)
            if response is None:
                raise ProtocolError("No response from peer")
            if response.startswith(_NOT_FOUND_PREFIX):
                raise NotFoundError(response[len(_NOT_FOUND_PREFIX):])
            if response.startswith("ERROR"):
                raise ProtocolError(f"Peer error: {response}")
            if response != STATUS_OK:
                raise ProtocolError(f"Unexpected response from peer: {response}")

            logger.info("Peer confirmed file availability, starting download...")
            received = self._receive_into_store(filename, progress_callback)
        except (OSError, PeerlinkError) as e:
            self.disconnect()
            return self._failed(f"Failed to download {filename}", e)

        if not keep_open:
            self.disconnect()
        logger.info("File downloaded successfully: %s (%s)", filename, format_size(received))
        return Result.success(received)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _receive_into_store(
        self, filename: str, progress_callback: ProgressCallback | None
    ) -> int:
        """Stream the payload into the store, discarding it if incomplete."""
        try:
            with self.store.open_for_write(filename) as sink:
                return read_length_prefixed(self._reader, sink, progress_callback)
        except BaseException:
            self.store.remove(filename)
            raise

    def _not_connected(self) -> Result:
        error = ConnectError(self.host, self.port, "not connected")
        logger.error("Not connected to any peer")
        return Result.failure(error)

    def _failed(self, what: str, e: Exception) -> Result:
        if not isinstance(e, PeerlinkError):
            e = ProtocolError(str(e) or e.__class__.__name__)
        logger.error("%s: %s", what, e)
        return Result.failure(e)
