"""
TCP file server — listens for incoming connections from other peers and
answers LIST_FILES and DOWNLOAD_FILE commands.

Each accepted connection is handled in its own thread and carries exactly
one command: the handler reads it, replies, and closes the socket.  The
handler is a plain function over (connection, store) so sessions share
nothing but the read-only view of the FileStore.
"""

import errno
import logging
import socket
import threading
from enum import Enum

from .config import (
    ACCEPT_POLL_INTERVAL,
    DOWNLOAD_FILE,
    ERROR_PREFIX,
    LIST_FILES,
    STATUS_OK,
    TCP_PORT,
)
from .errors import BindError, NotFoundError, PeerlinkError
from .protocol import read_line, write_file_list, write_length_prefixed, write_line
from .store import FileStore

logger = logging.getLogger(__name__)


class ListenerState(Enum):
    STOPPED = "stopped"
    LISTENING = "listening"


# ----------------------------------------------------------------------
# Session handler: one connection, one command
# ----------------------------------------------------------------------


def handle_session(
    conn: socket.socket, store: FileStore, addr: tuple | None = None
) -> None:
    """Serve a single request on *conn*, then close it."""
    peer = f"{addr[0]}:{addr[1]}" if addr else "peer"
    try:
        with conn, conn.makefile("rb") as reader, conn.makefile("wb") as writer:
            command = read_line(reader)
            if command is None:
                logger.warning("No command received from %s", peer)
                return

            logger.info("Received command %s from %s", command, peer)
            cmd = command.strip().upper()

            if cmd == LIST_FILES:
                _handle_list(writer, store, peer)
            elif cmd == DOWNLOAD_FILE:
                _handle_download(reader, writer, store, peer)
            else:
                write_line(writer, f"{ERROR_PREFIX}Unknown command: {command}")
                logger.warning("Unknown command received from %s: %s", peer, command)
    except (OSError, PeerlinkError) as e:
        logger.error("Error handling connection from %s: %s", peer, e)
    finally:
        logger.info("Connection closed with %s", peer)


def _handle_list(writer, store: FileStore, peer: str) -> None:
    """Send back the names in the store."""
    names = store.list_names()
    write_file_list(writer, names)
    logger.info("Sent file list to %s (%d files)", peer, len(names))


def _handle_download(reader, writer, store: FileStore, peer: str) -> None:
    """Send the requested file, or an ERROR line explaining why not."""
    filename = read_line(reader)
    if filename is None or not filename.strip():
        write_line(writer, f"{ERROR_PREFIX}No file name provided")
        logger.warning("No file name provided for download by %s", peer)
        return

    filename = filename.strip()
    logger.info("%s requested file: %s", peer, filename)

    if filename not in store.list_names():
        _send_not_found(writer, filename, peer)
        return

    # The file can vanish between the listing check and the open.
    try:
        size, source = store.open_for_read(filename)
    except NotFoundError:
        _send_not_found(writer, filename, peer)
        return

    with source:
        write_line(writer, STATUS_OK)
        logger.info("Sending file: %s (%d bytes) to %s", filename, size, peer)
        write_length_prefixed(writer, size, source)
    logger.info("File sent successfully: %s", filename)


def _send_not_found(writer, filename: str, peer: str) -> None:
    write_line(writer, f"{ERROR_PREFIX}File not found: {filename}")
    logger.warning("Requested file not found: %s (from %s)", filename, peer)


# ----------------------------------------------------------------------
# Listener
# ----------------------------------------------------------------------


class PeerListener:
    """Multithreaded TCP server for file operations."""

    def __init__(
        self, store: FileStore, port: int = TCP_PORT, host: str = "0.0.0.0"
    ):
        self.store = store
        self.host = host
        self.port = port
        self.state = ListenerState.STOPPED
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Bind the port and start accepting in a daemon thread.

        Raises BindError if the port cannot be bound.
        """
        if self.state is ListenerState.LISTENING:
            raise RuntimeError("Listener is already running")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(5)
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                logger.error("Port %d is already in use", self.port)
                raise BindError(self.port) from e
            logger.error("Could not start server on port %d: %s", self.port, e)
            raise BindError(self.port, str(e)) from e

        sock.settimeout(ACCEPT_POLL_INTERVAL)  # so we can notice stop()
        self._sock = sock
        self.port = sock.getsockname()[1]
        self.state = ListenerState.LISTENING

        self._thread = threading.Thread(
            target=self._accept_loop, args=(sock,), daemon=True
        )
        self._thread.start()
        logger.info("Server started on port %d", self.port)

    def stop(self) -> None:
        if self.state is ListenerState.STOPPED:
            return
        self.state = ListenerState.STOPPED
        if self._sock:
            self._sock.close()
            self._sock = None
        logger.info("Server stopped")

    def join(self, timeout: float | None = None) -> None:
        if self._thread:
            self._thread.join(timeout)

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port

    def __enter__(self) -> "PeerListener":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
        self.join()

    # ------------------------------------------------------------------
    # Accept loop
    # ------------------------------------------------------------------

    def _accept_loop(self, sock: socket.socket) -> None:
        logger.info("Waiting for peer connections...")
        while self.state is ListenerState.LISTENING:
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.state is ListenerState.STOPPED:
                    break
                logger.error("Error accepting connection: %s", e)
                if sock.fileno() == -1:
                    break
                continue

            conn.settimeout(None)
            logger.info("New connection from peer: %s:%d", addr[0], addr[1])
            handler = threading.Thread(
                target=handle_session, args=(conn, self.store, addr), daemon=True
            )
            handler.start()

        sock.close()
