"""
peerlink - P2P File Sharing System

Peers serve files from a local directory and fetch files from each other
over a small line-based TCP protocol with length-prefixed file payloads.
"""

__version__ = "1.0.0"

from .client import PeerClient, format_size, test_peer_reachability
from .config import (
    BUFFER_SIZE,
    CONNECT_TIMEOUT,
    DOWNLOADS_DIR,
    PROBE_TIMEOUT,
    SHARED_DIR,
    TCP_PORT,
)
from .errors import (
    BindError,
    ConnectError,
    InvalidFileNameError,
    NotFoundError,
    PeerlinkError,
    ProtocolError,
    Result,
    ShortReadError,
)
from .protocol import (
    read_file_list,
    read_length_prefixed,
    read_line,
    write_file_list,
    write_length_prefixed,
    write_line,
)
from .server import ListenerState, PeerListener, handle_session
from .store import DirectoryFileStore, FileStore, MemoryFileStore

__all__ = [
    "TCP_PORT",
    "BUFFER_SIZE",
    "CONNECT_TIMEOUT",
    "PROBE_TIMEOUT",
    "SHARED_DIR",
    "DOWNLOADS_DIR",
    "PeerlinkError",
    "BindError",
    "ConnectError",
    "ProtocolError",
    "ShortReadError",
    "NotFoundError",
    "InvalidFileNameError",
    "Result",
    "FileStore",
    "DirectoryFileStore",
    "MemoryFileStore",
    "PeerListener",
    "ListenerState",
    "handle_session",
    "PeerClient",
    "test_peer_reachability",
    "format_size",
    "write_line",
    "read_line",
    "write_file_list",
    "read_file_list",
    "write_length_prefixed",
    "read_length_prefixed",
]
