"""
File store gateways: where shared files are read from and downloads land.

The server and client never touch the filesystem directly; they are handed
a FileStore.  DirectoryFileStore is the real one, MemoryFileStore keeps
everything in memory and is used by the tests.
"""

import io
import logging
import os
import platform
import random
import re
import threading
from datetime import datetime

from typing_extensions import BinaryIO, Iterable, Protocol

from .errors import InvalidFileNameError, NotFoundError

logger = logging.getLogger(__name__)

# Windows reserved device names that must never be used as filenames.
_WINDOWS_RESERVED = re.compile(
    r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\.|$)", re.IGNORECASE
)

# Suffix of a download that has not finished yet.
PART_SUFFIX = ".part"


def check_file_name(name: str) -> str:
    """Return *name* trimmed, or raise InvalidFileNameError.

    A valid name is a single path component: no directory separators, no
    line breaks or null bytes, not "." or "..", and not a Windows reserved
    device name.  Names are never rewritten, only accepted or rejected.
    """
    if name is None or not name.strip():
        raise InvalidFileNameError("No file name provided")
    name = name.strip()
    if (
        name in (".", "..")
        or "\x00" in name
        or "\r" in name
        or "\n" in name
        or "/" in name
        or "\\" in name
        or os.path.basename(name) != name
        or _WINDOWS_RESERVED.match(name)
    ):
        raise InvalidFileNameError(f"Unsafe file name: {name!r}")
    return name


def shareable_names(names: Iterable[str]) -> list[str]:
    """Keep the names that fit on one listing line and can be requested back.

    A name qualifies when check_file_name accepts it unchanged, so names
    with line breaks or surrounding whitespace are left out of listings.
    """
    kept = []
    for name in names:
        try:
            usable = check_file_name(name) == name
        except InvalidFileNameError:
            usable = False
        if usable:
            kept.append(name)
        else:
            logger.warning("Not sharing file with unusable name: %r", name)
    return kept


class FileStore(Protocol):
    """What the server and client need from local storage."""

    def list_names(self) -> list[str]:
        """Names currently available for sharing."""
        ...

    def open_for_read(self, name: str) -> tuple[int, BinaryIO]:
        """Return (size, stream). Raises NotFoundError if absent."""
        ...

    def open_for_write(self, name: str) -> BinaryIO:
        """Return a writable stream for a file being received.

        The data only replaces *name* once the stream is closed cleanly.
        Leaving its with-block on an exception keeps it as a partial.
        """
        ...

    def remove(self, name: str) -> None:
        """Discard the partial download of *name*. No-op if absent."""
        ...


class DirectoryFileStore:
    """Shares files from *shared_dir* and stores downloads in *downloads_dir*."""

    def __init__(self, shared_dir: str, downloads_dir: str):
        self.shared_dir = shared_dir
        self.downloads_dir = downloads_dir

    def list_names(self) -> list[str]:
        if not os.path.isdir(self.shared_dir):
            logger.info("Shared directory doesn't exist, creating %s", self.shared_dir)
            os.makedirs(self.shared_dir, exist_ok=True)
            return []
        return shareable_names(
            name
            for name in sorted(os.listdir(self.shared_dir))
            if os.path.isfile(os.path.join(self.shared_dir, name))
        )

    def open_for_read(self, name: str) -> tuple[int, BinaryIO]:
        try:
            filepath = os.path.join(self.shared_dir, check_file_name(name))
        except InvalidFileNameError:
            raise NotFoundError(name) from None
        try:
            stream = open(filepath, "rb")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFoundError(name) from None
        return os.fstat(stream.fileno()).st_size, stream

    def open_for_write(self, name: str) -> BinaryIO:
        path = self.download_path(name)
        os.makedirs(self.downloads_dir, exist_ok=True)
        return _PartialFile(path)

    def remove(self, name: str) -> None:
        try:
            os.remove(self.download_path(name) + PART_SUFFIX)
        except (OSError, InvalidFileNameError):
            pass

    def download_path(self, name: str) -> str:
        return os.path.join(self.downloads_dir, check_file_name(name))

    def shared_files(self) -> list[tuple[str, int]]:
        """(name, size) pairs for the local shared directory."""
        entries = []
        for name in self.list_names():
            try:
                entries.append(
                    (name, os.path.getsize(os.path.join(self.shared_dir, name)))
                )
            except OSError:
                continue
        return entries


class _PartialFile(io.FileIO):
    """Written as ``<path>.part`` and moved over *path* when closed cleanly."""

    def __init__(self, path: str):
        super().__init__(path + PART_SUFFIX, "wb")
        self._final_path = path
        self._abandoned = False

    def close(self) -> None:
        if self.closed:
            return
        super().close()
        if not self._abandoned:
            os.replace(self.name, self._final_path)

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._abandoned = True
        self.close()


class _MemorySink(io.BytesIO):
    """BytesIO that publishes its contents to the store when closed."""

    def __init__(self, store: "MemoryFileStore", name: str):
        super().__init__()
        self._store = store
        self._name = name
        self._abandoned = False

    def close(self) -> None:
        if not self.closed:
            if self._abandoned:
                self._store._partial_put(self._name, self.getvalue())
            else:
                self._store._received_put(self._name, self.getvalue())
        super().close()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._abandoned = True
        self.close()


class MemoryFileStore:
    """In-memory FileStore.  Shared, received and partial files live in
    separate maps."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self._lock = threading.Lock()
        self._shared: dict[str, bytes] = dict(files or {})
        self._received: dict[str, bytes] = {}
        self._partial: dict[str, bytes] = {}

    def add(self, name: str, data: bytes) -> None:
        with self._lock:
            self._shared[name] = data

    def delete(self, name: str) -> None:
        with self._lock:
            self._shared.pop(name, None)

    def get(self, name: str) -> bytes | None:
        """Contents of a received file, or None."""
        with self._lock:
            return self._received.get(name)

    def received_names(self) -> list[str]:
        with self._lock:
            return list(self._received)

    def partial_names(self) -> list[str]:
        with self._lock:
            return list(self._partial)

    def list_names(self) -> list[str]:
        with self._lock:
            names = list(self._shared)
        return shareable_names(names)

    def open_for_read(self, name: str) -> tuple[int, BinaryIO]:
        with self._lock:
            data = self._shared.get(name)
        if data is None:
            raise NotFoundError(name)
        return len(data), io.BytesIO(data)

    def open_for_write(self, name: str) -> BinaryIO:
        return _MemorySink(self, check_file_name(name))

    def remove(self, name: str) -> None:
        with self._lock:
            self._partial.pop(name, None)

    def _received_put(self, name: str, data: bytes) -> None:
        with self._lock:
            self._received[name] = data

    def _partial_put(self, name: str, data: bytes) -> None:
        with self._lock:
            self._partial[name] = data


# ---------------------------------------------------------------------------
# Sample files
# ---------------------------------------------------------------------------


def create_sample_file(shared_dir: str, name: str, content: str) -> str:
    """Write a text file into *shared_dir* and return its path."""
    os.makedirs(shared_dir, exist_ok=True)
    filepath = os.path.join(shared_dir, check_file_name(name))
    with open(filepath, "w", encoding="utf-8") as f:
        f.write(content)
    logger.info("Sample file created: %s", name)
    return filepath


def create_sample_files(shared_dir: str, port: int) -> list[str]:
    """Populate *shared_dir* with a few small files for trying things out."""
    now = datetime.now()
    samples = {
        "hello.txt": (
            f"Hello from peer on port {port}!\n"
            "This is a sample text file for testing the P2P system.\n"
            f"Current timestamp: {int(now.timestamp() * 1000)}"
        ),
        "info.txt": (
            "=== PEER INFORMATION ===\n"
            f"Peer Port: {port}\n"
            f"System: {platform.system()}\n"
            f"Python Version: {platform.python_version()}\n"
            f"Created: {now:%Y-%m-%d %H:%M:%S}"
        ),
        "data.txt": (
            "Sample data file with some numbers:\n"
            "1, 2, 3, 4, 5, 6, 7, 8, 9, 10\n"
            f"Random number: {random.randrange(1000)}"
        ),
    }
    return [
        create_sample_file(shared_dir, name, content)
        for name, content in samples.items()
    ]
