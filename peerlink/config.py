"""
Configuration constants for the peerlink file sharing system.
"""

import logging
import os

# --- Networking ---
TCP_PORT = 5000              # Default TCP port for file operations
BUFFER_SIZE = 4096           # Chunk size (bytes) for file transfer
CONNECT_TIMEOUT = 5          # Seconds to wait when connecting to a peer
PROBE_TIMEOUT = 3            # Seconds to wait for a reachability probe
ACCEPT_POLL_INTERVAL = 1.0   # Seconds between listener shutdown checks
MIN_PORT = 1024
MAX_PORT = 65535

# --- Protocol ---
LIST_FILES = "LIST_FILES"
DOWNLOAD_FILE = "DOWNLOAD_FILE"
STATUS_OK = "OK"
ERROR_PREFIX = "ERROR: "

# --- File Storage ---
SHARED_DIR = "shared"        # Files offered to other peers
DOWNLOADS_DIR = "downloads"  # Files fetched from other peers
PROGRESS_STEP = 1024 * 1024  # Log transfer progress every MB

# --- Logging ---
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_LEVEL = os.environ.get("PEERLINK_LOG_LEVEL", "INFO").upper()
if not isinstance(logging.getLevelName(LOG_LEVEL), int):
    LOG_LEVEL = "INFO"
