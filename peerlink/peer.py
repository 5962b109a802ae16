"""
peerlink — P2P File Sharing System

Main entry point.  Starts the TCP file server and either the TUI dashboard
or the numbered-menu CLI.

Usage:
    peerlink                    # start TUI mode (default)
    peerlink --cli              # start CLI mode
    peerlink --port 6000        # use a custom TCP port
"""

import argparse
import logging
import sys

from .client import PeerClient, format_size, test_peer_reachability
from .config import (
    DOWNLOADS_DIR,
    LOG_LEVEL,
    MAX_PORT,
    MIN_PORT,
    SHARED_DIR,
    TCP_PORT,
)
from .errors import BindError
from .log import setup_logging
from .server import PeerListener
from .store import DirectoryFileStore, create_sample_files

logger = logging.getLogger(__name__)

LOCAL_HOSTS = ("127.0.0.1", "localhost")


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")
    if not MIN_PORT <= port <= MAX_PORT:
        raise argparse.ArgumentTypeError(
            f"Port must be between {MIN_PORT} and {MAX_PORT}"
        )
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="peerlink P2P File Sharing")
    parser.add_argument(
        "--port", type=_port, default=TCP_PORT, help="TCP port to listen on"
    )
    parser.add_argument(
        "--cli", action="store_true", help="Launch CLI mode instead of TUI dashboard"
    )
    parser.add_argument(
        "--shared-dir", default=SHARED_DIR, help="Directory of files to share"
    )
    parser.add_argument(
        "--downloads-dir", default=DOWNLOADS_DIR, help="Where downloads are saved"
    )
    parser.add_argument(
        "--log-level",
        default=LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging verbosity",
    )
    return parser


# ======================================================================
# CLI menu
# ======================================================================


def _print_files(names: list[str]) -> None:
    print("-" * 40)
    for i, name in enumerate(names, 1):
        print(f"{i}. {name}")
    print("-" * 40)
    print(f"Total files: {len(names)}")


def _prompt(text: str) -> str:
    return input(text).strip()


def _prompt_target() -> tuple[str, int] | None:
    host = _prompt("IP Address (e.g., 127.0.0.1): ")
    if not host:
        host = "127.0.0.1"
        print(f"Using default IP: {host}")
    port_str = _prompt("Port (e.g., 5001): ")
    try:
        return host, int(port_str)
    except ValueError:
        print("[ERROR] Invalid port number! Please enter a valid number.")
        return None


class PeerMenu:
    """Interactive numbered menu driving a PeerClient."""

    def __init__(self, store: DirectoryFileStore, port: int):
        self.store = store
        self.port = port
        self.client: PeerClient | None = None

    def run(self) -> None:
        print("\n[SUCCESS] Welcome to peerlink!")
        print(f"[NETWORK] Your peer is running on port: {self.port}")
        print(f"[TIP] Files in '{self.store.shared_dir}/' are available to other peers")

        if not self.store.list_names():
            print("[FILES] Shared directory is empty. Creating initial sample files...")
            self.create_samples()

        actions = {
            0: self.create_samples,
            1: self.connect,
            2: self.list_peer_files,
            3: self.download,
            4: self.show_my_files,
            5: self.test_connectivity,
            6: self.disconnect,
        }
        while True:
            self._show_menu()
            try:
                choice = int(_prompt("\nEnter your choice (0-7): "))
            except ValueError:
                print("[WARNING] Please enter a valid number!")
                continue
            if choice == 7:
                print("\n[EXIT] Shutting down peer...")
                break
            action = actions.get(choice)
            if action is None:
                print("[WARNING] Invalid choice! Please select 0-7.")
                continue
            action()

        if self.client:
            self.client.disconnect()

    def _show_menu(self) -> None:
        print("\n" + "=" * 50)
        print("[P2P] FILE SHARING - MAIN MENU")
        print("=" * 50)
        if self.client:
            print(f"[STATUS] Peer: {self.client.host}:{self.client.port}")
        else:
            print("[STATUS] Not connected to any peer")
        print("\nChoose an option:")
        print("0. [FILES] Create sample files for testing")
        print("1. [CONNECT] Connect to peer")
        print("2. [LIST] List peer files")
        print("3. [DOWNLOAD] Download file")
        print("4. [FOLDER] Show my shared files")
        print("5. [TEST] Test peer connectivity")
        print("6. [CLOSE] Disconnect from current peer")
        print("7. [EXIT] Exit")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def create_samples(self) -> None:
        create_sample_files(self.store.shared_dir, self.port)
        print(f"[OK] Sample files created in '{self.store.shared_dir}/'")
        self.show_my_files()

    def connect(self) -> None:
        print("\n[CONNECT] Connect to Peer")
        target = _prompt_target()
        if target is None:
            return
        host, port = target
        if port == self.port and host in LOCAL_HOSTS:
            print("[ERROR] Cannot connect to yourself!")
            return

        if self.client is None:
            self.client = PeerClient(host, port, self.store)
            result = self.client.connect_to_peer()
        else:
            result = self.client.switch_to_peer(host, port)

        if result:
            print("[SUCCESS] Connected! You can now list files and download.")
        else:
            print(f"[ERROR] {result.message}")
            print("[TIP] Make sure the other peer is running and accessible.")

    def _ensure_connected(self) -> bool:
        """Each command uses a fresh connection to the selected peer."""
        if self.client is None:
            print("[ERROR] You must connect to a peer first!")
            return False
        if self.client.is_connected():
            return True
        result = self.client.connect_to_peer()
        if not result:
            print(f"[ERROR] {result.message}")
        return bool(result)

    def list_peer_files(self) -> None:
        if not self._ensure_connected():
            return
        result = self.client.request_file_list()
        if not result:
            print(f"[ERROR] Failed to get file list from peer: {result.message}")
            return
        if not result.value:
            print("[FOLDER] Peer has no files available for sharing")
            return
        print("\n[FILES] Files available on peer:")
        _print_files(result.value)

    def download(self) -> None:
        if self.client is None:
            print("[ERROR] You must connect to a peer first!")
            return
        print("\n[DOWNLOAD] Download File")
        filename = _prompt("Enter the exact file name to download: ")
        if not filename:
            print("[ERROR] File name cannot be empty!")
            return
        if not self._ensure_connected():
            return

        result = self.client.download_file(filename)
        if result:
            print(f"[SUCCESS] Downloaded {filename} ({format_size(result.value)})")
            print(f"[FOLDER] Check the '{self.store.downloads_dir}/' folder for your file.")
        else:
            print(f"[ERROR] Download failed: {result.message}")

    def show_my_files(self) -> None:
        print("\n[FOLDER] My Shared Files")
        files = self.store.shared_files()
        if not files:
            print("[FILES] No files in shared directory")
            print(f"[TIP] Add files to '{self.store.shared_dir}/' to share them")
            return
        print("-" * 40)
        for i, (name, size) in enumerate(files, 1):
            print(f"{i}. {name:<30} {format_size(size):>10}")
        print("-" * 40)
        print(f"Total files: {len(files)}")

    def test_connectivity(self) -> None:
        print("\n[TEST] Test Peer Connectivity")
        target = _prompt_target()
        if target is None:
            return
        if test_peer_reachability(*target):
            print(f"[OK] Peer is reachable: {target[0]}:{target[1]}")
        else:
            print(f"[ERROR] Peer is not reachable: {target[0]}:{target[1]}")

    def disconnect(self) -> None:
        if self.client is None:
            print("[NETWORK] Not connected to any peer")
            return
        self.client.disconnect()
        self.client = None
        print("[OK] Disconnected from peer")


# ======================================================================
# Entry point
# ======================================================================


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    store = DirectoryFileStore(args.shared_dir, args.downloads_dir)
    server = PeerListener(store, port=args.port)
    try:
        server.start()
    except BindError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        print("[TIP] Try a different port number or stop the process using it",
              file=sys.stderr)
        return 1

    logger.info("Shared directory: %s", store.shared_dir)
    logger.info("Downloads directory: %s", store.downloads_dir)
    try:
        if args.cli:
            PeerMenu(store, server.port).run()
        else:
            from .tui import run_tui

            run_tui(server, store)
    except (KeyboardInterrupt, EOFError):
        print("\n  Interrupted. Shutting down...")
    finally:
        server.stop()
        server.join(timeout=2)
    print("  Goodbye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
