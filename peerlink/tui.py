"""
peerlink TUI — terminal dashboard for P2P file sharing.

Built with Textual.  Launched by default from ``peerlink``; pass ``--cli``
for the plain numbered menu instead.
"""

from __future__ import annotations

import threading
from datetime import datetime

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    ProgressBar,
    RichLog,
    Static,
)

from .client import PeerClient, format_size
from .config import PROGRESS_STEP, TCP_PORT
from .log import TuiLogHandler, setup_logging
from .server import PeerListener
from .store import DirectoryFileStore, create_sample_files

LEVEL_COLOURS = {
    "DEBUG": "#41505e",
    "INFO": "#718ca1",
    "WARNING": "#e0c97f",
    "ERROR": "#e74c3c",
    "CRITICAL": "#e74c3c",
}


# ==============================================================================
# Transfer Progress Modal
# ==============================================================================


class TransferProgressScreen(ModalScreen):
    """Modal showing download progress."""

    BINDINGS = [Binding("escape", "close", "Close")]

    def __init__(self, filename: str, total_size: int):
        super().__init__()
        self.filename = filename
        self.total_size = total_size
        self._completed = False

    def compose(self) -> ComposeResult:
        with Container(id="dialog"):
            yield Label(f"Download: {self.filename}", id="dialog-title")
            yield Label(f"0 / {format_size(self.total_size)}", id="transfer-status")
            yield ProgressBar(total=self.total_size, id="progress-bar")
            yield Button("Hide", id="btn-close")

    def update_progress(self, current: int) -> None:
        if not self.is_mounted or self._completed:
            return
        self.query_one("#progress-bar", ProgressBar).update(progress=current)
        percent = current / self.total_size * 100 if self.total_size else 100
        self.query_one("#transfer-status", Label).update(
            f"{format_size(current)} / {format_size(self.total_size)} ({percent:.1f}%)"
        )

    def mark_complete(self, message: str) -> None:
        self._completed = True
        if not self.is_mounted:
            return
        self.query_one("#transfer-status", Label).update(message)
        self.query_one("#btn-close", Button).label = "Close"

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-close":
            self.dismiss()

    def action_close(self) -> None:
        self.dismiss()


# ==============================================================================
# Help Modal
# ==============================================================================


class HelpScreen(ModalScreen):
    """Full help overlay."""

    BINDINGS = [Binding("escape", "dismiss", "Close")]

    def compose(self) -> ComposeResult:
        with Container(id="dialog"):
            yield Label("PEERLINK  —  Help", id="dialog-title")
            yield Static(
                "[bold #5ec4ff]Keybindings[/]\n"
                "\n"
                "  [#e0c97f]F1[/]          Show this help\n"
                "  [#e0c97f]F5[/]          Refresh file lists\n"
                "  [#e0c97f]d[/]           Download the selected file\n"
                "  [#e0c97f]s[/]           Create sample files\n"
                "  [#e0c97f]x[/]           Forget the current peer\n"
                "  [#e0c97f]Tab[/]         Cycle focus between panels\n"
                "  [#e0c97f]q[/]           Quit\n"
                "\n"
                "[bold #5ec4ff]Connecting[/]\n"
                "\n"
                "  Type [#718ca1]host:port[/] in the peer bar and press Enter.\n"
                "  The port defaults to the local one when omitted.\n"
                "  Press [#718ca1]Test[/] to only probe whether the peer answers.\n",
                id="help-content",
            )
            yield Button("Close  (Esc)", id="help-close-btn")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "help-close-btn":
            self.dismiss()


# ==============================================================================
# Main TUI App
# ==============================================================================


class PeerlinkApp(App):
    """peerlink P2P File Sharing — Terminal Dashboard."""

    TITLE = "PEERLINK"
    SUB_TITLE = "P2P File Sharing"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    #main-container { height: 1fr; }
    #sidebar { width: 36; border-right: solid $primary; }
    #sidebar-title, #files-header-text, #log-title { text-style: bold; padding: 0 1; }
    #main-panel { width: 1fr; }
    #peer-bar, #action-bar { height: auto; }
    #peer-input { width: 1fr; }
    #log-panel { height: 12; border-top: solid $primary; }
    #dialog {
        width: 64; height: auto; padding: 1 2;
        border: thick $primary; background: $surface;
    }
    #dialog-title { text-style: bold; margin-bottom: 1; }
    TransferProgressScreen, HelpScreen { align: center middle; }
    """

    BINDINGS = [
        Binding("f1", "show_help", "Help", show=True),
        Binding("f5", "refresh_files", "Refresh", show=True),
        Binding("d", "download_file", "Download", show=True),
        Binding("s", "create_samples", "Samples", show=True),
        Binding("x", "forget_peer", "Disconnect", show=True),
        Binding("q", "quit_app", "Quit", show=True),
    ]

    def __init__(self, server: PeerListener, store: DirectoryFileStore):
        super().__init__()
        self.server = server
        self.store = store
        self.client: PeerClient | None = None
        # PeerClient owns one socket; workers take turns with it.
        self._client_lock = threading.Lock()

    # --------------------------------------------------------------------------
    # Layout
    # --------------------------------------------------------------------------

    def compose(self) -> ComposeResult:
        yield Header()

        with Horizontal(id="main-container"):
            with Vertical(id="sidebar"):
                yield Label("MY FILES", id="sidebar-title")
                yield DataTable(id="my-files-table")

            with Vertical(id="main-panel"):
                with Horizontal(id="peer-bar"):
                    yield Input(placeholder="Peer host:port", id="peer-input")
                    yield Button("Connect", variant="primary", id="btn-connect")
                    yield Button("Test", id="btn-test")
                yield Label("Connect to a peer to view its files", id="files-header-text")
                yield DataTable(id="remote-files-table")
                with Horizontal(id="action-bar"):
                    yield Button("Download", id="btn-download")
                    yield Button("Refresh", id="btn-refresh")
                    yield Button("Disconnect", id="btn-disconnect")

        with Vertical(id="log-panel"):
            yield Label(" LOG", id="log-title")
            yield RichLog(id="log-view", highlight=True, markup=True)

        yield Footer()

    # --------------------------------------------------------------------------
    # Startup
    # --------------------------------------------------------------------------

    def on_mount(self) -> None:
        my_table = self.query_one("#my-files-table", DataTable)
        my_table.add_columns("File", "Size")
        my_table.cursor_type = "row"
        my_table.zebra_stripes = True

        remote_table = self.query_one("#remote-files-table", DataTable)
        remote_table.add_columns("#", "Filename")
        remote_table.cursor_type = "row"
        remote_table.zebra_stripes = True

        setup_logging(handler=TuiLogHandler(self._post_log))
        self._refresh_my_files()
        self.set_interval(10.0, self._refresh_my_files)

        self._log(f"peerlink started  [bold #5ec4ff]tcp_port={self.server.port}[/]")
        self._log(f"Shared directory: [#718ca1]{self.store.shared_dir}[/]")
        self._log(f"Downloads directory: [#718ca1]{self.store.downloads_dir}[/]")

    def on_unmount(self) -> None:
        setup_logging()
        if self.client:
            self.client.disconnect()

    # --------------------------------------------------------------------------
    # Logging
    # --------------------------------------------------------------------------

    def _log(self, message: str) -> None:
        log_view = self.query_one("#log-view", RichLog)
        ts = datetime.now().strftime("%H:%M:%S")
        log_view.write(f"[#41505e]{ts}[/]  {message}")

    def _post_log(self, level: str, message: str) -> None:
        colour = LEVEL_COLOURS.get(level, "#718ca1")
        line = f"[{colour}]{level:<7}[/] {message}"
        if not self.is_running:
            return
        try:
            self.call_from_thread(self._log, line)
        except RuntimeError:
            # Already on the UI thread.
            self._log(line)

    # --------------------------------------------------------------------------
    # File tables
    # --------------------------------------------------------------------------

    def _refresh_my_files(self) -> None:
        table = self.query_one("#my-files-table", DataTable)
        table.clear()
        for name, size in self.store.shared_files():
            table.add_row(name, format_size(size))

    def _update_remote_table(self, names: list[str]) -> None:
        table = self.query_one("#remote-files-table", DataTable)
        table.clear()
        for i, name in enumerate(names, 1):
            table.add_row(str(i), name)

    def _set_header(self, text: str) -> None:
        self.query_one("#files-header-text", Label).update(text)

    # --------------------------------------------------------------------------
    # Peer connection
    # --------------------------------------------------------------------------

    def _parse_target(self, target: str) -> tuple[str, int] | None:
        target = target.strip()
        if not target:
            return None
        if ":" in target:
            host, port_str = target.rsplit(":", 1)
            try:
                return host or "127.0.0.1", int(port_str)
            except ValueError:
                self._log(f"[#e74c3c]Invalid port:[/] {port_str}")
                return None
        return target, self.server.port or TCP_PORT

    def _connect_from_input(self) -> None:
        target = self._parse_target(self.query_one("#peer-input", Input).value)
        if target is None:
            self._log("[#e0c97f]Warning:[/] Enter a peer as host:port.")
            return
        self._connect_and_list(*target)

    @work(thread=True)
    def _connect_and_list(self, host: str, port: int) -> None:
        with self._client_lock:
            if self.client is None:
                self.client = PeerClient(host, port, self.store)
                result = self.client.connect_to_peer()
            else:
                result = self.client.switch_to_peer(host, port)
        if not result:
            self.call_from_thread(self.notify, result.message, severity="error")
            return
        self.call_from_thread(
            self._set_header,
            f"FILES ON: [bold #5ec4ff]{host}[/]:[#718ca1]{port}[/]",
        )
        self._list_remote_files()

    @work(thread=True)
    def _probe(self, host: str, port: int) -> None:
        if PeerClient.test_peer_reachability(host, port):
            self.call_from_thread(self.notify, f"{host}:{port} is reachable")
        else:
            self.call_from_thread(
                self.notify, f"{host}:{port} is not reachable", severity="warning"
            )

    def _ensure_connected(self) -> bool:
        """Open a fresh connection to the selected peer if needed."""
        if self.client is None:
            return False
        if self.client.is_connected():
            return True
        return bool(self.client.connect_to_peer())

    def _list_remote_files(self) -> None:
        with self._client_lock:
            if not self._ensure_connected():
                return
            result = self.client.request_file_list()
        if not result:
            self.call_from_thread(
                self.notify, f"Listing failed: {result.message}", severity="error"
            )
            return
        self.call_from_thread(self._update_remote_table, result.value)

    @work(thread=True)
    def _refresh_remote_files(self) -> None:
        self._list_remote_files()

    # --------------------------------------------------------------------------
    # Download
    # --------------------------------------------------------------------------

    @work(thread=True)
    def _do_download_async(self, filename: str) -> None:
        progress_screen: TransferProgressScreen | None = None
        last_shown = 0

        def progress_callback(current: int, total: int) -> None:
            nonlocal progress_screen, last_shown
            if progress_screen is None and total > PROGRESS_STEP:
                progress_screen = TransferProgressScreen(filename, total)
                self.call_from_thread(self.push_screen, progress_screen)
            if progress_screen is None:
                return
            if current - last_shown >= PROGRESS_STEP or current == total:
                last_shown = current
                self.call_from_thread(progress_screen.update_progress, current)

        with self._client_lock:
            if not self._ensure_connected():
                self.call_from_thread(
                    self.notify, "Peer is not reachable", severity="error"
                )
                return
            result = self.client.download_file(
                filename, progress_callback=progress_callback
            )

        if result:
            message = f"Downloaded {filename} ({format_size(result.value)})"
            self.call_from_thread(self.notify, message)
        else:
            message = f"Download failed: {result.message}"
            self.call_from_thread(self.notify, message, severity="error")
        if progress_screen is not None:
            self.call_from_thread(progress_screen.mark_complete, message)

    # --------------------------------------------------------------------------
    # Actions — keybindings
    # --------------------------------------------------------------------------

    def action_show_help(self) -> None:
        self.push_screen(HelpScreen())

    def action_quit_app(self) -> None:
        self._log("Shutting down...")
        self.exit()

    def action_refresh_files(self) -> None:
        self._refresh_my_files()
        if self.client:
            self._refresh_remote_files()
        else:
            self._log("No peer selected, refreshed local files only.")

    def action_create_samples(self) -> None:
        create_sample_files(self.store.shared_dir, self.server.port)
        self._refresh_my_files()

    def action_forget_peer(self) -> None:
        if self.client is None:
            self._log("Not connected to any peer")
            return
        if not self._client_lock.acquire(blocking=False):
            self._log("[#e0c97f]Warning:[/] A transfer is in progress.")
            return
        try:
            self.client.disconnect()
            self.client = None
        finally:
            self._client_lock.release()
        self._update_remote_table([])
        self._set_header("Connect to a peer to view its files")

    def action_download_file(self) -> None:
        if self.client is None:
            self._log("[#e0c97f]Warning:[/] Connect to a peer first.")
            return
        table = self.query_one("#remote-files-table", DataTable)
        if table.row_count == 0:
            self._log("[#e0c97f]Warning:[/] No files to download.")
            return
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        filename = table.get_row(row_key)[1]
        self._do_download_async(filename)

    # --------------------------------------------------------------------------
    # Widget events
    # --------------------------------------------------------------------------

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn_id = event.button.id
        if btn_id == "btn-connect":
            self._connect_from_input()
        elif btn_id == "btn-test":
            target = self._parse_target(self.query_one("#peer-input", Input).value)
            if target:
                self._probe(*target)
        elif btn_id == "btn-download":
            self.action_download_file()
        elif btn_id == "btn-refresh":
            self.action_refresh_files()
        elif btn_id == "btn-disconnect":
            self.action_forget_peer()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "peer-input":
            self._connect_from_input()


# ==============================================================================
# Entry point (called from peer.py)
# ==============================================================================


def run_tui(server: PeerListener, store: DirectoryFileStore) -> None:
    """Launch the peerlink TUI."""
    app = PeerlinkApp(server, store)
    app.run()
