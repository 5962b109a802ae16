"""
Tests for peer.py — argument parsing and the numbered menu.
"""

import logging
import socket

import pytest

from peerlink import peer
from peerlink.peer import PeerMenu, build_parser
from peerlink.store import DirectoryFileStore


@pytest.fixture
def scripted_input(monkeypatch):
    """Feed the menu a fixed sequence of answers."""

    def feed(*answers):
        it = iter(answers)
        monkeypatch.setattr("builtins.input", lambda prompt="": next(it))

    return feed


@pytest.fixture
def restore_logging():
    yield
    logger = logging.getLogger("peerlink")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.port == 5000
        assert not args.cli
        assert args.shared_dir == "shared"
        assert args.downloads_dir == "downloads"

    def test_port_range(self):
        parser = build_parser()
        assert parser.parse_args(["--port", "6000"]).port == 6000
        for bad in ("80", "70000", "abc"):
            with pytest.raises(SystemExit):
                parser.parse_args(["--port", bad])

    def test_log_level_is_case_insensitive(self):
        assert build_parser().parse_args(["--log-level", "debug"]).log_level == "DEBUG"


class TestMain:
    def test_port_in_use_exits_with_error(self, tmp_path, capsys, restore_logging):
        taken = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        taken.bind(("0.0.0.0", 0))
        taken.listen(1)
        port = taken.getsockname()[1]
        try:
            code = peer.main([
                "--cli",
                "--port", str(port),
                "--shared-dir", str(tmp_path / "s"),
                "--downloads-dir", str(tmp_path / "d"),
            ])
        finally:
            taken.close()
        assert code == 1
        assert f"Port {port} is already in use" in capsys.readouterr().err


class TestPeerMenu:
    def make_menu(self, tmp_path, port=40000):
        store = DirectoryFileStore(str(tmp_path / "shared"), str(tmp_path / "downloads"))
        return PeerMenu(store, port)

    def test_seeds_sample_files_and_exits(self, tmp_path, scripted_input, capsys):
        scripted_input("4", "7")
        self.make_menu(tmp_path).run()
        out = capsys.readouterr().out
        assert "hello.txt" in out
        assert "Total files: 3" in out

    def test_connect_list_download(self, tmp_path, scripted_input, capsys, listener, store):
        store.add("remote.txt", b"from afar")
        scripted_input(
            "1", "127.0.0.1", str(listener.port),
            "2",
            "3", "remote.txt",
            "7",
        )
        self.make_menu(tmp_path).run()

        out = capsys.readouterr().out
        assert "1. remote.txt" in out
        assert "[SUCCESS] Downloaded remote.txt" in out
        assert (tmp_path / "downloads" / "remote.txt").read_bytes() == b"from afar"

    def test_refuses_to_connect_to_itself(self, tmp_path, scripted_input, capsys):
        scripted_input("1", "localhost", "40000", "7")
        self.make_menu(tmp_path, port=40000).run()
        assert "Cannot connect to yourself" in capsys.readouterr().out

    def test_commands_need_a_peer(self, tmp_path, scripted_input, capsys):
        scripted_input("2", "3", "6", "7")
        self.make_menu(tmp_path).run()
        out = capsys.readouterr().out
        assert out.count("You must connect to a peer first") == 2
        assert "Not connected to any peer" in out

    def test_invalid_choices(self, tmp_path, scripted_input, capsys):
        scripted_input("nine", "42", "7")
        self.make_menu(tmp_path).run()
        out = capsys.readouterr().out
        assert "Please enter a valid number" in out
        assert "Invalid choice" in out

    def test_probe_unreachable(self, tmp_path, scripted_input, capsys, free_port):
        scripted_input("5", "127.0.0.1", str(free_port), "7")
        self.make_menu(tmp_path).run()
        assert "Peer is not reachable" in capsys.readouterr().out
