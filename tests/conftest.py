"""
Shared fixtures: an in-memory store and a live listener on a free port.
"""

import socket
import threading

import pytest

import peerlink.server
from peerlink.server import PeerListener
from peerlink.store import MemoryFileStore


@pytest.fixture
def store():
    return MemoryFileStore()


@pytest.fixture
def listener(store, monkeypatch):
    """A started PeerListener on 127.0.0.1 serving *store*."""
    monkeypatch.setattr(peerlink.server, "ACCEPT_POLL_INTERVAL", 0.1)
    server = PeerListener(store, port=0, host="127.0.0.1")
    server.start()
    yield server
    server.stop()
    server.join(timeout=5)


@pytest.fixture
def free_port():
    """A port number with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class ScriptedPeer:
    """Accepts one connection and runs *script(conn)* against it.

    Used to play a misbehaving remote peer.
    """

    def __init__(self, script):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self.port = self._sock.getsockname()[1]
        self._script = script
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        conn, _ = self._sock.accept()
        with conn:
            self._script(conn)
        self._sock.close()

    def join(self, timeout=5):
        self._thread.join(timeout)


@pytest.fixture
def scripted_peer():
    peers = []

    def factory(script):
        peer = ScriptedPeer(script)
        peers.append(peer)
        return peer

    yield factory
    for peer in peers:
        peer.join()
