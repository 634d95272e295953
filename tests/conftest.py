from __future__ import annotations

import logging
import os
import shutil
import socket
import tempfile
import threading
import time
from typing import Callable, Iterator

import pytest

from botdrop_ui.config import SOCKET_SUFFIX

# Returned by a handler to keep the connection open until the server is closed.
HANG = object()
# Passed as the handler: close the connection without reading the request.
RESET = object()


class FakeUiServer:
    """Minimal stand-in for the automation server: read until EOF, reply, close."""

    def __init__(self, socket_path: str, handler: Callable[[bytes], object] | object) -> None:
        self.socket_path = socket_path
        self.requests: list[bytes] = []
        self._handler = handler
        self._stop = threading.Event()
        self._sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self._sock.bind(socket_path)
        self._sock.listen(4)
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self) -> FakeUiServer:
        self._thread.start()
        return self

    def close(self) -> None:
        self._stop.set()
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        self._thread.join(timeout=5)

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except OSError:
                return
            with conn:
                if self._handler is RESET:
                    # Closing with unread data resets the peer (ECONNRESET or EPIPE on its side).
                    time.sleep(0.1)
                    continue
                chunks: list[bytes] = []
                while True:
                    chunk = conn.recv(65536)
                    if not chunk:
                        break
                    chunks.append(chunk)
                request = b"".join(chunks)
                self.requests.append(request)
                reply = self._handler(request)
                if reply is HANG:
                    self._stop.wait(10)
                    continue
                if isinstance(reply, bytes):
                    try:
                        conn.sendall(reply)
                    except OSError:
                        # Client gave up early (e.g. response limit).
                        continue


@pytest.fixture
def prefix() -> Iterator[str]:
    # AF_UNIX paths are limited to ~107 bytes, so stay out of pytest's tmp_path.
    base = tempfile.mkdtemp(prefix="bd-", dir="/tmp")
    os.makedirs(os.path.join(base, "var", "run"))
    try:
        yield base
    finally:
        shutil.rmtree(base, ignore_errors=True)


@pytest.fixture
def socket_path(prefix: str) -> str:
    return prefix + SOCKET_SUFFIX


@pytest.fixture
def ui_server(socket_path: str) -> Iterator[Callable[[Callable[[bytes], object]], FakeUiServer]]:
    servers: list[FakeUiServer] = []

    def _start(handler: Callable[[bytes], object]) -> FakeUiServer:
        server = FakeUiServer(socket_path, handler).start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        server.close()


@pytest.fixture
def env(prefix: str, tmp_path) -> dict[str, str]:
    # Point the config dir at an empty location so a user's client.json is never read.
    return {"PREFIX": prefix, "BOTDROP_UI_CONFIG_DIR": str(tmp_path / "config")}


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
