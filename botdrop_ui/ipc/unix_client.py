from __future__ import annotations

import logging
import socket
from typing import Any

from botdrop_ui.config import DEFAULT_MAX_RESPONSE_BYTES, ClientConfig
from botdrop_ui.errors import ClientConnectionError, TransportError
from botdrop_ui.ipc.protocol import encode_request
from botdrop_ui.logging import TRACE_LEVEL


log = logging.getLogger(__name__)

_RECV_CHUNK = 65536


class UnixRequestClient:
    """One request/response exchange per call over a Unix stream socket.

    The request is written in full and the write side is shut down; the
    response is everything received until the server closes the connection.
    """

    def __init__(
        self,
        socket_path: str,
        *,
        timeout_s: float | None = None,
        max_response_bytes: int | None = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self._socket_path = socket_path
        self._timeout_s = float(timeout_s) if timeout_s else None
        self._max_response_bytes = int(max_response_bytes) if max_response_bytes else None

    @classmethod
    def from_config(cls, config: ClientConfig) -> UnixRequestClient:
        return cls(
            config.socket_path,
            timeout_s=config.timeout_s,
            max_response_bytes=config.max_response_bytes,
        )

    @property
    def socket_path(self) -> str:
        return self._socket_path

    def request(self, payload: Any) -> bytes:
        return self.exchange(encode_request(payload))

    def exchange(self, data: bytes) -> bytes:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(self._timeout_s)
            log.debug("Connecting", extra={"sock": self._socket_path, "timeout_s": self._timeout_s})
            try:
                sock.connect(self._socket_path)
            except OSError as exc:
                reason = exc.strerror or str(exc) or type(exc).__name__
                raise ClientConnectionError(f"Socket error: cannot connect to {self._socket_path}: {reason}") from exc

            try:
                sock.sendall(data)
                sock.shutdown(socket.SHUT_WR)
                log.debug("Request sent", extra={"bytes": len(data)})
                log.log(TRACE_LEVEL, "Request payload", extra={"payload": data.decode("utf-8", errors="replace")})
                response = self._read_until_eof(sock)
            except socket.timeout as exc:
                raise TransportError(f"Socket error: timed out waiting for response after {self._timeout_s}s") from exc
            except OSError as exc:
                reason = exc.strerror or str(exc) or type(exc).__name__
                raise TransportError(f"Socket error: {reason}") from exc

        log.debug("Response received", extra={"bytes": len(response)})
        log.log(TRACE_LEVEL, "Response payload", extra={"payload": response.decode("utf-8", errors="replace")})
        return response

    def _read_until_eof(self, sock: socket.socket) -> bytes:
        buf = bytearray()
        limit = self._max_response_bytes
        while True:
            chunk = sock.recv(_RECV_CHUNK)
            if not chunk:
                break
            buf.extend(chunk)
            if limit is not None and len(buf) > limit:
                raise TransportError(f"Socket error: response exceeds {limit} bytes")
        return bytes(buf)
