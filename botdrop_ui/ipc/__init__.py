from __future__ import annotations

from botdrop_ui.ipc.unix_client import UnixRequestClient

__all__ = ["UnixRequestClient"]
