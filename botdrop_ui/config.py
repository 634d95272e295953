from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from botdrop_ui.errors import ConfigurationError

SOCKET_SUFFIX = "/var/run/botdrop-ui.sock"
DEFAULT_MAX_RESPONSE_BYTES = 64 * 1024 * 1024
CONFIG_FILE_NAME = "client.json"


@dataclass(frozen=True)
class ClientConfig:
    prefix: str
    timeout_s: float | None = None
    max_response_bytes: int | None = DEFAULT_MAX_RESPONSE_BYTES

    @property
    def socket_path(self) -> str:
        # Plain concatenation: PREFIX is expected without a trailing slash.
        return self.prefix + SOCKET_SUFFIX


def _env(environ: Mapping[str, str], name: str) -> str:
    return (environ.get(name, "") or "").strip()


def _xdg_config_home(environ: Mapping[str, str]) -> Path:
    env = _env(environ, "XDG_CONFIG_HOME")
    if env:
        return Path(env).expanduser()
    return Path("~/.config").expanduser()


def config_dir(environ: Mapping[str, str] | None = None) -> Path:
    env_map = os.environ if environ is None else environ
    env = _env(env_map, "BOTDROP_UI_CONFIG_DIR")
    if env:
        return Path(env).expanduser()
    return _xdg_config_home(env_map) / "botdrop-ui"


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return obj if isinstance(obj, dict) else {}


def _parse_timeout(value: Any, source: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ConfigurationError(f"{source} must be a number of seconds")
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{source} must be a number of seconds") from exc
    if not math.isfinite(timeout):
        raise ConfigurationError(f"{source} must be a finite number of seconds")
    if timeout < 0:
        raise ConfigurationError(f"{source} must not be negative")
    # 0 disables the timeout.
    return timeout or None


def _parse_max_bytes(value: Any, source: str) -> int | None:
    if value is None or value == "":
        return None
    # client.json floats must be integral.
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ConfigurationError(f"{source} must be an integer")
    try:
        limit = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{source} must be an integer") from exc
    if limit < 0:
        raise ConfigurationError(f"{source} must not be negative")
    return limit


def load_config(
    *,
    prefix: str | None = None,
    timeout_s: float | str | None = None,
    max_response_bytes: int | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """Resolve the client configuration.

    Precedence (highest to lowest):
    1) explicit parameters (typically CLI)
    2) env vars PREFIX, BOTDROP_UI_TIMEOUT, BOTDROP_UI_MAX_RESPONSE_BYTES
    3) client.json in the config dir (timeout_s, max_response_bytes only)
    4) defaults (no timeout, 64 MiB response limit)

    PREFIX has no default and is never read from the config file.
    """

    env_map = os.environ if environ is None else environ

    # Blank means unset; otherwise the value is used exactly as given.
    resolved_prefix = prefix if prefix and prefix.strip() else env_map.get("PREFIX", "") or ""
    if not resolved_prefix.strip():
        raise ConfigurationError("PREFIX is not set (expected in Termux env).")

    file_obj = _read_config_file(config_dir(env_map) / CONFIG_FILE_NAME)

    if timeout_s is not None:
        timeout = _parse_timeout(timeout_s, "--timeout")
    elif _env(env_map, "BOTDROP_UI_TIMEOUT"):
        timeout = _parse_timeout(_env(env_map, "BOTDROP_UI_TIMEOUT"), "BOTDROP_UI_TIMEOUT")
    else:
        timeout = _parse_timeout(file_obj.get("timeout_s"), "timeout_s")

    if max_response_bytes is not None:
        limit = _parse_max_bytes(max_response_bytes, "--max-response-bytes")
    elif _env(env_map, "BOTDROP_UI_MAX_RESPONSE_BYTES"):
        limit = _parse_max_bytes(_env(env_map, "BOTDROP_UI_MAX_RESPONSE_BYTES"), "BOTDROP_UI_MAX_RESPONSE_BYTES")
    elif "max_response_bytes" in file_obj:
        limit = _parse_max_bytes(file_obj.get("max_response_bytes"), "max_response_bytes")
    else:
        limit = DEFAULT_MAX_RESPONSE_BYTES

    return ClientConfig(
        prefix=resolved_prefix,
        timeout_s=timeout,
        max_response_bytes=limit or None,
    )
