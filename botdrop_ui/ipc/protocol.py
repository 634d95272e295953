from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from botdrop_ui.errors import ArgumentError, InputFormatError

_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Unexpected token {name} in JSON")


def _parse_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number {text} out of range")
    return value


def _loads(text: str) -> Any:
    # Strict JSON: no NaN/Infinity, including overflowing literals like 1e400.
    return json.loads(text, parse_constant=_reject_constant, parse_float=_parse_float)


def _dumps(obj: Any, **kwargs: Any) -> str:
    text = json.dumps(obj, ensure_ascii=False, allow_nan=False, **kwargs)
    # Lone surrogates (from "\ud800" escapes or surrogateescape'd argv) cannot be
    # written as UTF-8; they only occur inside string literals, so escape them there.
    return _LONE_SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def parse_request(raw: str | None) -> Any:
    if not raw:
        raise ArgumentError("Missing request JSON argument.")
    try:
        return _loads(raw)
    except ValueError as exc:
        raise InputFormatError(f"Invalid JSON: {exc}") from exc


def encode_request(payload: Any) -> bytes:
    # One compact document; the half-close marks its end, so no newline.
    return _dumps(payload, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class Response:
    text: str
    is_json: bool
    value: Any = None

    def render(self) -> str:
        if not self.is_json:
            return self.text + "\n"
        return _dumps(self.value, indent=2) + "\n"

    @property
    def error(self) -> tuple[str, str] | None:
        # Server error shape: {"ok": false, "error": CODE, "message": MSG}
        obj = self.value
        if not self.is_json or not isinstance(obj, dict) or obj.get("ok") is not False:
            return None
        return str(obj.get("error") or ""), str(obj.get("message") or "")


def decode_response(data: bytes) -> Response:
    text = data.decode("utf-8", errors="replace")
    try:
        value = _loads(text)
    except ValueError:
        return Response(text=text, is_json=False)
    return Response(text=text, is_json=True, value=value)


def render_response(data: bytes) -> str:
    return decode_response(data).render()
