from __future__ import annotations

import contextlib
import contextvars
import datetime as _dt
import json
import logging
import os
import sys
import traceback
from typing import Any, Iterator

# Custom TRACE level (more verbose than DEBUG); raw socket payloads are logged here.
TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")


_trace_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("botdrop_ui_trace_id", default=None)


@contextlib.contextmanager
def trace_context(trace_id: str) -> Iterator[None]:
    token = _trace_id_var.set(str(trace_id))
    try:
        yield
    finally:
        _trace_id_var.reset(token)


def get_trace_id() -> str | None:
    return _trace_id_var.get()


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        if not hasattr(record, "trace_id"):
            record.trace_id = get_trace_id()  # type: ignore[attr-defined]
        return True


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS and not k.startswith("_")}


def _timestamp(record: logging.LogRecord) -> str:
    return _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc).astimezone().isoformat(timespec="milliseconds")


class PrettyFormatter(logging.Formatter):
    def __init__(self, *, use_color: bool) -> None:
        super().__init__()
        self._use_color = bool(use_color)

    def format(self, record: logging.LogRecord) -> str:
        parts = [_timestamp(record), record.levelname, record.name, record.getMessage()]

        extras = _record_extras(record)
        trace_id = extras.pop("trace_id", None)
        if trace_id:
            parts.append(f"trace_id={trace_id}")
        for k in sorted(extras.keys()):
            parts.append(f"{k}={extras[k]}")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()
        if self._use_color:
            line = _colorize(record.levelno, line)
        return line


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_record_extras(record))
        if record.exc_info:
            payload["exc"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)


def _colorize(levelno: int, text: str) -> str:
    if levelno >= logging.ERROR:
        color = "31"  # red
    elif levelno >= logging.WARNING:
        color = "33"  # yellow
    elif levelno >= logging.INFO:
        color = "32"  # green
    elif levelno >= logging.DEBUG:
        color = "36"  # cyan
    else:
        color = "90"  # gray
    return f"\x1b[{color}m{text}\x1b[0m"


_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE_LEVEL,
}


def parse_log_level(value: str | None, *, default: int = logging.WARNING) -> int:
    raw = (value or "").strip().lower()
    if not raw:
        return default
    try:
        return _LEVELS[raw]
    except KeyError:
        raise ValueError("invalid log level") from None


def setup_logging(
    *,
    level: int = logging.WARNING,
    log_format: str = "pretty",
    log_file: str | None = None,
    no_color: bool = False,
) -> None:
    """Configure root logging.

    Logs go to stderr (and optionally a file); stdout carries only the
    server response.
    """

    fmt = (log_format or "pretty").strip().lower()
    if fmt not in {"pretty", "json"}:
        raise ValueError("invalid log format")

    use_color = (not no_color) and bool(getattr(sys.stderr, "isatty", lambda: False)())

    if fmt == "json":
        formatter: logging.Formatter = JsonFormatter()
        file_formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = PrettyFormatter(use_color=use_color)
        file_formatter = PrettyFormatter(use_color=False)

    handlers: list[logging.Handler] = []

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.addFilter(_ContextFilter())
    handlers.append(stderr_handler)

    if log_file:
        path = os.path.expanduser(str(log_file))
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setFormatter(file_formatter)
        fh.addFilter(_ContextFilter())
        handlers.append(fh)

    logging.basicConfig(level=int(level), handlers=handlers, force=True)
