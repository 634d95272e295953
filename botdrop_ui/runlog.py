from __future__ import annotations

import datetime as _dt
import io
import json
import os
import platform
import sys
import time
from pathlib import Path
from typing import Any, TextIO


class TeeTextIO(io.TextIOBase):
    """Copy stdout writes to a second stream (the run bundle's result.txt)."""

    def __init__(self, primary: TextIO, secondary: TextIO) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def encoding(self) -> str | None:  # pragma: no cover
        return getattr(self._primary, "encoding", None)

    def write(self, s: str) -> int:
        n = self._primary.write(s)
        self._secondary.write(s)
        return n

    def flush(self) -> None:
        self._primary.flush()
        self._secondary.flush()


class RunLog:
    """Per-invocation bundle under --log-dir.

    run-<ts>-<trace_id>/
      botdrop-ui.log   log records (unless --log-file is given)
      result.txt       everything printed to stdout
      metadata.json    invocation, exchange summary and exit code; written on close()
    """

    def __init__(self, run_dir: Path, *, trace_id: str, argv: list[str]) -> None:
        self.run_dir = run_dir
        self.log_path = run_dir / "botdrop-ui.log"
        self.result_path = run_dir / "result.txt"
        self.metadata_path = run_dir / "metadata.json"
        self._started = time.monotonic()
        self._result_fh: TextIO | None = None
        self._meta: dict[str, Any] = {
            "started_at": _dt.datetime.now().astimezone().isoformat(timespec="seconds"),
            "trace_id": trace_id,
            "argv": list(argv),
            "cwd": os.getcwd(),
            "pid": os.getpid(),
            "python": sys.version.split()[0],
            "platform": platform.platform(),
            "socket_path": None,
            "request_bytes": None,
            "response_bytes": None,
            "response_is_json": None,
            "server_error": None,
            "error": None,
        }

    def tee(self, stream: TextIO) -> TextIO:
        self._result_fh = open(self.result_path, "w", encoding="utf-8")
        return TeeTextIO(stream, self._result_fh)

    def record(self, **fields: Any) -> None:
        unknown = set(fields) - set(self._meta)
        if unknown:
            raise KeyError(f"unknown run log fields: {sorted(unknown)}")
        self._meta.update(fields)

    def close(self, *, exit_code: int | None) -> None:
        # exit_code None: the run ended on an unexpected exception.
        if self._result_fh is not None:
            self._result_fh.flush()
            self._result_fh.close()
            self._result_fh = None
        meta = dict(self._meta)
        meta["finished_at"] = _dt.datetime.now().astimezone().isoformat(timespec="seconds")
        meta["duration_ms"] = int((time.monotonic() - self._started) * 1000)
        meta["exit_code"] = exit_code
        self.metadata_path.write_text(json.dumps(meta, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def create_run_log(base_dir: str, *, trace_id: str, argv: list[str]) -> RunLog:
    base = Path(os.path.expanduser(str(base_dir))).resolve()
    ts = _dt.datetime.now().astimezone().strftime("%Y%m%d-%H%M%S")
    run_dir = base / f"run-{ts}-{trace_id}"
    run_dir.mkdir(parents=True, exist_ok=False)
    return RunLog(run_dir, trace_id=trace_id, argv=argv)
