from __future__ import annotations

import argparse
import logging
import sys
import uuid
from typing import Mapping

from botdrop_ui.config import load_config
from botdrop_ui.errors import ClientError
from botdrop_ui.ipc.protocol import decode_response, encode_request, parse_request
from botdrop_ui.ipc.unix_client import UnixRequestClient
from botdrop_ui.logging import TRACE_LEVEL, parse_log_level, setup_logging, trace_context
from botdrop_ui.runlog import RunLog, create_run_log


log = logging.getLogger(__name__)

_EPILOG = """\
examples:
  botdrop-ui '{"op":"ping"}'
  botdrop-ui '{"op":"tree","maxNodes":300}'
  botdrop-ui '{"op":"global","action":"back"}'
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="botdrop-ui",
        description="Send one JSON request to the BotDrop UI automation socket ($PREFIX/var/run/botdrop-ui.sock).",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("request", nargs="?", default=None, help="Request body as a JSON document")
    parser.add_argument("--prefix", default=None, help="Override $PREFIX (socket lives at <prefix>/var/run/botdrop-ui.sock)")
    parser.add_argument(
        "--timeout",
        dest="timeout_s",
        default=None,
        help="Connect/read timeout in seconds (default: none, or $BOTDROP_UI_TIMEOUT)",
    )
    parser.add_argument(
        "--max-response-bytes",
        default=None,
        help="Fail if the response grows past this size (default: 64 MiB; 0 disables)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    _add_logging_args(parser)
    return parser


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["error", "warning", "info", "debug", "trace"],
        default=None,
        help="Logging level (default: warning)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Alias for --log-level=debug")
    parser.add_argument("--trace", action="store_true", help="Alias for --log-level=trace")
    parser.add_argument("--log-file", default=None, help="Optional log file path")
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Optional directory to create a per-run log bundle (botdrop-ui.log, result.txt, metadata.json)",
    )
    parser.add_argument("--log-format", choices=["pretty", "json"], default="pretty")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors in pretty logs")


def _version() -> str:
    import botdrop_ui

    return str(botdrop_ui.__version__)


def main(argv: list[str] | None = None, *, environ: Mapping[str, str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.trace:
        level = TRACE_LEVEL
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = parse_log_level(args.log_level)

    trace_id = uuid.uuid4().hex[:12]

    log_file = args.log_file
    runlog: RunLog | None = None
    exit_code: int | None = None
    stdout_orig = sys.stdout
    try:
        if args.log_dir:
            argv_for_meta = [parser.prog] + (list(argv) if argv is not None else sys.argv[1:])
            runlog = create_run_log(str(args.log_dir), trace_id=trace_id, argv=argv_for_meta)
            if not log_file:
                log_file = str(runlog.log_path)
            sys.stdout = runlog.tee(sys.stdout)

        setup_logging(level=level, log_format=args.log_format, log_file=log_file, no_color=args.no_color)

        with trace_context(trace_id):
            try:
                _run(args, environ=environ, runlog=runlog)
            except ClientError as exc:
                log.debug("Request failed", exc_info=True, extra={"error_type": type(exc).__name__})
                if runlog is not None:
                    runlog.record(error={"type": type(exc).__name__, "message": str(exc)})
                sys.stderr.write(f"{exc}\n")
                exit_code = exc.exit_code
                raise SystemExit(exc.exit_code) from None
        exit_code = 0
    finally:
        sys.stdout = stdout_orig
        if runlog is not None:
            runlog.close(exit_code=exit_code)


def _run(args: argparse.Namespace, *, environ: Mapping[str, str] | None, runlog: RunLog | None = None) -> None:
    # PREFIX is checked before the request argument.
    config = load_config(
        prefix=args.prefix,
        timeout_s=args.timeout_s,
        max_response_bytes=args.max_response_bytes,
        environ=environ,
    )
    if runlog is not None:
        runlog.record(socket_path=config.socket_path)
    payload = parse_request(args.request)
    request = encode_request(payload)
    if runlog is not None:
        runlog.record(request_bytes=len(request))

    client = UnixRequestClient.from_config(config)
    data = client.exchange(request)

    response = decode_response(data)
    server_error = response.error
    if runlog is not None:
        runlog.record(response_bytes=len(data), response_is_json=response.is_json)
    if server_error is not None:
        code, message = server_error
        log.info("Server reported an error", extra={"code": code, "server_message": message})
        if runlog is not None:
            runlog.record(server_error={"code": code, "message": message})

    sys.stdout.write(response.render())
    sys.stdout.flush()


if __name__ == "__main__":
    main()
