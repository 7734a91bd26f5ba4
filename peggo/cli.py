"""Command-line entry point: root command, logging setup and version output."""

from __future__ import annotations

import argparse
import binascii
import json
import logging
import os
import platform
import sys
from dataclasses import asdict, dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable, Mapping

import yaml

ENV_PREFIX = "PEGGO_"

LOG_FORMAT_JSON = "json"
LOG_FORMAT_TEXT = "text"

# Filled in at release time.
VERSION = ""
COMMIT = ""
SDK_VERSION = ""

_ROOT_DESCRIPTION = """\
Peggo is a companion executable for orchestrating a Gravity validator.

Inputs in the CLI commands can be provided via flags or environment variables. If
using the later, prefix the environment variable with PEGGO_ and the named of the
flag (e.g. PEGGO_COSMOS_PK)."""

_TRACE = 5
_PANIC = logging.CRITICAL + 10
_DISABLED = logging.CRITICAL + 100

_LEVELS = {
    "trace": _TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": _PANIC,
    "disabled": _DISABLED,
    "": 1,
}

_LEVEL_NAMES = (
    (_PANIC, "panic", "PNC"),
    (logging.CRITICAL, "fatal", "FTL"),
    (logging.ERROR, "error", "ERR"),
    (logging.WARNING, "warn", "WRN"),
    (logging.INFO, "info", "INF"),
    (logging.DEBUG, "debug", "DBG"),
)


def _level_names(levelno: int) -> tuple[str, str]:
    for threshold, name, short in _LEVEL_NAMES:
        if levelno >= threshold:
            return name, short
    return "trace", "TRC"


@dataclass
class VersionInfo:
    """Build information printed by the version command."""

    version: str = ""
    commit: str = ""
    sdk: str = ""
    go: str = ""


def _current_version_info() -> VersionInfo:
    runtime = (
        f"{platform.python_implementation().lower()}{platform.python_version()} "
        f"{sys.platform}/{platform.machine()}"
    )
    return VersionInfo(version=VERSION, commit=COMMIT, sdk=SDK_VERSION, go=runtime)


def hex_to_bytes(value: str) -> bytes:
    """Decode a hex string, dropping a leading ``0x``."""
    if value.startswith("0x"):
        value = value[2:]
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hex string: {exc}") from exc


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        name, _ = _level_names(record.levelno)
        entry = {
            "level": name,
            "time": datetime.fromtimestamp(record.created).astimezone().isoformat(
                timespec="seconds"
            ),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        _, short = _level_names(record.levelno)
        stamp = datetime.fromtimestamp(record.created).strftime("%I:%M%p")
        line = f"{stamp} {short} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_logger(level: str, log_format: str) -> logging.Logger:
    """Return the ``peggo`` logger writing to stderr at ``level`` in ``log_format``."""
    if level not in _LEVELS:
        raise ValueError(f"Unknown Level String: '{level}', defaulting to NoLevel")
    if log_format == LOG_FORMAT_JSON:
        formatter: logging.Formatter = _JsonFormatter()
    elif log_format == LOG_FORMAT_TEXT:
        formatter = _ConsoleFormatter()
    else:
        raise ValueError(f"invalid logging format: {log_format}")

    logger = logging.getLogger("peggo")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(_LEVELS[level])
    logger.propagate = False
    return logger


def _env_key(name: str) -> str:
    return name[len(ENV_PREFIX):].lower().replace("_", "-")


def parse_server_config(
    flags: Mapping[str, tuple[Any, bool]], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Merge environment variables and flags into one configuration.

    ``flags`` maps each flag name to ``(value, changed)``. Flags given on the
    command line win over ``PEGGO_`` environment variables, which win over
    flag defaults.
    """
    if environ is None:
        environ = os.environ
    config: dict[str, Any] = {
        _env_key(key): value for key, value in environ.items() if key.startswith(ENV_PREFIX)
    }
    for name, (value, changed) in flags.items():
        if changed or name not in config:
            config[name] = value
    return config


def format_version(info: VersionInfo, fmt: str) -> str:
    """Render version information as JSON, or YAML for any other format."""
    data = asdict(info)
    if fmt == "json":
        return json.dumps(data, separators=(",", ":"))
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def _add_persistent_flags(parser: argparse.ArgumentParser, suppress: bool) -> None:
    def default(value: str) -> str:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument("--log-level", default=default("info"), help="logging level")
    parser.add_argument(
        "--log-format", default=default(LOG_FORMAT_TEXT), help="logging format (text|json)"
    )
    parser.add_argument(
        "--svc-wait-timeout",
        default=default("1m"),
        help="Standard wait timeout for external services "
        "(e.g. Cosmos daemon gRPC connection)",
    )


def _print_help(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    parser.print_help()
    return 0


def _run_version(args: argparse.Namespace) -> int:
    print(format_version(_current_version_info(), args.format))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the ``peggo`` argument parser with its subcommands."""
    persistent = argparse.ArgumentParser(add_help=False)
    _add_persistent_flags(persistent, suppress=True)

    parser = argparse.ArgumentParser(
        prog="peggo",
        description=_ROOT_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_persistent_flags(parser, suppress=False)
    parser.set_defaults(handler=partial(_print_help, parser))

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    query = commands.add_parser(
        "query",
        aliases=["q"],
        parents=[persistent],
        help="Query commands that can get state info from Gravity",
        description="Query commands that can get state info from Gravity",
    )
    query.set_defaults(handler=partial(_print_help, query))

    tx = commands.add_parser(
        "tx",
        parents=[persistent],
        help="Transactions for Gravity Bridge governance and maintenance on the Cosmos chain",
        description="Transactions for Gravity Bridge governance and maintenance "
        "on the Cosmos chain",
    )
    tx.set_defaults(handler=partial(_print_help, tx))

    version = commands.add_parser(
        "version",
        parents=[persistent],
        help="Print binary version information",
        description="Print binary version information",
    )
    version.add_argument(
        "--format", default="text", help="Print the version in the given format (text|json)"
    )
    version.set_defaults(handler=_run_version)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line and return the process exit code."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1

    handler: Callable[[argparse.Namespace], int] = args.handler
    try:
        return handler(args)
    except (ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())