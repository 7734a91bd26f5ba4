"""Options and helpers for the orchestrator command."""

from __future__ import annotations

import argparse
import enum
import re
import signal
import sys
from datetime import timedelta
from typing import Callable, Iterable

from peggo.address import hex_to_address, is_hex_address
from peggo.coingecko import DEFAULT_BASE_URL


class ValsetRelayMode(enum.Enum):
    """How validator set updates are relayed to Ethereum."""

    NONE = "none"
    MINIMUM = "minimum"
    ALL = "all"

    def __str__(self) -> str:
        return self.value


class Severity(enum.IntEnum):
    """Severity levels of Google Cloud log entries."""

    DEFAULT = 0
    DEBUG = 100
    INFO = 200
    NOTICE = 300
    WARNING = 400
    ERROR = 500
    CRITICAL = 600
    ALERT = 700
    EMERGENCY = 800


class ProviderName(str, enum.Enum):
    """Price providers the oracle can draw on."""

    OSMOSIS = "osmosis"
    HUOBI = "huobi"
    OKX = "okx"
    COINBASE = "coinbase"
    BITGET = "bitget"
    MEXC = "mexc"
    CRYPTO = "crypto"
    KRAKEN = "kraken"
    GATE = "gate"
    MOCK = "mock"
    BINANCE = "binance"

    def __str__(self) -> str:
        return self.value


DEFAULT_PROVIDERS: tuple[str, ...] = (
    ProviderName.OSMOSIS.value,
    ProviderName.HUOBI.value,
    ProviderName.OKX.value,
    ProviderName.COINBASE.value,
    ProviderName.BITGET.value,
    ProviderName.MEXC.value,
    ProviderName.CRYPTO.value,
)

ALL_PROVIDERS: tuple[str, ...] = (
    ProviderName.KRAKEN.value,
    ProviderName.GATE.value,
    ProviderName.MOCK.value,
    ProviderName.BINANCE.value,
    *DEFAULT_PROVIDERS,
)

DEFAULT_ETH_PENDING_TX_WAIT = timedelta(minutes=20)

_LEVEL_SEVERITIES = {
    "info": Severity.INFO,
    "warn": Severity.WARNING,
    "warning": Severity.WARNING,
    "error": Severity.ERROR,
    "fatal": Severity.CRITICAL,
    "panic": Severity.EMERGENCY,
    "trace": Severity.ALERT,
}


def validate_relay_valsets_mode(mode: str) -> ValsetRelayMode:
    """Return the relay mode named by ``mode``."""
    for member in ValsetRelayMode:
        if member.value == mode:
            return member
    raise ValueError(f"invalid relay valsets mode: {mode}")


def log_level_to_severity(level: str) -> Severity:
    """Map a log level name to a Google Cloud severity; unknown levels map to DEBUG."""
    return _LEVEL_SEVERITIES.get(str(level).strip().lower(), Severity.DEBUG)


def strings_to_provider_names(names: Iterable[str]) -> list[ProviderName]:
    """Convert provider names to :class:`ProviderName` members."""
    providers = []
    for name in names:
        try:
            providers.append(ProviderName(name))
        except ValueError:
            raise ValueError(f"invalid provider name: {name}") from None
    return providers


def loop_duration(block_time_ms: float, multiplier: float) -> timedelta:
    """Return ``multiplier`` block times, truncated to whole milliseconds."""
    return timedelta(milliseconds=int(float(block_time_ms) * multiplier))


def _signal_label(signum: int) -> str:
    description = signal.strsignal(signum)
    if description:
        return description.lower()
    return signal.Signals(signum).name


def trap_signal(cancel: Callable[[], None]) -> Callable[[], None]:
    """Call ``cancel`` once on the first SIGINT or SIGTERM.

    Returns a function that restores the previous signal handlers.
    """
    fired = False

    def handler(signum: int, frame: object) -> None:
        nonlocal fired
        if fired:
            return
        fired = True
        print(f"Caught signal ({_signal_label(signum)}); shutting down...", file=sys.stderr)
        cancel()

    previous = {
        sig: signal.signal(sig, handler) for sig in (signal.SIGTERM, signal.SIGINT)
    }

    def restore() -> None:
        for sig, old in previous.items():
            signal.signal(sig, old)

    return restore


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``20m``, ``1h30m`` or ``500ms``."""
    value = text.strip()
    sign = 1
    if value[:1] in ("+", "-"):
        sign = -1 if value[0] == "-" else 1
        value = value[1:]
    if value == "0":
        return timedelta(0)
    if not value:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    seconds = 0.0
    position = 0
    while position < len(value):
        match = _DURATION_PART.match(value, position)
        if match is None:
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        number, unit = match.groups()
        seconds += float(number) * _DURATION_UNITS[unit]
        position = match.end()
    return timedelta(seconds=sign * seconds)


def _gravity_address(value: str) -> str:
    if not is_hex_address(value):
        raise argparse.ArgumentTypeError(f"invalid gravity address: {value}")
    return hex_to_address(value)


def _relay_mode(value: str) -> ValsetRelayMode:
    try:
        return validate_relay_valsets_mode(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


class _StringSliceAction(argparse.Action):
    """Comma-separated list option: the first use replaces the default, later uses append."""

    def __call__(self, parser, namespace, values, option_string=None):
        items = [item.strip() for item in str(values).split(",") if item.strip()]
        current = getattr(namespace, self.dest, None)
        if current is self.default or current is None:
            setattr(namespace, self.dest, items)
        else:
            setattr(namespace, self.dest, [*current, *items])


def add_orchestrator_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Add the orchestrator's positional argument and options to ``parser``."""
    parser.add_argument(
        "gravity_addr",
        type=_gravity_address,
        help="Address of the Gravity Bridge contract on Ethereum",
    )

    parser.add_argument(
        "--gcp-log-project-name", default="", help="Set the Google Cloud Project for logging"
    )
    parser.add_argument(
        "--gcp-log-moniker", default="", help="Specify your moniker to be identified in logs"
    )
    parser.add_argument(
        "--gcp-log-level", default="info", help="Specify the log level to send to Google Cloud"
    )

    parser.add_argument(
        "--valset-relay-mode",
        type=_relay_mode,
        default=ValsetRelayMode.NONE,
        help="Set an (optional) relaying mode for valset updates to Ethereum. "
        "Possible values: none, minimum, all",
    )
    parser.add_argument(
        "--relay-batches",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Relay transaction batches to Ethereum",
    )
    parser.add_argument(
        "--eth-blocks-per-loop",
        type=int,
        default=2000,
        help="Number of Ethereum blocks to process per orchestrator loop",
    )
    parser.add_argument(
        "--coingecko-api", default=DEFAULT_BASE_URL, help="Specify the coingecko API endpoint"
    )
    parser.add_argument(
        "--eth-merge-pause",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Pause some messages related to the adaptation of the Gravity Bridge to the merge",
    )
    parser.add_argument(
        "--oracle-providers",
        action=_StringSliceAction,
        default=list(DEFAULT_PROVIDERS),
        help='Specify the providers to use in the oracle, options "%s"'
        % ",".join(ALL_PROVIDERS),
    )
    parser.add_argument(
        "--eth-pending-tx-wait",
        type=_parse_duration,
        default=DEFAULT_ETH_PENDING_TX_WAIT,
        help="Time for a pending tx to be considered stale",
    )
    parser.add_argument(
        "--eth-alchemy-ws", default="", help="Specify the Alchemy websocket endpoint"
    )
    parser.add_argument(
        "--profit-multiplier", type=float, default=1.0, help="Multiplier to apply to relayer profit"
    )
    parser.add_argument(
        "--relayer-loop-multiplier",
        type=float,
        default=3.0,
        help="Multiplier for the relayer loop duration (in ETH blocks)",
    )
    parser.add_argument(
        "--requester-loop-multiplier",
        type=float,
        default=60.0,
        help="Multiplier for the batch requester loop duration (in Cosmos blocks)",
    )
    parser.add_argument(
        "--cosmos-fee-granter",
        default="",
        help="Set an (optional) fee granter address that will pay for Cosmos fees "
        "(feegrant must exist)",
    )
    parser.add_argument(
        "--bridge-start-height",
        type=int,
        default=0,
        help="Set an (optional) height to wait for the bridge to be available",
    )
    parser.add_argument(
        "--cosmos-msgs-per-tx",
        type=int,
        default=10,
        help="Set a maximum number of messages to send per transaction (used for claims)",
    )
    return parser