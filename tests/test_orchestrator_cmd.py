import argparse
import signal
from datetime import timedelta

import pytest

from peggo.address import hex_to_address
from peggo.coingecko import DEFAULT_BASE_URL
from peggo.orchestrator_cmd import (
    ALL_PROVIDERS,
    DEFAULT_PROVIDERS,
    ProviderName,
    Severity,
    ValsetRelayMode,
    add_orchestrator_arguments,
    log_level_to_severity,
    loop_duration,
    strings_to_provider_names,
    trap_signal,
    validate_relay_valsets_mode,
)

GRAVITY = "0xc0a4Df35568F116C370E6a6A6022Ceb908eedDaC"


def _parser():
    parser = argparse.ArgumentParser(prog="orchestrator", exit_on_error=False)
    return add_orchestrator_arguments(parser)


@pytest.mark.parametrize("mode", list(ValsetRelayMode))
def test_validate_relay_mode_round_trip(mode):
    assert validate_relay_valsets_mode(str(mode)) is mode


def test_validate_relay_mode_names():
    modes = [validate_relay_valsets_mode(name) for name in ("none", "minimum", "all")]
    assert modes == [ValsetRelayMode.NONE, ValsetRelayMode.MINIMUM, ValsetRelayMode.ALL]


def test_validate_relay_mode_invalid():
    with pytest.raises(ValueError, match="invalid relay valsets mode: bogus"):
        validate_relay_valsets_mode("bogus")


@pytest.mark.parametrize(
    "level, severity",
    [
        ("info", Severity.INFO),
        ("warn", Severity.WARNING),
        ("error", Severity.ERROR),
        ("fatal", Severity.CRITICAL),
        ("panic", Severity.EMERGENCY),
        ("trace", Severity.ALERT),
        ("debug", Severity.DEBUG),
        ("whatever", Severity.DEBUG),
    ],
)
def test_log_level_to_severity(level, severity):
    assert log_level_to_severity(level) is severity


def test_severity_ordering():
    levels = ["debug", "info", "warn", "error", "fatal", "panic"]
    severities = [log_level_to_severity(level) for level in levels]
    assert severities == sorted(severities)
    assert len(set(severities)) == len(levels)


def test_strings_to_provider_names_round_trip():
    names = [member.value for member in ProviderName]
    assert strings_to_provider_names(names) == list(ProviderName)


def test_strings_to_provider_names_unknown():
    with pytest.raises(ValueError, match="invalid provider name: nowhere"):
        strings_to_provider_names(["osmosis", "nowhere"])


def test_default_providers_subset_of_all():
    assert set(DEFAULT_PROVIDERS) <= set(ALL_PROVIDERS)
    assert len(strings_to_provider_names(ALL_PROVIDERS)) == len(ProviderName)


def test_loop_duration_identity_multiplier():
    assert loop_duration(12000, 1.0) == timedelta(milliseconds=12000)


def test_loop_duration_truncates():
    assert loop_duration(1, 0.5) == timedelta(0)
    assert loop_duration(5000, 2.0) == loop_duration(10000, 1.0)


def test_parser_defaults():
    args = _parser().parse_args([GRAVITY])
    assert args.gravity_addr == hex_to_address(GRAVITY)
    assert args.valset_relay_mode is ValsetRelayMode.NONE
    assert args.relay_batches is False
    assert args.eth_blocks_per_loop == 2000
    assert args.coingecko_api == DEFAULT_BASE_URL
    assert args.eth_pending_tx_wait == timedelta(minutes=20)
    assert args.oracle_providers == list(DEFAULT_PROVIDERS)
    assert args.profit_multiplier == 1.0
    assert args.relayer_loop_multiplier == 3.0
    assert args.requester_loop_multiplier == 60.0
    assert args.cosmos_msgs_per_tx == 10
    assert args.bridge_start_height == 0


def test_parser_normalises_gravity_address():
    args = _parser().parse_args([GRAVITY.lower()])
    assert args.gravity_addr == GRAVITY


def test_parser_rejects_invalid_gravity_address():
    with pytest.raises(argparse.ArgumentError, match="invalid gravity address"):
        _parser().parse_args(["not-an-address"])


def test_parser_options():
    args = _parser().parse_args(
        [
            GRAVITY,
            "--valset-relay-mode",
            "all",
            "--relay-batches",
            "--oracle-providers",
            "kraken,mock",
            "--oracle-providers",
            "gate",
            "--eth-pending-tx-wait",
            "1h30m",
        ]
    )
    assert args.valset_relay_mode is ValsetRelayMode.ALL
    assert args.relay_batches is True
    assert args.oracle_providers == ["kraken", "mock", "gate"]
    assert args.eth_pending_tx_wait == timedelta(hours=1, minutes=30)


def test_parser_rejects_invalid_relay_mode():
    with pytest.raises(argparse.ArgumentError, match="invalid relay valsets mode"):
        _parser().parse_args([GRAVITY, "--valset-relay-mode", "some"])


def test_parser_rejects_invalid_duration():
    with pytest.raises(argparse.ArgumentError, match="invalid duration"):
        _parser().parse_args([GRAVITY, "--eth-pending-tx-wait", "soon"])


def test_trap_signal_cancels_once(capsys):
    calls = []
    restore = trap_signal(lambda: calls.append(True))
    try:
        signal.raise_signal(signal.SIGINT)
        signal.raise_signal(signal.SIGINT)
    finally:
        restore()
    assert calls == [True]
    err = capsys.readouterr().err
    assert "Caught signal (" in err
    assert err.count("shutting down...") == 1


def test_trap_signal_restores_handlers():
    received = []
    cancelled = []
    previous = signal.signal(signal.SIGTERM, lambda signum, frame: received.append(signum))
    try:
        restore = trap_signal(lambda: cancelled.append(True))
        restore()
        signal.raise_signal(signal.SIGTERM)
    finally:
        signal.signal(signal.SIGTERM, previous)
    assert received == [signal.SIGTERM]
    assert cancelled == []