"""Token symbol lookup for ERC20 contracts via the CoinGecko API."""

from __future__ import annotations

import json
import logging
import posixpath
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

from peggo.address import hex_to_address

MAX_RESPONSE_TIME = 15.0
ETHEREUM_COIN_ID = "ethereum"
DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"

# Tokens deployed through the bridge, known up front so CoinGecko need not be
# asked for them.
BRIDGE_TOKENS_COIN_SYMBOLS: dict[str, str] = {
    hex_to_address("0xc0a4Df35568F116C370E6a6A6022Ceb908eedDaC"): "UMEE",
    hex_to_address("0x3339add5c1c1647B554D96c379a430273f5f59f2"): "OSMO",
    hex_to_address("0xEa5A82B35244d9e5E48781F00b11B14E627D2951"): "ATOM",
    hex_to_address("0xbdCbe7fe6Fd2E4C163205ca9D192cF3D3f70CBa5"): "ION",
    hex_to_address("0x7C1Cab5d766091dd65B1FE58400c82D071D9700E"): "JUNO",
    hex_to_address("0x3FE814741C4d0C84044150927a8e22EC5919014E"): "LUNA",
    hex_to_address("0x6B59D96cB4bBe7A34dA325583C5A91d8370FE63E"): "UST",
    hex_to_address("0x351CCfaC7f6f3836d062AbC3525AB0A48ca2e8f3"): "AKT",
    hex_to_address("0x305C6fCe11b8dB61a8355aFCDb2F857472C5FF8a"): "EROWAN",
}


class CoinGeckoError(Exception):
    """Raised when a coin symbol cannot be retrieved."""


@dataclass
class Config:
    """Endpoint configuration for CoinGecko."""

    base_url: str = ""


@dataclass
class CoinInfo:
    """Coin information returned for a contract address."""

    symbol: str = ""
    error: str = ""


def check_coingecko_config(config: Config | None) -> Config:
    """Return ``config`` with the default base URL filled in where missing."""
    if config is None:
        config = Config()
    if not config.base_url:
        config.base_url = DEFAULT_BASE_URL
    return config


def url_join(base_url: str, *segments: str) -> str:
    """Append path segments to ``base_url``, cleaning the resulting path."""
    try:
        parts = urllib.parse.urlsplit(base_url)
    except ValueError as exc:
        raise CoinGeckoError(f"invalid URL {base_url!r}: {exc}") from exc
    elements = [element for element in (parts.path, *segments) if element]
    path = posixpath.normpath("/".join(elements)) if elements else ""
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    if parts.netloc and path and not path.startswith("/"):
        path = "/" + path
    return urllib.parse.urlunsplit(
        (parts.scheme, parts.netloc, path, parts.query, parts.fragment)
    )


class CoinGecko:
    """Retrieves token symbols from CoinGecko, caching the results."""

    def __init__(self, logger: logging.Logger | None = None, config: Config | None = None):
        base = logger if logger is not None else logging.getLogger(__name__)
        self.logger = base.getChild("coingecko")
        self.config = check_coingecko_config(config)
        self.timeout = MAX_RESPONSE_TIME
        self._coin_symbols = dict(BRIDGE_TOKENS_COIN_SYMBOLS)

    def get_token_symbol(self, erc20_contract: str) -> str:
        """Return the symbol of an ERC20 contract, asking CoinGecko if unknown."""
        address = hex_to_address(erc20_contract)
        symbol = self._coin_symbols.get(address)
        if symbol is None:
            symbol = self.request_coin_symbol(address)
            self.set_coin_symbol(address, symbol)
        return symbol

    def set_coin_symbol(self, erc20_contract: str, symbol: str) -> None:
        """Record the symbol of an ERC20 contract."""
        self._coin_symbols[hex_to_address(erc20_contract)] = symbol

    def request_coin_symbol_url(self, erc20_contract: str) -> str:
        """Return the CoinGecko URL describing an ERC20 contract."""
        return url_join(
            self.config.base_url,
            "coins",
            ETHEREUM_COIN_ID,
            "contract",
            hex_to_address(erc20_contract),
        )

    def request_coin_symbol(self, erc20_contract: str) -> str:
        """Ask CoinGecko for the upper-cased symbol of an ERC20 contract."""
        address = hex_to_address(erc20_contract)
        req_url = self.request_coin_symbol_url(address)
        request = urllib.request.Request(req_url, method="GET")
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as exc:
            body = exc.read()
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise CoinGeckoError(
                f"failed to fetch coin info from {req_url}: {exc}"
            ) from exc

        info = self._parse_coin_info(req_url, body)
        if info.error:
            raise CoinGeckoError(f"coin info request failed: {info.error}")
        if not info.symbol:
            raise CoinGeckoError(f"fail to get coin info for contract: {address}")
        return info.symbol.upper()

    @staticmethod
    def _parse_coin_info(req_url: str, body: bytes) -> CoinInfo:
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise CoinGeckoError(
                f"failed to parse response body from {req_url}: {exc}"
            ) from exc
        if not isinstance(payload, dict):
            raise CoinGeckoError(
                f"failed to parse response body from {req_url}: expected a JSON object"
            )
        symbol = payload.get("symbol") or ""
        error = payload.get("error") or ""
        if not isinstance(symbol, str) or not isinstance(error, str):
            raise CoinGeckoError(
                f"failed to parse response body from {req_url}: unexpected field types"
            )
        return CoinInfo(symbol=symbol, error=error)