"""Ethereum address parsing and EIP-55 checksum formatting."""

from __future__ import annotations

import string

from Crypto.Hash import keccak

ADDRESS_LENGTH = 20

_HEX_DIGITS = frozenset(string.hexdigits)


def _strip_hex_prefix(value: str) -> str:
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


def _decode_leading_hex(digits: str) -> bytes:
    """Decode hex pairs up to the first invalid character."""
    decoded = bytearray()
    for start in range(0, len(digits) - 1, 2):
        pair = digits[start:start + 2]
        if not set(pair) <= _HEX_DIGITS:
            break
        decoded.append(int(pair, 16))
    return bytes(decoded)


def is_hex_address(value: str) -> bool:
    """Return True if ``value`` is 40 hex digits, optionally prefixed by 0x."""
    digits = _strip_hex_prefix(value)
    return len(digits) == 2 * ADDRESS_LENGTH and set(digits) <= _HEX_DIGITS


def checksum_address(raw: bytes) -> str:
    """Format 20 raw address bytes as a 0x-prefixed EIP-55 checksummed string."""
    if len(raw) != ADDRESS_LENGTH:
        raise ValueError(
            f"address must be {ADDRESS_LENGTH} bytes, got {len(raw)}"
        )
    lowered = raw.hex()
    digest = keccak.new(digest_bits=256, data=lowered.encode("ascii")).digest()
    chars = []
    for position, char in enumerate(lowered):
        nibble = digest[position // 2]
        nibble = nibble >> 4 if position % 2 == 0 else nibble & 0x0F
        chars.append(char.upper() if char > "9" and nibble > 7 else char)
    return "0x" + "".join(chars)


def hex_to_address(value: str) -> str:
    """Convert a hex string into a checksummed address.

    Invalid input is treated leniently: decoding stops at the first invalid
    character, longer values keep their last 20 bytes and shorter values are
    left-padded with zeros.
    """
    digits = _strip_hex_prefix(value)
    if len(digits) % 2 == 1:
        digits = "0" + digits
    raw = _decode_leading_hex(digits)[-ADDRESS_LENGTH:]
    return checksum_address(raw.rjust(ADDRESS_LENGTH, b"\x00"))