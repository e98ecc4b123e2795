from __future__ import annotations

import struct
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from Crypto.Hash import keccak

ADDRESS_BYTES = 20
WORD_BYTES = 32

Amount = Union[int, str, float, Decimal]


def keccak256(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def to_checksum_address(address: str) -> str:
    """
    EIP-55 checksummed form of a 20-byte hex address.
    Accepts any case, optional 0x prefix and surrounding whitespace.
    A mixed-case input must already carry a valid checksum.
    """
    if not isinstance(address, str):
        raise ValueError(f"Address must be a string, got {type(address).__name__}")

    raw = address.strip()
    if raw[:2].lower() == "0x":
        raw = raw[2:]
    if len(raw) != ADDRESS_BYTES * 2:
        raise ValueError(f"Address must be {ADDRESS_BYTES} bytes of hex: {address!r}")
    try:
        bytes.fromhex(raw)
    except ValueError:
        raise ValueError(f"Address is not valid hex: {address!r}") from None

    lower = raw.lower()
    digest = keccak256(lower.encode("ascii")).hex()
    checksummed = "".join(
        c.upper() if c.isalpha() and int(digest[i], 16) >= 8 else c
        for i, c in enumerate(lower)
    )

    mixed = raw != raw.lower() and raw != raw.upper()
    if mixed and raw != checksummed:
        raise ValueError(f"Bad address checksum: {address!r}")
    return "0x" + checksummed


def address_to_bytes(address: str) -> bytes:
    return bytes.fromhex(to_checksum_address(address)[2:])


def parse_units(value: Amount, decimals: int) -> int:
    """Decimal amount -> integer in the smallest unit, exactly."""
    if isinstance(value, bool):
        raise ValueError("Amount must be numeric, got bool")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Amount must not be negative: {value}")
        return value * (10**decimals)

    text = str(value).strip().replace("_", "")
    try:
        d = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Amount is not a number: {value!r}") from None
    if not d.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    if d < 0:
        raise ValueError(f"Amount must not be negative: {value!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = d.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {value!r} has more than {decimals} decimals")
        return int(scaled)


def format_units(raw_amount: int, decimals: int) -> str:
    """Integer in the smallest unit -> shortest decimal string."""
    sign = "-" if raw_amount < 0 else ""
    whole, frac = divmod(abs(raw_amount), 10**decimals)
    if not frac:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_str}"


def pack_entry(address: str, amount_raw: int, flag: bool) -> bytes:
    """
    Tightly packed (address, uint256, bool):
    Address(0-20) | Amount(20-52, big-endian) | Flag(52)
    """
    if amount_raw < 0 or amount_raw >= 1 << 256:
        raise ValueError(f"Amount out of uint256 range: {amount_raw}")
    return (
        address_to_bytes(address)
        + amount_raw.to_bytes(WORD_BYTES, "big")
        + struct.pack(">?", bool(flag))
    )


def to_bytes32(value: bytes | str) -> bytes:
    """Accepts raw bytes or 0x-hex; raises ValueError unless exactly 32 bytes."""
    if isinstance(value, (bytes, bytearray)):
        out = bytes(value)
    elif isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == "0x":
            text = text[2:]
        out = bytes.fromhex(text)
    else:
        raise ValueError(f"Expected bytes or hex string, got {type(value).__name__}")
    if len(out) != WORD_BYTES:
        raise ValueError(f"Expected {WORD_BYTES} bytes, got {len(out)}")
    return out


def to_hex(value: bytes) -> str:
    return "0x" + value.hex()
