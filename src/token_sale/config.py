from __future__ import annotations

import os
from dataclasses import dataclass
from dotenv import find_dotenv, load_dotenv

from .encoding import to_checksum_address
from .project_constants import DEFAULT_SALE_PRICE, DEFAULT_TOTAL_CAP, PAYMENT_DECIMALS


@dataclass(frozen=True)
class Settings:
    allowlist_url: str | None = None
    treasury: str | None = None
    sale_price: int = DEFAULT_SALE_PRICE
    total_cap: int = DEFAULT_TOTAL_CAP
    payment_decimals: int = PAYMENT_DECIMALS

    @staticmethod
    def from_env(allowlist_url_override: str | None = None) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))

        # If user provides --url, trust it.
        url = allowlist_url_override or os.getenv("ALLOWLIST_URL", "").strip() or None

        treasury = os.getenv("SALE_TREASURY", "").strip() or None
        if treasury:
            try:
                treasury = to_checksum_address(treasury)
            except ValueError as e:
                raise RuntimeError(f"SALE_TREASURY is not a valid address: {e}") from e

        return Settings(
            allowlist_url=url,
            treasury=treasury,
            sale_price=_int_env("SALE_PRICE", DEFAULT_SALE_PRICE),
            total_cap=_int_env("SALE_TOTAL_CAP", DEFAULT_TOTAL_CAP),
            payment_decimals=_int_env("PAYMENT_DECIMALS", PAYMENT_DECIMALS),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer in raw units, got {raw!r}") from None
    if value < 0:
        raise RuntimeError(f"{name} must not be negative, got {raw!r}")
    return value
