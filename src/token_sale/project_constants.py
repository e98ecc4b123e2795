"""
Public parameters for the token sale.

These values define the default rules of the sale.
Changing them changes entitlements and MUST be publicly announced.
"""

# Sale token uses 18 decimals
TOKEN_DECIMALS = 18

# Payment token (USDC) uses 6 decimals
PAYMENT_DECIMALS = 6

# salePrice is token units per 1.0 payment unit, scaled by 10**18
PRICE_DECIMALS = 18
PRICE_SCALE = 10**PRICE_DECIMALS

# 43.3125031 tokens per payment unit
DEFAULT_SALE_PRICE = 433125031 * 10**11

# Maximum cumulative payment accepted (raw payment units)
DEFAULT_TOTAL_CAP = 18_696_969 * (10**PAYMENT_DECIMALS)

# Default allocation for directly whitelisted accounts: 5000 payment units at the default price
DEFAULT_BASE_WHITELIST_AMOUNT = 5000 * DEFAULT_SALE_PRICE

# Vesting accounts receive 15% at redemption; the rest goes to the treasury
VESTING_RELEASE_BPS = 1500
BPS_DENOMINATOR = 10_000

EMPTY_ROOT = b"\x00" * 32
