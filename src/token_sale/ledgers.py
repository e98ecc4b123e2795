"""
Fungible ledgers the sale talks to.

The sale token and the payment token are external collaborators; the sale
only needs the surface in `FungibleLedger`. `InMemoryLedger` implements it
with the usual ERC-20 semantics (plus admin-gated mint and burn/burnFrom) so
a sale can be simulated and tested end to end.

Every mutating call takes the acting account as `caller` explicitly.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Protocol, Set, Tuple

from .encoding import format_units, to_checksum_address
from .errors import InsufficientBalanceOrAllowanceError, UnauthorizedError

log = logging.getLogger("ledger")


class FungibleLedger(Protocol):
    decimals: int

    def balance_of(self, account: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, caller: str, to: str, amount: int) -> None: ...

    def transfer_from(self, caller: str, src: str, dst: str, amount: int) -> None: ...

    def burn_from(self, caller: str, account: str, amount: int) -> None: ...


class InMemoryLedger:
    def __init__(self, symbol: str, decimals: int, owner: str) -> None:
        self.symbol = symbol
        self.decimals = decimals
        self.owner = to_checksum_address(owner)
        self.admins: Set[str] = set()
        self.total_supply = 0
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)

    # -- views --

    def balance_of(self, account: str) -> int:
        return self._balances.get(to_checksum_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        key = (to_checksum_address(owner), to_checksum_address(spender))
        return self._allowances.get(key, 0)

    # -- admin --

    def add_admin(self, caller: str, account: str) -> None:
        self._require_owner(caller)
        self.admins.add(to_checksum_address(account))

    def remove_admin(self, caller: str, account: str) -> None:
        self._require_owner(caller)
        self.admins.discard(to_checksum_address(account))

    def mint(self, caller: str, to: str, amount: int) -> None:
        caller = to_checksum_address(caller)
        if caller != self.owner and caller not in self.admins:
            raise UnauthorizedError(f"{self.symbol}: {caller} may not mint.")
        _check_amount(amount)
        self._balances[to_checksum_address(to)] += amount
        self.total_supply += amount
        log.debug("%s mint %s -> %s", self.symbol, format_units(amount, self.decimals), to)

    # -- transfers --

    def transfer(self, caller: str, to: str, amount: int) -> None:
        self._move(to_checksum_address(caller), to_checksum_address(to), amount)

    def approve(self, caller: str, spender: str, amount: int) -> None:
        _check_amount(amount)
        key = (to_checksum_address(caller), to_checksum_address(spender))
        self._allowances[key] = amount

    def transfer_from(self, caller: str, src: str, dst: str, amount: int) -> None:
        src = to_checksum_address(src)
        self._spend_allowance(src, to_checksum_address(caller), amount)
        self._move(src, to_checksum_address(dst), amount)

    def burn(self, caller: str, amount: int) -> None:
        self._burn(to_checksum_address(caller), amount)

    def burn_from(self, caller: str, account: str, amount: int) -> None:
        account = to_checksum_address(account)
        self._spend_allowance(account, to_checksum_address(caller), amount)
        self._burn(account, amount)

    # -- internals --

    def _require_owner(self, caller: str) -> None:
        if to_checksum_address(caller) != self.owner:
            raise UnauthorizedError(f"{self.symbol}: caller is not the owner.")

    def _spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        _check_amount(amount)
        current = self._allowances.get((owner, spender), 0)
        if current < amount:
            raise InsufficientBalanceOrAllowanceError(
                f"{self.symbol}: allowance {current} < {amount} for {spender} on {owner}"
            )
        # balance is checked before the allowance is consumed
        if self._balances.get(owner, 0) < amount:
            raise InsufficientBalanceOrAllowanceError(
                f"{self.symbol}: balance of {owner} < {amount}"
            )
        self._allowances[(owner, spender)] = current - amount

    def _move(self, src: str, dst: str, amount: int) -> None:
        _check_amount(amount)
        if self._balances.get(src, 0) < amount:
            raise InsufficientBalanceOrAllowanceError(
                f"{self.symbol}: balance of {src} < {amount}"
            )
        self._balances[src] -= amount
        self._balances[dst] += amount

    def _burn(self, account: str, amount: int) -> None:
        _check_amount(amount)
        if self._balances.get(account, 0) < amount:
            raise InsufficientBalanceOrAllowanceError(
                f"{self.symbol}: balance of {account} < {amount}"
            )
        self._balances[account] -= amount
        self.total_supply -= amount


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"Amount must be a non-negative integer, got {amount!r}")
