"""
Sale ledger: phase-gated purchase, redemption and refund accounting.

Every public operation runs in two stages: everything is validated and the
full set of effects (token movements and account updates) is computed first,
then the effects are applied. A call that raises leaves the ledger and the
external token ledgers exactly as they were.

    entitlement    = payment * sale_price // 10**payment_decimals
    refund_payment = amount * 10**payment_decimals // sale_price

Owner-only operations take the `OwnerCapability` returned by
`SaleLedger.deploy` instead of consulting a global owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .allowlist import DirectAllowList, MembershipAuthority, MerkleAllowList
from .encoding import format_units, to_checksum_address
from .errors import (
    AllocationExceededError,
    InsufficientBalanceOrAllowanceError,
    NothingToRedeemError,
    PhaseInactiveError,
    UnauthorizedError,
)
from .ledgers import FungibleLedger
from .project_constants import (
    BPS_DENOMINATOR,
    DEFAULT_SALE_PRICE,
    DEFAULT_TOTAL_CAP,
    TOKEN_DECIMALS,
    VESTING_RELEASE_BPS,
)

log = logging.getLogger("sale")

CUSTODY_FORWARD = "forward"
CUSTODY_HOLD = "hold"


@dataclass(frozen=True, eq=False)
class OwnerCapability:
    owner: str


@dataclass
class PhaseFlags:
    whitelist_sale_active: bool = False
    public_sale_active: bool = False
    redeem_active: bool = False
    refund_active: bool = False


@dataclass
class SaleConfig:
    sale_price: int
    total_cap: int
    treasury: str
    custody: str = CUSTODY_FORWARD


@dataclass(frozen=True)
class Account:
    purchased: int = 0
    redeemed: int = 0
    vesting: bool = False
    whitelisted: bool = False


@dataclass(frozen=True)
class SaleEvent:
    name: str
    account: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class _Movement:
    ledger: Any
    kind: str  # transfer | transfer_from | burn_from
    src: str
    dst: Optional[str]
    amount: int


class SaleLedger:
    def __init__(
        self,
        address: str,
        owner: str,
        sale_token: FungibleLedger,
        payment_token: FungibleLedger,
        treasury: str,
        membership: Optional[MembershipAuthority] = None,
        sale_price: int = DEFAULT_SALE_PRICE,
        total_cap: int = DEFAULT_TOTAL_CAP,
        custody: str = CUSTODY_FORWARD,
    ) -> None:
        if custody not in (CUSTODY_FORWARD, CUSTODY_HOLD):
            raise ValueError(f"Unknown custody mode: {custody!r}")
        _require_positive("sale_price", sale_price)
        _require_non_negative("total_cap", total_cap)

        self.address = to_checksum_address(address)
        self.sale_token = sale_token
        self.payment_token = payment_token
        self.membership: MembershipAuthority = membership if membership is not None else MerkleAllowList()
        self.config = SaleConfig(
            sale_price=sale_price,
            total_cap=total_cap,
            treasury=to_checksum_address(treasury),
            custody=custody,
        )
        self.flags = PhaseFlags()
        self.total_purchased = 0  # payment-token units
        self.total_entitlement = 0  # sale-token units, == sum(purchased)
        self.events: List[SaleEvent] = []
        self._accounts: Dict[str, Account] = {}
        self._owner_cap = OwnerCapability(to_checksum_address(owner))

    @classmethod
    def deploy(cls, **kwargs: Any) -> Tuple["SaleLedger", OwnerCapability]:
        ledger = cls(**kwargs)
        log.info(
            "Sale deployed at %s (treasury %s, custody %s)",
            ledger.address,
            ledger.config.treasury,
            ledger.config.custody,
        )
        return ledger, ledger._owner_cap

    @property
    def owner(self) -> str:
        return self._owner_cap.owner

    @property
    def accounts(self) -> Dict[str, Account]:
        return dict(self._accounts)

    def account(self, address: str) -> Account:
        return self._accounts.get(to_checksum_address(address), Account())

    def purchased(self, address: str) -> int:
        return self.account(address).purchased

    def redeemed(self, address: str) -> int:
        return self.account(address).redeemed

    def vesting(self, address: str) -> bool:
        return self.account(address).vesting

    def entitlement_for(self, payment: int) -> int:
        return payment * self.config.sale_price // 10**self.payment_token.decimals

    def refund_payment_for(self, amount: int) -> int:
        return amount * 10**self.payment_token.decimals // self.config.sale_price

    def whitelist_purchase(
        self,
        caller: str,
        payment: int,
        allocation: Optional[int] = None,
        vesting: Optional[bool] = None,
        proof: Optional[Sequence[Any]] = None,
    ) -> int:
        caller = to_checksum_address(caller)
        if not self.flags.whitelist_sale_active:
            raise PhaseInactiveError("Whitelist sale is not active.")
        proven_allocation, proven_vesting = self.membership.authorize(caller, allocation, vesting, proof)

        acct = self.account(caller)
        entitlement = self._entitlement(payment)
        if acct.purchased + entitlement > proven_allocation:
            raise AllocationExceededError("Amount over whitelist limit.")

        # vesting is fixed by the first whitelist purchase
        updated = replace(
            acct,
            purchased=acct.purchased + entitlement,
            vesting=acct.vesting if acct.whitelisted else proven_vesting,
            whitelisted=True,
        )
        self._settle_purchase("whitelist_purchase", caller, payment, entitlement, updated)
        return entitlement

    def public_purchase(self, caller: str, payment: int) -> int:
        caller = to_checksum_address(caller)
        if not self.flags.public_sale_active:
            raise PhaseInactiveError("Public sale is not active.")

        acct = self.account(caller)
        entitlement = self._entitlement(payment)
        updated = replace(acct, purchased=acct.purchased + entitlement)
        self._settle_purchase("public_purchase", caller, payment, entitlement, updated)
        return entitlement

    def _entitlement(self, payment: int) -> int:
        _require_positive("payment", payment)
        entitlement = self.entitlement_for(payment)
        if entitlement <= 0:
            raise ValueError(f"Payment {payment} buys no tokens at the current price.")
        return entitlement

    def _settle_purchase(
        self,
        name: str,
        caller: str,
        payment: int,
        entitlement: int,
        updated: Account,
    ) -> None:
        if self.total_purchased + payment > self.config.total_cap:
            raise AllocationExceededError("Cap exceeded.")

        dst = self.config.treasury if self.config.custody == CUSTODY_FORWARD else self.address
        moves = [_Movement(self.payment_token, "transfer_from", caller, dst, payment)]
        self._check(moves)

        self._apply(moves)
        self._accounts[caller] = updated
        self.total_purchased += payment
        self.total_entitlement += entitlement
        self._emit(
            name,
            caller,
            payment=payment,
            entitlement=entitlement,
            vesting=updated.vesting,
        )

    def redeem(self, caller: str) -> Tuple[int, int]:
        """Returns (sent to caller, sent to treasury)."""
        caller = to_checksum_address(caller)
        if not self.flags.redeem_active:
            raise PhaseInactiveError("Redeem is not active.")

        acct = self.account(caller)
        owed = acct.purchased - acct.redeemed
        if owed <= 0:
            raise NothingToRedeemError(f"{caller} has nothing to redeem.")

        if acct.vesting:
            to_caller = owed * VESTING_RELEASE_BPS // BPS_DENOMINATOR
            to_treasury = owed - to_caller
        else:
            to_caller, to_treasury = owed, 0

        moves = [_Movement(self.sale_token, "transfer", self.address, caller, to_caller)]
        if to_treasury:
            moves.append(_Movement(self.sale_token, "transfer", self.address, self.config.treasury, to_treasury))
        self._check(moves)

        self._apply(moves)
        self._accounts[caller] = replace(acct, redeemed=acct.purchased)
        self._emit("redeem", caller, to_caller=to_caller, to_treasury=to_treasury)
        return to_caller, to_treasury

    def refund(self, caller: str, amount: int) -> int:
        """
        Give back `amount` of entitlement for payment tokens.

        The full `amount` is burned from the caller, who must hold it and have
        approved this ledger on the sale token. `redeemed` drops by at most
        `amount`. The payment comes from the treasury's allowance in forward
        custody, or from the ledger's own balance in hold custody. Returns the
        payment refunded.
        """
        caller = to_checksum_address(caller)
        if not self.flags.refund_active:
            raise PhaseInactiveError("Refund is not active.")
        _require_positive("amount", amount)

        acct = self.account(caller)
        if amount > acct.purchased:
            raise AllocationExceededError(
                f"Refund of {amount} exceeds purchased {acct.purchased} for {caller}."
            )
        refund_payment = self.refund_payment_for(amount)
        if refund_payment <= 0:
            raise ValueError(f"Refund of {amount} returns no payment at the current price.")

        unwound = min(acct.redeemed, amount)
        moves: List[_Movement] = [_Movement(self.sale_token, "burn_from", caller, None, amount)]
        if self.config.custody == CUSTODY_FORWARD:
            moves.append(_Movement(self.payment_token, "transfer_from", self.config.treasury, caller, refund_payment))
        else:
            moves.append(_Movement(self.payment_token, "transfer", self.address, caller, refund_payment))
        self._check(moves)

        self._apply(moves)
        self._accounts[caller] = replace(
            acct,
            purchased=acct.purchased - amount,
            redeemed=acct.redeemed - unwound,
        )
        self.total_purchased -= min(refund_payment, self.total_purchased)
        self.total_entitlement -= amount
        self._emit("refund", caller, amount=amount, payment=refund_payment, burned=amount)
        return refund_payment

    def set_sale_price(self, cap: OwnerCapability, price: int) -> None:
        self._require_owner(cap)
        _require_positive("sale_price", price)
        self.config.sale_price = price
        self._emit("set_sale_price", cap.owner, sale_price=price)

    def set_total_cap(self, cap: OwnerCapability, total_cap: int) -> None:
        self._require_owner(cap)
        _require_non_negative("total_cap", total_cap)
        self.config.total_cap = total_cap
        self._emit("set_total_cap", cap.owner, total_cap=total_cap)

    def set_treasury(self, cap: OwnerCapability, treasury: str) -> None:
        self._require_owner(cap)
        self.config.treasury = to_checksum_address(treasury)
        self._emit("set_treasury", cap.owner, treasury=self.config.treasury)

    def set_root(self, cap: OwnerCapability, root: bytes | str) -> None:
        self._require_owner(cap)
        if not isinstance(self.membership, MerkleAllowList):
            raise TypeError("Membership authority does not use a Merkle root.")
        self.membership.set_root(root)
        self._emit("set_root", cap.owner, root="0x" + self.membership.root.hex())

    def set_base_whitelist_amount(self, cap: OwnerCapability, amount: int) -> None:
        self._require_owner(cap)
        _require_non_negative("base_whitelist_amount", amount)
        self._direct_allowlist().set_base_amount(amount)
        self._emit("set_base_whitelist_amount", cap.owner, amount=amount)

    def whitelist_accounts(self, cap: OwnerCapability, accounts: Sequence[str]) -> None:
        self._require_owner(cap)
        self._direct_allowlist().whitelist_accounts(accounts)
        self._emit("whitelist_accounts", cap.owner, count=len(accounts))

    def whitelist_accounts_with_allocation(
        self,
        cap: OwnerCapability,
        accounts: Sequence[str],
        allocations: Sequence[int],
        vesting: Sequence[bool],
    ) -> None:
        self._require_owner(cap)
        self._direct_allowlist().whitelist_accounts_with_allocation(accounts, allocations, vesting)
        self._emit("whitelist_accounts", cap.owner, count=len(accounts))

    def set_whitelist_sale_active(self, cap: OwnerCapability, active: bool) -> None:
        self._set_flag(cap, "whitelist_sale_active", active)

    def set_public_sale_active(self, cap: OwnerCapability, active: bool) -> None:
        self._set_flag(cap, "public_sale_active", active)

    def set_redeem_active(self, cap: OwnerCapability, active: bool) -> None:
        self._set_flag(cap, "redeem_active", active)

    def set_refund_active(self, cap: OwnerCapability, active: bool) -> None:
        self._set_flag(cap, "refund_active", active)

    def withdraw(self, cap: OwnerCapability, amount: int) -> None:
        """Move payment tokens held by the ledger itself to the owner."""
        self._require_owner(cap)
        _require_positive("amount", amount)
        moves = [_Movement(self.payment_token, "transfer", self.address, cap.owner, amount)]
        self._check(moves)
        self._apply(moves)
        self._emit("withdraw", cap.owner, amount=amount)

    def _set_flag(self, cap: OwnerCapability, name: str, active: bool) -> None:
        self._require_owner(cap)
        setattr(self.flags, name, bool(active))
        self._emit("set_" + name, cap.owner, active=bool(active))

    def _require_owner(self, cap: Any) -> None:
        if cap is not self._owner_cap:
            raise UnauthorizedError("Caller is not the owner.")

    def _direct_allowlist(self) -> DirectAllowList:
        if not isinstance(self.membership, DirectAllowList):
            raise TypeError("Membership authority does not store allocations.")
        return self.membership

    def _check(self, moves: Sequence[_Movement]) -> None:
        debits: Dict[Tuple[int, str], int] = {}
        pulls: Dict[Tuple[int, str], int] = {}
        ledgers: Dict[int, Any] = {}
        for m in moves:
            ledgers[id(m.ledger)] = m.ledger
            key = (id(m.ledger), m.src)
            debits[key] = debits.get(key, 0) + m.amount
            if m.kind in ("transfer_from", "burn_from"):
                pulls[key] = pulls.get(key, 0) + m.amount

        for (lid, src), amount in debits.items():
            ledger = ledgers[lid]
            balance = ledger.balance_of(src)
            if balance < amount:
                raise InsufficientBalanceOrAllowanceError(
                    f"{_symbol(ledger)} balance of {src} is {balance}, needs {amount}."
                )
        for (lid, src), amount in pulls.items():
            ledger = ledgers[lid]
            allowance = ledger.allowance(src, self.address)
            if allowance < amount:
                raise InsufficientBalanceOrAllowanceError(
                    f"{_symbol(ledger)} allowance from {src} to the sale is {allowance}, needs {amount}."
                )

    def _apply(self, moves: Sequence[_Movement]) -> None:
        for m in moves:
            if m.kind == "transfer":
                m.ledger.transfer(self.address, m.dst, m.amount)
            elif m.kind == "transfer_from":
                m.ledger.transfer_from(self.address, m.src, m.dst, m.amount)
            elif m.kind == "burn_from":
                m.ledger.burn_from(self.address, m.src, m.amount)
            else:
                raise RuntimeError(f"Unknown movement kind {m.kind!r}")

    def _emit(self, name: str, account: str, **data: Any) -> None:
        self.events.append(SaleEvent(name=name, account=account, data=data))
        if "entitlement" in data:
            log.info(
                "%s %s: paid %s, entitled %s",
                name,
                account,
                format_units(data["payment"], self.payment_token.decimals),
                format_units(data["entitlement"], TOKEN_DECIMALS),
            )
        else:
            log.info("%s %s: %s", name, account, data)


def _symbol(ledger: Any) -> str:
    return getattr(ledger, "symbol", type(ledger).__name__)


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


def _require_non_negative(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
