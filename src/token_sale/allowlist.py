from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from .encoding import Amount, format_units, parse_units, to_bytes32, to_checksum_address, to_hex
from .errors import InvalidProofError
from .merkle import AllowListTree, build_leaf_raw, build_tree, verify
from .project_constants import DEFAULT_BASE_WHITELIST_AMOUNT, EMPTY_ROOT, TOKEN_DECIMALS

log = logging.getLogger("allowlist")

_TRUE = {"true", "1", "yes", "y", "t"}
_FALSE = {"false", "0", "no", "n", "f", ""}


@dataclass(frozen=True)
class AllowListEntry:
    address: str  # checksummed
    allocation: int  # smallest unit of the sale token
    vesting: bool

    @staticmethod
    def create(
        address: str,
        allocation: Amount,
        vesting: Any = False,
        decimals: int = TOKEN_DECIMALS,
    ) -> "AllowListEntry":
        return AllowListEntry(
            address=to_checksum_address(address),
            allocation=parse_units(allocation, decimals),
            vesting=parse_flag(vesting),
        )

    @property
    def leaf(self) -> bytes:
        return build_leaf_raw(self.address, self.allocation, self.vesting)


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Not a vesting flag: {value!r}")


def normalize_entries(entries: Iterable[AllowListEntry]) -> List[AllowListEntry]:
    out: Dict[str, AllowListEntry] = {}
    for e in entries:
        if e.address in out:
            raise ValueError(f"Duplicate allow-list address: {e.address}")
        out[e.address] = e
    # Deterministic ordering (critical for reproducibility)
    return sorted(out.values(), key=lambda e: e.address.lower())


def build_allowlist(entries: Iterable[AllowListEntry]) -> Tuple[List[AllowListEntry], AllowListTree]:
    ordered = normalize_entries(entries)
    tree = build_tree([e.leaf for e in ordered])
    log.info("Allow-list built: %d entries, root %s", len(ordered), to_hex(tree.root))
    return ordered, tree


def entries_from_json(doc: Any, decimals: int = TOKEN_DECIMALS) -> List[AllowListEntry]:
    """
    Supports:
    1) [["0xabc...", 210000, false], ...]
    2) [{"address": "0xabc...", "allocation": "210000", "vesting": false}, ...]
    3) {"entries": [...]} wrapping either of the above
    """
    if isinstance(doc, dict) and isinstance(doc.get("entries"), list):
        doc = doc["entries"]
    if not isinstance(doc, list):
        raise RuntimeError("Allow-list JSON must be a list of entries or {\"entries\": [...]}.")

    out: List[AllowListEntry] = []
    for i, item in enumerate(doc):
        if isinstance(item, (list, tuple)) and len(item) in (2, 3):
            address, allocation = item[0], item[1]
            vesting = item[2] if len(item) == 3 else False
        elif isinstance(item, dict) and "address" in item and "allocation" in item:
            address, allocation = item["address"], item["allocation"]
            vesting = item.get("vesting", False)
        else:
            raise RuntimeError(f"Allow-list entry #{i} has an unsupported shape: {item!r}")
        out.append(AllowListEntry.create(address, allocation, vesting, decimals))
    return out


def entries_from_csv(text: str, decimals: int = TOKEN_DECIMALS) -> List[AllowListEntry]:
    """address,allocation[,vesting] per line; optional header row, '#' comments."""
    out: List[AllowListEntry] = []
    lines = [ln for ln in text.splitlines() if ln.strip() and not ln.lstrip().startswith("#")]
    for row in csv.reader(io.StringIO("\n".join(lines))):
        cells = [c.strip() for c in row]
        if cells and cells[0].lower() == "address":
            continue
        if len(cells) not in (2, 3):
            raise RuntimeError(f"Allow-list CSV row has {len(cells)} columns: {row!r}")
        vesting = cells[2] if len(cells) == 3 else False
        out.append(AllowListEntry.create(cells[0], cells[1], vesting, decimals))
    return out


def load_entries(path: str, decimals: int = TOKEN_DECIMALS) -> List[AllowListEntry]:
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read().strip()

    if raw[:1] in ("[", "{"):
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Allow-list file {path} is not valid JSON: {e}") from e
        return entries_from_json(doc, decimals)
    return entries_from_csv(raw, decimals)


class MembershipAuthority(Protocol):
    def authorize(
        self,
        account: str,
        allocation: Optional[int],
        vesting: Optional[bool],
        proof: Optional[Sequence[Any]],
    ) -> Tuple[int, bool]:
        """Return the (allocation, vesting) the account is entitled to, or raise InvalidProofError."""
        ...


class MerkleAllowList:
    """Allocation and vesting are carried by the caller and checked against the root."""

    def __init__(self, root: bytes | str = EMPTY_ROOT) -> None:
        self.root = to_bytes32(root)

    def set_root(self, root: bytes | str) -> None:
        self.root = to_bytes32(root)

    def authorize(self, account, allocation, vesting, proof) -> Tuple[int, bool]:
        if allocation is None or vesting is None or proof is None:
            raise InvalidProofError("Allocation, vesting and proof are required.")
        if isinstance(allocation, bool) or not isinstance(allocation, int):
            raise InvalidProofError(f"Allocation must be an integer, got {allocation!r}")
        try:
            leaf = build_leaf_raw(account, allocation, bool(vesting))
        except ValueError as e:
            raise InvalidProofError(str(e)) from e
        if not verify(self.root, leaf, proof):
            raise InvalidProofError("Invalid whitelist parameters.")
        return allocation, bool(vesting)


class DirectAllowList:
    """Allocation and vesting stored per account by the owner."""

    def __init__(self, base_amount: int = DEFAULT_BASE_WHITELIST_AMOUNT) -> None:
        self.base_amount = base_amount
        self.allocations: Dict[str, int] = {}
        self.vesting: Dict[str, bool] = {}

    def set_base_amount(self, amount: int) -> None:
        self.base_amount = amount

    def whitelist_accounts(self, accounts: Sequence[str]) -> None:
        for a in accounts:
            self.allocations[to_checksum_address(a)] = self.base_amount

    def whitelist_accounts_with_allocation(
        self,
        accounts: Sequence[str],
        allocations: Sequence[int],
        vesting: Sequence[bool],
    ) -> None:
        if not (len(accounts) == len(allocations) == len(vesting)):
            raise ValueError("accounts, allocations and vesting must have the same length.")
        normalized = [to_checksum_address(a) for a in accounts]
        for a, alloc, v in zip(normalized, allocations, vesting):
            self.allocations[a] = alloc
            self.vesting[a] = bool(v)

    def authorize(self, account, allocation=None, vesting=None, proof=None) -> Tuple[int, bool]:
        account = to_checksum_address(account)
        stored = self.allocations.get(account, 0)
        if stored <= 0:
            raise InvalidProofError(f"{account} is not whitelisted.")
        stored_vesting = self.vesting.get(account, False)
        if allocation is not None and allocation != stored:
            raise InvalidProofError("Allocation does not match the whitelist.")
        if vesting is not None and bool(vesting) != stored_vesting:
            raise InvalidProofError("Vesting flag does not match the whitelist.")
        return stored, stored_vesting


def entry_record(entry: AllowListEntry, tree: AllowListTree) -> Dict[str, Any]:
    leaf = entry.leaf
    return {
        "address": entry.address,
        "allocation": format_units(entry.allocation, TOKEN_DECIMALS),
        "allocation_raw": str(entry.allocation),  # big int; store as string for safety
        "vesting": entry.vesting,
        "leaf": to_hex(leaf),
        "proof": [to_hex(p) for p in tree.proof_for(leaf)],
    }
