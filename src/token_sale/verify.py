from __future__ import annotations

import json
from typing import Any, Dict

from .allowlist import AllowListEntry, build_allowlist
from .encoding import parse_units, to_bytes32, to_checksum_address, to_hex
from .merkle import verify
from .project_constants import TOKEN_DECIMALS


def verify_allowlist_audit(audit_path: str) -> Dict[str, Any]:
    with open(audit_path, "r", encoding="utf-8") as f:
        audit = json.load(f)

    meta = audit["metadata"]
    root_expected = to_bytes32(meta["root"])
    stored = audit["entries"]

    # Recreate entries from the stored raw allocations (deterministic)
    entries = [
        AllowListEntry.create(e["address"], int(e["allocation_raw"]), e["vesting"], decimals=0)
        for e in stored
    ]
    ordered, tree = build_allowlist(entries)
    if tree.root != root_expected:
        raise RuntimeError(
            f"Root mismatch: audit={to_hex(root_expected)} recomputed={to_hex(tree.root)}"
        )

    decimals = int(meta.get("token_decimals", TOKEN_DECIMALS))
    by_address = {e.address: e for e in ordered}
    for record in stored:
        entry = by_address[to_checksum_address(record["address"])]
        # the human-readable amount is not hashed, so hold it to the raw one
        try:
            shown = parse_units(record["allocation"], decimals)
        except ValueError as e:
            raise RuntimeError(f"Allocation mismatch for {entry.address}: {e}") from e
        if shown != entry.allocation:
            raise RuntimeError(
                f"Allocation mismatch for {entry.address}: audit={record['allocation']} raw={entry.allocation}"
            )
        if to_hex(entry.leaf) != record["leaf"].lower():
            raise RuntimeError(
                f"Leaf mismatch for {entry.address}: audit={record['leaf']} recomputed={to_hex(entry.leaf)}"
            )
        if not verify(root_expected, entry.leaf, record["proof"]):
            raise RuntimeError(f"Stored proof for {entry.address} does not verify.")

    if int(meta.get("entry_count", len(stored))) != len(stored):
        raise RuntimeError(
            f"Entry count mismatch: audit={meta['entry_count']} stored={len(stored)}"
        )

    return {
        "ok": True,
        "root": to_hex(tree.root),
        "entries": len(ordered),
        "vesting_entries": sum(1 for e in ordered if e.vesting),
        "total_allocation": sum(e.allocation for e in ordered),
    }
