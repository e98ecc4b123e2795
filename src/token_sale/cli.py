from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from .allowlist import build_allowlist, entry_record, load_entries
from .config import Settings
from .encoding import format_units, parse_units, to_checksum_address, to_hex
from .project_constants import PRICE_DECIMALS, TOKEN_DECIMALS
from .source import AllowListClient
from .verify import verify_allowlist_audit


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def cmd_build(args: argparse.Namespace) -> int:
    settings = Settings.from_env(allowlist_url_override=args.url)
    log = logging.getLogger("build")

    # Entry source
    if args.entries:
        entries = load_entries(args.entries)
        entries_source = f"file:{args.entries}"
    elif settings.allowlist_url:
        client = AllowListClient(timeout_s=args.timeout)
        try:
            entries = client.fetch_entries(settings.allowlist_url)
            entries_source = f"url:{settings.allowlist_url}"
        finally:
            client.close()
    else:
        raise SystemExit("No allow-list source. Pass --entries, --url or set ALLOWLIST_URL.")

    log.info("Entries loaded    : %d", len(entries))
    log.info("Entries source    : %s", entries_source)

    ordered, tree = build_allowlist(entries)
    if not ordered:
        raise SystemExit("Allow-list is empty. Nothing to commit to.")

    total_allocation = sum(e.allocation for e in ordered)
    log.info("Vesting entries   : %d", sum(1 for e in ordered if e.vesting))
    log.info("Total allocation  : %s", format_units(total_allocation, TOKEN_DECIMALS))

    # Audit output; anyone can rebuild the root from it
    audit: Dict[str, Any] = {
        "metadata": {
            "tool": "token-sale-allowlist",
            "version": "1.0.0",
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "entries_source": entries_source,
            "token_decimals": TOKEN_DECIMALS,
            "treasury": settings.treasury,
            "entry_count": len(ordered),
            "total_allocation": str(total_allocation),  # big int; store as string for safety
            "root": to_hex(tree.root),
        },
        "entries": [entry_record(e, tree) for e in ordered],
    }

    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(audit, f, indent=2)

    print("========================================")
    print("ALLOW-LIST COMMITMENT")
    print("========================================")
    print(f"Entries       : {len(ordered)}")
    print(f"Allocation    : {format_units(total_allocation, TOKEN_DECIMALS)}")
    print(f"Root          : {to_hex(tree.root)}")
    print("----------------------------------------")
    print(f"Wrote audit: {args.out}")
    return 0


def cmd_proof(args: argparse.Namespace) -> int:
    with open(args.audit, "r", encoding="utf-8") as f:
        audit = json.load(f)

    address = to_checksum_address(args.address)
    for record in audit["entries"]:
        if to_checksum_address(record["address"]) == address:
            print(json.dumps(record, indent=2))
            return 0
    raise SystemExit(f"{address} is not in {args.audit}.")


def cmd_verify(args: argparse.Namespace) -> int:
    result = verify_allowlist_audit(args.audit)
    print("AUDIT VERIFIED")
    print(f"Root          : {result['root']}")
    print(f"Entries       : {result['entries']}")
    print(f"Vesting       : {result['vesting_entries']}")
    print(f"Allocation    : {format_units(result['total_allocation'], TOKEN_DECIMALS)}")
    return 0


def cmd_quote(args: argparse.Namespace) -> int:
    """Entitlement for a payment at the configured price, and its refund value."""
    settings = Settings.from_env()
    payment = parse_units(args.payment, settings.payment_decimals)
    entitlement = payment * settings.sale_price // 10**settings.payment_decimals
    refund = entitlement * 10**settings.payment_decimals // settings.sale_price

    print(f"Price         : {format_units(settings.sale_price, PRICE_DECIMALS)} per payment unit")
    print(f"Payment       : {format_units(payment, settings.payment_decimals)}")
    print(f"Entitlement   : {format_units(entitlement, TOKEN_DECIMALS)}")
    print(f"Refund value  : {format_units(refund, settings.payment_decimals)}")
    print(f"Total cap     : {format_units(settings.total_cap, settings.payment_decimals)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="token-sale",
        description="Token sale allow-list and pricing tool.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--timeout", type=float, default=60.0, help="HTTP timeout seconds.")

    sub = p.add_subparsers(dest="cmd", required=True)

    b = sub.add_parser("build", help="Build the allow-list tree and write an audit JSON.")
    b.add_argument(
        "--entries",
        default=None,
        help="Path to an allow-list file (CSV or JSON of address, allocation, vesting).",
    )
    b.add_argument("--url", default=None, help="Fetch the allow-list from a URL (else ALLOWLIST_URL).")
    b.add_argument("--out", default="allowlist.json", help="Audit output JSON path.")
    b.set_defaults(func=cmd_build)

    pr = sub.add_parser("proof", help="Print the allocation, vesting flag and proof for one address.")
    pr.add_argument("--audit", required=True, help="Path to allowlist.json.")
    pr.add_argument("--address", required=True, help="Participant address.")
    pr.set_defaults(func=cmd_proof)

    v = sub.add_parser("verify", help="Verify an existing allowlist.json deterministically.")
    v.add_argument("--audit", required=True, help="Path to allowlist.json.")
    v.set_defaults(func=cmd_verify)

    q = sub.add_parser("quote", help="Show the entitlement a payment buys.")
    q.add_argument("--payment", required=True, help="Payment amount in payment-token units (e.g. 100).")
    q.set_defaults(func=cmd_quote)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    raise SystemExit(args.func(args))
