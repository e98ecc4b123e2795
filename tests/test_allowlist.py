"""Tests for allow-list entries, loading and membership authorities."""

import json

import pytest

from token_sale.allowlist import (
    AllowListEntry,
    DirectAllowList,
    MerkleAllowList,
    build_allowlist,
    entries_from_csv,
    entries_from_json,
    entry_record,
    load_entries,
    normalize_entries,
    parse_flag,
)
from token_sale.errors import InvalidProofError
from token_sale.merkle import verify

from conftest import FOURTH, OUTSIDER, SECOND, THIRD, WHITELIST


class TestEntries:
    def test_create_normalizes(self):
        e = AllowListEntry.create(SECOND.lower(), "210000", "false")
        assert e.address == SECOND
        assert e.allocation == 210000 * 10**18
        assert e.vesting is False

    @pytest.mark.parametrize("value, expected", [(True, True), (0, False), ("Yes", True), ("0", False), ("", False)])
    def test_parse_flag(self, value, expected):
        assert parse_flag(value) is expected

    def test_parse_flag_rejects(self):
        with pytest.raises(ValueError):
            parse_flag("maybe")

    def test_normalize_sorts_and_rejects_duplicates(self):
        entries = [AllowListEntry.create(a, alloc, v) for a, alloc, v in WHITELIST]
        ordered = normalize_entries(reversed(entries))
        assert [e.address.lower() for e in ordered] == sorted(e.address.lower() for e in entries)

        with pytest.raises(ValueError, match="Duplicate"):
            normalize_entries(entries + [AllowListEntry.create(SECOND.lower(), 1, False)])

    def test_build_allowlist_proofs_verify(self, allowlist):
        entries, tree = allowlist
        for entry in entries.values():
            assert verify(tree.root, entry.leaf, tree.proof_for(entry.leaf))

    def test_entry_record(self, allowlist):
        entries, tree = allowlist
        record = entry_record(entries[FOURTH], tree)
        assert record["allocation"] == "5250000"
        assert record["allocation_raw"] == str(5250000 * 10**18)
        assert record["vesting"] is True
        assert record["leaf"].startswith("0x") and len(record["leaf"]) == 66
        assert all(len(p) == 66 for p in record["proof"])


class TestLoading:
    def test_json_shapes_agree(self):
        as_lists = entries_from_json([list(w) for w in WHITELIST])
        as_dicts = entries_from_json(
            [{"address": a, "allocation": str(alloc), "vesting": v} for a, alloc, v in WHITELIST]
        )
        wrapped = entries_from_json({"entries": [list(w) for w in WHITELIST]})
        assert as_lists == as_dicts == wrapped

    def test_json_two_element_entry_defaults_vesting(self):
        (e,) = entries_from_json([[SECOND, 1]])
        assert e.vesting is False

    def test_json_bad_shape(self):
        with pytest.raises(RuntimeError, match="unsupported shape"):
            entries_from_json([{"addr": SECOND}])
        with pytest.raises(RuntimeError):
            entries_from_json({"whitelist": []})

    def test_csv(self):
        text = "\n".join(
            [
                "# sale allow-list",
                "address,allocation,vesting",
                f"{SECOND},210000,false",
                "",
                f"{THIRD}, 420000",
                f"{FOURTH},5250000,true",
            ]
        )
        entries = entries_from_csv(text)
        assert entries == entries_from_json([list(w) for w in WHITELIST])

    def test_csv_bad_row(self):
        with pytest.raises(RuntimeError, match="columns"):
            entries_from_csv(f"{SECOND}")

    def test_load_entries_detects_format(self, tmp_path):
        as_json = tmp_path / "wl.json"
        as_json.write_text(json.dumps([list(w) for w in WHITELIST]), encoding="utf-8")
        as_csv = tmp_path / "wl.csv"
        as_csv.write_text("\n".join(f"{a},{alloc},{v}" for a, alloc, v in WHITELIST), encoding="utf-8")
        assert load_entries(str(as_json)) == load_entries(str(as_csv))

    def test_load_entries_bad_json(self, tmp_path):
        bad = tmp_path / "wl.json"
        bad.write_text("[1, 2", encoding="utf-8")
        with pytest.raises(RuntimeError, match="not valid JSON"):
            load_entries(str(bad))


class TestMerkleAllowList:
    def test_authorize(self, allowlist):
        entries, tree = allowlist
        authority = MerkleAllowList(tree.root)
        e = entries[FOURTH]
        assert authority.authorize(FOURTH, e.allocation, True, tree.proof_for(e.leaf)) == (e.allocation, True)

    @pytest.mark.parametrize(
        "change",
        [
            {"allocation": 1},
            {"vesting": True},
            {"address": THIRD},
            {"address": "not an address"},
            {"allocation": "210000"},
            {"allocation": None},
            {"proof": None},
        ],
    )
    def test_wrong_parameters(self, allowlist, change):
        entries, tree = allowlist
        e = entries[SECOND]
        args = {"address": SECOND, "allocation": e.allocation, "vesting": False, "proof": tree.proof_for(e.leaf)}
        args.update(change)
        with pytest.raises(InvalidProofError):
            MerkleAllowList(tree.root).authorize(args["address"], args["allocation"], args["vesting"], args["proof"])

    def test_set_root(self, allowlist):
        entries, tree = allowlist
        authority = MerkleAllowList()
        e = entries[SECOND]
        with pytest.raises(InvalidProofError):
            authority.authorize(SECOND, e.allocation, False, tree.proof_for(e.leaf))
        authority.set_root("0x" + tree.root.hex())
        assert authority.authorize(SECOND, e.allocation, False, tree.proof_for(e.leaf))[0] == e.allocation


class TestDirectAllowList:
    def test_base_amount(self):
        authority = DirectAllowList(base_amount=100)
        authority.whitelist_accounts([SECOND.lower()])
        assert authority.authorize(SECOND) == (100, False)

    def test_custom_allocation_and_vesting(self):
        authority = DirectAllowList()
        authority.whitelist_accounts_with_allocation([THIRD], [500], [True])
        assert authority.authorize(THIRD) == (500, True)
        assert authority.authorize(THIRD, 500, True) == (500, True)
        with pytest.raises(InvalidProofError, match="Allocation"):
            authority.authorize(THIRD, 400, None)
        with pytest.raises(InvalidProofError, match="Vesting"):
            authority.authorize(THIRD, None, False)

    def test_not_whitelisted(self):
        with pytest.raises(InvalidProofError, match="not whitelisted"):
            DirectAllowList().authorize(OUTSIDER)

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            DirectAllowList().whitelist_accounts_with_allocation([THIRD], [1, 2], [True])

    def test_base_amount_change_applies_to_later_listings(self):
        authority = DirectAllowList(base_amount=100)
        authority.whitelist_accounts([SECOND])
        authority.set_base_amount(50)
        authority.whitelist_accounts([THIRD])
        assert authority.authorize(SECOND)[0] == 100
        assert authority.authorize(THIRD)[0] == 50


def test_build_allowlist_is_order_independent():
    entries = [AllowListEntry.create(a, alloc, v) for a, alloc, v in WHITELIST]
    _, t1 = build_allowlist(entries)
    _, t2 = build_allowlist(list(reversed(entries)))
    assert t1.root == t2.root
