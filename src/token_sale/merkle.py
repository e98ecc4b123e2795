from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .encoding import Amount, keccak256, pack_entry, parse_units, to_bytes32
from .project_constants import EMPTY_ROOT, TOKEN_DECIMALS


@dataclass(frozen=True)
class AllowListTree:
    root: bytes
    leaves: Tuple[bytes, ...]  # sorted
    proofs: Dict[bytes, Tuple[bytes, ...]] = field(repr=False)

    def proof_for(self, leaf: bytes) -> Tuple[bytes, ...]:
        if leaf not in self.proofs:
            raise KeyError(f"Leaf 0x{leaf.hex()} is not in this tree.")
        return self.proofs[leaf]


def build_leaf(
    address: str,
    allocation: Amount,
    vesting: bool,
    decimals: int = TOKEN_DECIMALS,
) -> bytes:
    """
    keccak256(address || uint256(allocation in smallest unit) || bool(vesting)).
    The address is checksummed and the allocation parsed exactly, so formatting
    differences in the input never change the leaf.
    """
    raw = parse_units(allocation, decimals)
    return keccak256(pack_entry(address, raw, vesting))


def build_leaf_raw(address: str, allocation_raw: int, vesting: bool) -> bytes:
    """Same as build_leaf for an allocation already in the smallest unit."""
    return keccak256(pack_entry(address, allocation_raw, vesting))


def hash_pair(a: bytes, b: bytes) -> bytes:
    lo, hi = (a, b) if a <= b else (b, a)
    return keccak256(lo + hi)


def build_tree(leaves: Sequence[bytes]) -> AllowListTree:
    level = sorted(to_bytes32(x) for x in leaves)
    if len(set(level)) != len(level):
        raise ValueError("Duplicate leaves in allow-list.")
    if not level:
        return AllowListTree(root=EMPTY_ROOT, leaves=(), proofs={})

    # position of every original leaf in the current level
    positions: Dict[bytes, int] = {leaf: i for i, leaf in enumerate(level)}
    paths: Dict[bytes, List[bytes]] = {leaf: [] for leaf in level}
    sorted_leaves = tuple(level)

    while len(level) > 1:
        if len(level) % 2:
            level = level + [level[-1]]
        for leaf, pos in positions.items():
            paths[leaf].append(level[pos ^ 1])
            positions[leaf] = pos // 2
        level = [hash_pair(level[i], level[i + 1]) for i in range(0, len(level), 2)]

    return AllowListTree(
        root=level[0],
        leaves=sorted_leaves,
        proofs={leaf: tuple(path) for leaf, path in paths.items()},
    )


def verify(root, leaf, proof) -> bool:
    """
    Fold the proof over the leaf and compare with root.
    Malformed input of any kind is a failed proof, not an exception.
    """
    try:
        expected = to_bytes32(root)
        cur = to_bytes32(leaf)
        if isinstance(proof, (str, bytes, bytearray)):
            return False
        for sibling in proof:
            cur = hash_pair(cur, to_bytes32(sibling))
    except (TypeError, ValueError):
        return False
    return cur == expected
