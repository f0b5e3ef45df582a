"""
Multi-leaf proofs over the sparse Merkle tree.

A multiproof shows that a set of leaves is in the tree with a single list of
sibling hashes. Siblings that can be computed from other proved leaves are
not transmitted, and empty subtrees are signalled by a flag instead of a
hash, so k leaves never cost more than k * H siblings and usually far less.

Construction (one snapshot, so every proof sees the same root):
1. One active node per target: its leaf hash, its key and the depth of the
   leaf (frontier depth).
2. While any node is below the root, take the deepest level d. For each node
   at d, order (node, sibling) by bit d-1 of the node's key. Two nodes that
   are each other's sibling fold into one and emit nothing; otherwise the
   sibling is emitted, or recorded as empty if it is the zero hash.
3. Exactly one node must remain and it must equal the root.

Verification replays the same loop. Pairs are recognised from the keys
alone: two nodes at depth d are siblings when their keys agree on the low
d-1 bits and differ on bit d-1.
"""

import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from shieldpool.crypto import ZERO_HASH, hash_leaf, hash_node, field_to_hex
from shieldpool.core.errors import InvalidMultiProof, RootMismatch, UnknownKey
from shieldpool.core.smt.tree import MAX_HEIGHT, SparseMerkleTree, TreeSnapshot, is_right, path_length
from shieldpool.utils.validation import parse_field_hex, require_array
from shieldpool.utils.logger import get_logger

logger = get_logger("multiproof")


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True)
class MultiProofLeaf:
    """A proved leaf and the depth it sits at."""
    key: int
    value: int
    depth: int

    @property
    def leaf_hash(self) -> int:
        return hash_leaf(self.key, self.value)


@dataclass(frozen=True)
class MultiProof:
    """
    Proof that several leaves belong to the tree with the given root.

    Attributes:
        root: Root the proof was built against
        leaves: Proved leaves, sorted by key
        siblings: Transmitted sibling hashes in fold order
        empty_flags: One entry per unpaired fold; True if the sibling was empty
    """
    root: int
    leaves: Tuple[MultiProofLeaf, ...]
    siblings: Tuple[int, ...]
    empty_flags: Tuple[bool, ...]

    @property
    def keys(self) -> Tuple[int, ...]:
        return tuple(leaf.key for leaf in self.leaves)

    @property
    def sibling_set(self) -> frozenset:
        return frozenset(self.siblings)

    def compute_root(self) -> int:
        """
        Replay the folding from the leaves and siblings.

        Raises:
            InvalidMultiProof: If the sibling or flag lists do not match the leaves
        """
        if not self.leaves:
            raise InvalidMultiProof("Multiproof has no leaves")
        if len({leaf.key for leaf in self.leaves}) != len(self.leaves):
            raise InvalidMultiProof("Multiproof repeats a key")

        active = [_ActiveNode(leaf.key, leaf.leaf_hash, leaf.depth) for leaf in self.leaves]
        sibling_pos = 0
        flag_pos = 0

        while any(node.depth > 0 for node in active):
            depth = max(node.depth for node in active)
            level = [node for node in active if node.depth == depth]
            consumed = set()

            for i, node in enumerate(level):
                if id(node) in consumed:
                    continue

                partner = next(
                    (
                        other for other in level[i + 1:]
                        if id(other) not in consumed and _are_siblings(node.key, other.key, depth)
                    ),
                    None,
                )

                if partner is not None:
                    consumed.add(id(partner))
                    sibling = partner.node_hash
                else:
                    if flag_pos >= len(self.empty_flags):
                        raise InvalidMultiProof("Ran out of empty flags")
                    if self.empty_flags[flag_pos]:
                        sibling = ZERO_HASH
                    else:
                        if sibling_pos >= len(self.siblings):
                            raise InvalidMultiProof("Ran out of siblings")
                        sibling = self.siblings[sibling_pos]
                        sibling_pos += 1
                    flag_pos += 1

                node.fold(sibling)

            active = [node for node in active if id(node) not in consumed]

        if len(active) != 1:
            raise InvalidMultiProof(f"Leaves fold into {len(active)} roots")
        if sibling_pos != len(self.siblings) or flag_pos != len(self.empty_flags):
            raise InvalidMultiProof("Unused siblings or flags")

        return active[0].node_hash

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "root": field_to_hex(self.root),
            "leaves": [
                {"key": field_to_hex(leaf.key), "value": field_to_hex(leaf.value), "depth": leaf.depth}
                for leaf in self.leaves
            ],
            "siblings": [field_to_hex(s) for s in self.siblings],
            "empty_flags": [int(f) for f in self.empty_flags],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MultiProof":
        """Create from dict, rejecting malformed elements and oversized lists."""
        require_array(data["leaves"], "leaves")
        bound = max_siblings(len(data["leaves"]), MAX_HEIGHT)
        require_array(data["siblings"], "siblings", bound)
        require_array(data["empty_flags"], "empty_flags", bound)
        return cls(
            root=parse_field_hex(data["root"], "root"),
            leaves=tuple(
                MultiProofLeaf(
                    key=parse_field_hex(leaf["key"], "leaf key"),
                    value=parse_field_hex(leaf["value"], "leaf value"),
                    depth=int(leaf["depth"]),
                )
                for leaf in data["leaves"]
            ),
            siblings=tuple(parse_field_hex(s, "sibling") for s in data["siblings"]),
            empty_flags=tuple(bool(f) for f in data["empty_flags"]),
        )


class _ActiveNode:
    """A partially folded target."""

    __slots__ = ("key", "node_hash", "depth", "siblings")

    def __init__(self, key: int, node_hash: int, depth: int, siblings: Sequence[int] = ()):
        self.key = key
        self.node_hash = node_hash
        self.depth = depth
        self.siblings = siblings

    def pair_with(self, sibling: int) -> Tuple[int, int]:
        """Order (self, sibling) by the key bit of the level above."""
        if is_right(self.key, self.depth - 1):
            return sibling, self.node_hash
        return self.node_hash, sibling

    def fold(self, sibling: int) -> None:
        self.node_hash = hash_node(*self.pair_with(sibling))
        self.depth -= 1


def _are_siblings(key_a: int, key_b: int, depth: int) -> bool:
    """True if nodes at depth on the paths of both keys share a parent."""
    bit = depth - 1
    mask = (1 << bit) - 1
    return (key_a & mask) == (key_b & mask) and is_right(key_a, bit) != is_right(key_b, bit)


# =============================================================================
# Construction
# =============================================================================


def compute_multiproof(
    tree: SparseMerkleTree,
    target_keys: Iterable[int],
    root: Optional[int] = None,
) -> MultiProof:
    """
    Build a multiproof for target_keys.

    Args:
        tree: Tree to read (never mutated)
        target_keys: Keys of leaves to prove; duplicates are ignored
        root: Historical root to prove against (default: current root)

    Raises:
        UnknownKey: If a target has no leaf
        RootMismatch: If the folded targets do not reproduce the root
    """
    start = time.perf_counter()

    keys = sorted(set(target_keys))
    if not keys:
        raise ValueError("At least one target key is required")

    snapshot = tree.snapshot(root)
    return _build(snapshot, keys, start)


def _build(snapshot: TreeSnapshot, keys: List[int], start: float) -> MultiProof:
    leaves: List[MultiProofLeaf] = []
    active: List[_ActiveNode] = []

    for key in keys:
        proof = snapshot.get_proof(key)
        if not proof.existence:
            raise UnknownKey(f"Key {field_to_hex(key)} is not in the tree")
        depth = path_length(proof.siblings)
        leaves.append(MultiProofLeaf(key=key, value=proof.value, depth=depth))
        active.append(_ActiveNode(key, hash_leaf(key, proof.value), depth, proof.siblings))

    siblings: List[int] = []
    empty_flags: List[bool] = []

    while any(node.depth > 0 for node in active):
        depth = max(node.depth for node in active)
        level = [node for node in active if node.depth == depth]
        level_hashes = {node.node_hash for node in level}

        # Nodes that are each other's sibling produce the same pair
        folded: Dict[Tuple[int, int], _ActiveNode] = {}
        for node in level:
            sibling = node.siblings[depth - 1]
            pair = node.pair_with(sibling)
            if pair in folded:
                continue
            folded[pair] = node

            if sibling in level_hashes:
                continue
            if sibling == ZERO_HASH:
                empty_flags.append(True)
            else:
                siblings.append(sibling)
                empty_flags.append(False)

        for pair, node in folded.items():
            node.node_hash = hash_node(*pair)
            node.depth -= 1

        # Partners that were folded into a representative stay at depth
        active = [node for node in active if node.depth != depth]

    if len(active) != 1:
        raise RootMismatch(f"Targets fold into {len(active)} nodes")

    computed = active[0].node_hash
    if computed != snapshot.root:
        raise RootMismatch(
            f"Computed root {field_to_hex(computed)} != tree root {field_to_hex(snapshot.root)}"
        )

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(
        f"Multiproof for {len(keys)} keys: {len(siblings)} siblings, "
        f"{empty_flags.count(True)} empty, {elapsed_ms:.2f}ms"
    )

    return MultiProof(
        root=computed,
        leaves=tuple(leaves),
        siblings=tuple(siblings),
        empty_flags=tuple(empty_flags),
    )


# =============================================================================
# Verification
# =============================================================================


def verify_multiproof(proof: MultiProof, expected_root: Optional[int] = None) -> bool:
    """
    Check a multiproof against its own root (and expected_root, if given).

    Returns False for malformed proofs instead of raising.
    """
    try:
        computed = proof.compute_root()
    except InvalidMultiProof as e:
        logger.debug(f"Malformed multiproof: {e}")
        return False

    if computed != proof.root:
        return False
    if expected_root is not None and computed != expected_root:
        return False
    return True


def max_siblings(leaf_count: int, height: int) -> int:
    """Upper bound on the transmitted siblings for leaf_count targets."""
    return leaf_count * height
