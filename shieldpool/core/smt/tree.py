"""
Sparse Merkle Tree for commitment storage.

Conceptual Background:
---------------------
A sparse Merkle tree (SMT) maps a field-element key to a field-element value.
The key itself is the address: at depth d (the root is depth 0) the walk goes
left when bit d of the key is 0 and right when it is 1, least-significant bit
first. The tree has a fixed height H, so only the low H bits of a key matter.

Leaves are stored as high up as they can be while staying unique: a lone leaf
is the root, and a second leaf pushes both down until their key bits diverge.
The path from a leaf to the root is therefore usually much shorter than H;
unused proof slots are filled with the zero sentinel.

Node hashes:
- EMPTY  -> 0
- LEAF   -> Poseidon(key, value, 1)
- MIDDLE -> Poseidon(left, right)

Never delete leaves: spends are tracked by the nullifier set, not the tree.

Storage:
--------
Nodes are immutable and stored by integer id. An insert copies the path it
touches and publishes the new root id, so every earlier root id still
describes a complete tree. A TreeSnapshot is just a root id; it can be read
while other threads keep inserting.

Properties:
----------
- Insert: O(H) hashes, one path
- Root: O(1)
- Prove: O(H)
- Verify: O(H)
"""

import threading
from collections import Counter, deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from shieldpool.crypto import (
    FIELD_PRIME,
    FIELD_ELEMENT_SIZE,
    ZERO_HASH,
    hash_leaf,
    hash_node,
    int_to_bytes32,
    bytes32_to_int,
    field_to_hex,
)
from shieldpool.core.errors import DuplicateKey, MaxDepthReached, UnknownRoot
from shieldpool.utils.validation import parse_field_hex, require_array
from shieldpool.utils.logger import get_logger

logger = get_logger("smt")


# =============================================================================
# Constants
# =============================================================================

DEFAULT_HEIGHT = 32
DEFAULT_ROOT_HISTORY_SIZE = 100
MAX_HEIGHT = 254

# Id of the shared empty node
EMPTY_NODE_ID = 0


# =============================================================================
# Nodes
# =============================================================================


class NodeType(IntEnum):
    """Kind of SMT node."""
    EMPTY = 0
    LEAF = 1
    MIDDLE = 2


@dataclass(frozen=True)
class Node:
    """
    An immutable SMT node.

    Leaves carry key/value; middle nodes carry child ids.
    """
    node_type: NodeType
    node_hash: int = ZERO_HASH
    key: int = 0
    value: int = 0
    child_left: int = EMPTY_NODE_ID
    child_right: int = EMPTY_NODE_ID

    @property
    def is_empty(self) -> bool:
        return self.node_type == NodeType.EMPTY

    @property
    def is_leaf(self) -> bool:
        return self.node_type == NodeType.LEAF


EMPTY_NODE = Node(node_type=NodeType.EMPTY)


def is_right(key: int, depth: int) -> bool:
    """True when the path of key turns right at depth."""
    return (key >> depth) & 1 == 1


def path_length(siblings: Sequence[int]) -> int:
    """
    Frontier depth of a proof: the depth of the proved node.

    Equals the index of the deepest non-zero sibling plus one. A proof whose
    siblings are all zero has length 0: the proved node is the root itself
    (a tree holding a single leaf) and nothing has to be folded.
    """
    for i in range(len(siblings) - 1, -1, -1):
        if siblings[i] != ZERO_HASH:
            return i + 1
    return 0


def fold_path(node_hash: int, key: int, siblings: Sequence[int], depth: int) -> int:
    """Hash node_hash up to the root along the path of key."""
    for d in range(depth - 1, -1, -1):
        sibling = siblings[d]
        if is_right(key, d):
            node_hash = hash_node(sibling, node_hash)
        else:
            node_hash = hash_node(node_hash, sibling)
    return node_hash


def _check_field(value: int, name: str) -> None:
    if not isinstance(value, int) or not (0 <= value < FIELD_PRIME):
        raise ValueError(f"{name} must be a field element, got {value!r}")


# =============================================================================
# Proofs
# =============================================================================


@dataclass(frozen=True)
class InclusionProof:
    """
    Single-key SMT proof.

    siblings[d] is the hash hanging off the path at depth d (root side first),
    zero-padded to the tree height.

    For a key that is not in the tree (existence=False), the aux fields
    describe what the walk ended on: another leaf (aux_existence=True) or an
    empty slot.
    """
    root: int
    siblings: Tuple[int, ...]
    existence: bool
    key: int
    value: int = 0
    aux_existence: bool = False
    aux_key: int = 0
    aux_value: int = 0

    @property
    def height(self) -> int:
        return len(self.siblings)

    @property
    def depth(self) -> int:
        """Depth of the node the walk ended on."""
        return path_length(self.siblings)

    @property
    def aux_is_empty(self) -> bool:
        """Non-membership proof that ended on an empty slot."""
        return not self.existence and not self.aux_existence

    def compute_root(self) -> int:
        """Recompute the root from the proved (or aux) node and the siblings."""
        if self.existence:
            node_hash = hash_leaf(self.key, self.value)
        elif self.aux_existence:
            node_hash = hash_leaf(self.aux_key, self.aux_value)
        else:
            node_hash = ZERO_HASH
        return fold_path(node_hash, self.key, self.siblings, self.depth)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict (every element as 32-byte hex)."""
        return {
            "root": field_to_hex(self.root),
            "siblings": [field_to_hex(s) for s in self.siblings],
            "existence": self.existence,
            "key": field_to_hex(self.key),
            "value": field_to_hex(self.value),
            "aux_existence": self.aux_existence,
            "aux_key": field_to_hex(self.aux_key),
            "aux_value": field_to_hex(self.aux_value),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InclusionProof":
        """Create from dict, rejecting elements that are not exactly 32 bytes."""
        require_array(data["siblings"], "siblings", MAX_HEIGHT)
        return cls(
            root=parse_field_hex(data["root"], "root"),
            siblings=tuple(parse_field_hex(s, "sibling") for s in data["siblings"]),
            existence=bool(data["existence"]),
            key=parse_field_hex(data["key"], "key"),
            value=parse_field_hex(data["value"], "value"),
            aux_existence=bool(data["aux_existence"]),
            aux_key=parse_field_hex(data["aux_key"], "aux_key"),
            aux_value=parse_field_hex(data["aux_value"], "aux_value"),
        )

    def to_bytes(self) -> bytes:
        """
        Serialize proof to bytes.

        Format: flags(1) || height(1) || root || key || value || aux_key ||
        aux_value || siblings[height], each element 32 bytes big-endian.
        """
        flags = (1 if self.existence else 0) | (2 if self.aux_existence else 0)
        return (
            bytes([flags, self.height]) +
            b"".join(
                int_to_bytes32(x)
                for x in (self.root, self.key, self.value, self.aux_key, self.aux_value)
            ) +
            b"".join(int_to_bytes32(s) for s in self.siblings)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "InclusionProof":
        """Deserialize proof from bytes."""
        if len(data) < 2:
            raise ValueError("Proof data too short")
        flags, height = data[0], data[1]
        if flags > 3:
            raise ValueError(f"Invalid proof flags: {flags}")
        expected = 2 + FIELD_ELEMENT_SIZE * (5 + height)
        if len(data) != expected:
            raise ValueError(f"Proof data must be {expected} bytes, got {len(data)}")

        words = [
            bytes32_to_int(data[offset:offset + FIELD_ELEMENT_SIZE])
            for offset in range(2, len(data), FIELD_ELEMENT_SIZE)
        ]
        root, key, value, aux_key, aux_value = words[:5]
        return cls(
            root=root,
            siblings=tuple(words[5:]),
            existence=bool(flags & 1),
            key=key,
            value=value,
            aux_existence=bool(flags & 2),
            aux_key=aux_key,
            aux_value=aux_value,
        )


def verify_proof(proof: InclusionProof) -> bool:
    """
    Verify an inclusion or non-membership proof against its own root.

    A non-membership proof ending on another leaf must show a leaf whose key
    really shares the path walked so far.
    """
    if proof.existence and proof.aux_existence:
        return False

    if proof.aux_existence:
        if proof.aux_key == proof.key:
            return False
        mask = (1 << proof.depth) - 1
        if (proof.aux_key ^ proof.key) & mask:
            return False

    return proof.compute_root() == proof.root


# =============================================================================
# Snapshot
# =============================================================================


class TreeSnapshot:
    """
    Read-only view of the tree at one root.

    Cheap to create; stays consistent while the tree keeps growing.
    """

    def __init__(self, nodes: Dict[int, Node], root_id: int, height: int):
        self._nodes = nodes
        self.root_id = root_id
        self.height = height
        self.root = nodes[root_id].node_hash

    def get_proof(self, key: int) -> InclusionProof:
        """
        Get the proof for key.

        Never fails: an absent key yields a non-membership proof.
        """
        _check_field(key, "key")

        siblings = [ZERO_HASH] * self.height
        existence = aux_existence = False
        value = aux_key = aux_value = 0

        node_id = self.root_id
        for depth in range(self.height + 1):
            node = self._nodes[node_id]

            if node.node_type == NodeType.EMPTY:
                break

            if node.node_type == NodeType.LEAF:
                if node.key == key:
                    existence = True
                    value = node.value
                else:
                    aux_existence = True
                    aux_key = node.key
                    aux_value = node.value
                break

            if is_right(key, depth):
                siblings[depth] = self._nodes[node.child_left].node_hash
                node_id = node.child_right
            else:
                siblings[depth] = self._nodes[node.child_right].node_hash
                node_id = node.child_left

        return InclusionProof(
            root=self.root,
            siblings=tuple(siblings),
            existence=existence,
            key=key,
            value=value,
            aux_existence=aux_existence,
            aux_key=aux_key,
            aux_value=aux_value,
        )

    def get_node_by_key(self, key: int) -> Node:
        """Get the leaf stored under key, or the empty node."""
        node, _ = _locate(self._nodes, self.root_id, key)
        if node.is_leaf and node.key == key:
            return node
        return EMPTY_NODE

    def __repr__(self) -> str:
        return f"TreeSnapshot(root={field_to_hex(self.root)[:10]}..., height={self.height})"


def _locate(nodes: Dict[int, Node], root_id: int, key: int) -> Tuple[Node, int]:
    """Walk down the path of key; return the first non-middle node and its depth."""
    node = nodes[root_id]
    depth = 0
    while node.node_type == NodeType.MIDDLE:
        node_id = node.child_right if is_right(key, depth) else node.child_left
        node = nodes[node_id]
        depth += 1
    return node, depth


# =============================================================================
# Sparse Merkle Tree
# =============================================================================


class SparseMerkleTree:
    """
    Fixed-height sparse Merkle tree with a bounded root history.

    Writes are serialized by an internal lock. Reads go through snapshots.

    Attributes:
        height: Number of levels below the root
        root_history_size: Number of recent roots kept for proof acceptance
    """

    def __init__(
        self,
        height: int = DEFAULT_HEIGHT,
        root_history_size: int = DEFAULT_ROOT_HISTORY_SIZE,
    ):
        if not 1 <= height <= MAX_HEIGHT:
            raise ValueError(f"height must be in [1, {MAX_HEIGHT}], got {height}")
        if root_history_size < 1:
            raise ValueError(f"root_history_size must be positive, got {root_history_size}")

        self.height = height
        self.root_history_size = root_history_size

        # Append-only node storage
        self._nodes: Dict[int, Node] = {EMPTY_NODE_ID: EMPTY_NODE}
        self._next_id = EMPTY_NODE_ID + 1
        self._root_id = EMPTY_NODE_ID
        self._leaf_count = 0

        # Root history window
        self._root_history: Deque[int] = deque()
        self._root_refs: Counter = Counter()
        self._root_ids: Dict[int, int] = {}

        self._lock = threading.RLock()

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def root(self) -> int:
        """Current root (0 for an empty tree)."""
        return self._nodes[self._root_id].node_hash

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    def root_history(self) -> List[int]:
        """Retained roots, oldest first."""
        with self._lock:
            return list(self._root_history)

    def root_history_contains(self, root: int) -> bool:
        """True if root is inside the retained history window."""
        return root in self._root_ids

    def snapshot(self, root: Optional[int] = None) -> TreeSnapshot:
        """
        Get a read-only view.

        Args:
            root: A retained historical root. None means the current root.

        Raises:
            UnknownRoot: If root is not the current root nor retained
        """
        with self._lock:
            if root is None or root == self.root:
                root_id = self._root_id
            elif root in self._root_ids:
                root_id = self._root_ids[root]
            else:
                raise UnknownRoot(f"Root {field_to_hex(root)} is not in the history window")
        return TreeSnapshot(self._nodes, root_id, self.height)

    def get_proof(self, key: int, root: Optional[int] = None) -> InclusionProof:
        """Get an inclusion or non-membership proof for key."""
        return self.snapshot(root).get_proof(key)

    def get_node_by_key(self, key: int) -> Node:
        """Get the leaf stored under key, or the empty node."""
        return self.snapshot().get_node_by_key(key)

    # =========================================================================
    # Mutation
    # =========================================================================

    def check_insert(self, key: int) -> None:
        """
        Raise the error insert(key, ...) would raise, without mutating.

        Callers holding their own write lock can check, persist, then insert
        knowing the insert will succeed.
        """
        _check_field(key, "key")

        with self._lock:
            node, depth = _locate(self._nodes, self._root_id, key)
            if not node.is_leaf:
                return
            if node.key == key:
                raise DuplicateKey(f"Key {field_to_hex(key)} already exists")
            diff = (node.key ^ key) >> depth
            split_depth = depth + (diff & -diff).bit_length() - 1 if diff else self.height
            if split_depth >= self.height:
                raise MaxDepthReached(
                    f"Keys {field_to_hex(key)} and {field_to_hex(node.key)} "
                    f"share all {self.height} low bits"
                )

    def insert(self, key: int, value: int) -> int:
        """
        Insert a new leaf.

        Args:
            key: Field element addressing the leaf
            value: Field element stored in the leaf

        Returns:
            The new root

        Raises:
            DuplicateKey: If a leaf already occupies key
            MaxDepthReached: If key collides with a leaf on every addressable bit
        """
        _check_field(value, "value")

        with self._lock:
            # Reject before touching any node so a failed insert leaves no trace
            self.check_insert(key)

            leaf_id = self._add_node(Node(
                node_type=NodeType.LEAF,
                node_hash=hash_leaf(key, value),
                key=key,
                value=value,
            ))
            self._root_id = self._insert_node(self._root_id, leaf_id, key, 0)
            self._leaf_count += 1
            new_root = self.root
            self._record_root(new_root, self._root_id)

        logger.debug(f"Inserted leaf #{self._leaf_count}, root={field_to_hex(new_root)[:12]}...")
        return new_root

    def _add_node(self, node: Node) -> int:
        node_id = self._next_id
        self._nodes[node_id] = node
        self._next_id += 1
        return node_id

    def _add_middle(self, left_id: int, right_id: int) -> int:
        return self._add_node(Node(
            node_type=NodeType.MIDDLE,
            node_hash=hash_node(self._nodes[left_id].node_hash, self._nodes[right_id].node_hash),
            child_left=left_id,
            child_right=right_id,
        ))

    def _insert_node(self, node_id: int, leaf_id: int, key: int, depth: int) -> int:
        """Return the id of a copy of node_id's subtree that also holds leaf_id."""
        node = self._nodes[node_id]

        if node.node_type == NodeType.EMPTY:
            return leaf_id

        if node.node_type == NodeType.LEAF:
            return self._push_leaf(leaf_id, node_id, depth)

        if is_right(key, depth):
            right_id = self._insert_node(node.child_right, leaf_id, key, depth + 1)
            return self._add_middle(node.child_left, right_id)

        left_id = self._insert_node(node.child_left, leaf_id, key, depth + 1)
        return self._add_middle(left_id, node.child_right)

    def _push_leaf(self, new_leaf_id: int, old_leaf_id: int, depth: int) -> int:
        """Split two leaves that meet at depth until their key bits diverge."""
        if depth >= self.height:
            raise MaxDepthReached(f"Max depth {self.height} reached")

        new_right = is_right(self._nodes[new_leaf_id].key, depth)
        old_right = is_right(self._nodes[old_leaf_id].key, depth)

        if new_right == old_right:
            child_id = self._push_leaf(new_leaf_id, old_leaf_id, depth + 1)
            if new_right:
                return self._add_middle(EMPTY_NODE_ID, child_id)
            return self._add_middle(child_id, EMPTY_NODE_ID)

        if new_right:
            return self._add_middle(old_leaf_id, new_leaf_id)
        return self._add_middle(new_leaf_id, old_leaf_id)

    def _record_root(self, root: int, root_id: int) -> None:
        """Append root to the history window, evicting the oldest if full."""
        if len(self._root_history) == self.root_history_size:
            expired = self._root_history.popleft()
            self._root_refs[expired] -= 1
            if self._root_refs[expired] == 0:
                del self._root_refs[expired]
                del self._root_ids[expired]

        self._root_history.append(root)
        self._root_refs[root] += 1
        self._root_ids[root] = root_id

    # =========================================================================
    # Utility
    # =========================================================================

    def __len__(self) -> int:
        return self._leaf_count

    def __contains__(self, key: int) -> bool:
        return not self.get_node_by_key(key).is_empty

    def __repr__(self) -> str:
        return (
            f"SparseMerkleTree(height={self.height}, leaves={self._leaf_count}, "
            f"root={field_to_hex(self.root)[:10]}...)"
        )
