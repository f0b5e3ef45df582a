"""Sparse Merkle tree and multi-leaf proofs."""

from shieldpool.core.smt.tree import (
    SparseMerkleTree,
    TreeSnapshot,
    InclusionProof,
    Node,
    NodeType,
    EMPTY_NODE,
    is_right,
    path_length,
    verify_proof,
)
from shieldpool.core.smt.multiproof import (
    MultiProof,
    MultiProofLeaf,
    compute_multiproof,
    verify_multiproof,
    max_siblings,
)
