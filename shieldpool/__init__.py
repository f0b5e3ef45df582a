"""
Shielded Pool

A research prototype of a fixed-denomination shielded value pool:
- Poseidon hashing over the BN254 scalar field
- Sparse Merkle tree of commitments with compact multi-leaf proofs
- Commitment / nullifier state machine gated by ZK withdraw proofs
"""
