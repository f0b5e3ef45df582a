"""Core pool components: sparse Merkle tree, pool protocol, prover, storage"""
