"""
Benchmarks for shieldpool core components.

Run with: python -m shieldpool.utils.benchmark
"""

import random
import time
import statistics
from typing import Callable, List, Optional
from dataclasses import dataclass

from shieldpool.crypto import sha256, keccak256, poseidon2, poseidon3
from shieldpool.core.pool.note import Note
from shieldpool.core.smt.multiproof import compute_multiproof, verify_multiproof
from shieldpool.core.smt.tree import SparseMerkleTree, verify_proof
from shieldpool.utils.logger import get_logger

logger = get_logger("benchmark")


# =============================================================================
# Benchmark Framework
# =============================================================================


@dataclass
class BenchmarkResult:
    """Result of a benchmark run."""
    name: str
    iterations: int
    total_time_ms: float
    avg_time_ms: float
    min_time_ms: float
    max_time_ms: float
    ops_per_sec: float

    def __str__(self) -> str:
        return (
            f"{self.name}: {self.ops_per_sec:.0f} ops/s "
            f"(avg={self.avg_time_ms:.3f}ms, min={self.min_time_ms:.3f}ms, max={self.max_time_ms:.3f}ms)"
        )


def benchmark(
    name: str,
    func: Callable,
    iterations: int = 1000,
    warmup: int = 100,
) -> BenchmarkResult:
    """
    Run a benchmark.

    Args:
        name: Benchmark name
        func: Function to benchmark (no args)
        iterations: Number of iterations
        warmup: Warmup iterations

    Returns:
        BenchmarkResult
    """
    for _ in range(warmup):
        func()

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        func()
        end = time.perf_counter()
        times.append((end - start) * 1000)  # ms

    total = sum(times)
    avg = statistics.mean(times)

    return BenchmarkResult(
        name=name,
        iterations=iterations,
        total_time_ms=total,
        avg_time_ms=avg,
        min_time_ms=min(times),
        max_time_ms=max(times),
        ops_per_sec=1000 / avg if avg > 0 else float("inf"),
    )


# =============================================================================
# Multiproof Metrics
# =============================================================================


@dataclass
class MultiProofMetrics:
    """Average cost of multiproofs over a populated tree."""
    leaf_count: int
    prove_count: int
    runs: int
    avg_gen_time_sec: float
    avg_siblings: float
    max_siblings: int

    def __str__(self) -> str:
        return (
            f"{self.prove_count} of {self.leaf_count} leaves: "
            f"avg gen time {self.avg_gen_time_sec:.4f}s, avg siblings {self.avg_siblings:.1f} "
            f"(max {self.max_siblings})"
        )


def multiproof_metrics(
    leaf_count: int,
    prove_count: int,
    runs: int = 100,
    height: int = 32,
    seed: Optional[int] = None,
) -> MultiProofMetrics:
    """
    Deposit leaf_count random commitments, then build runs multiproofs over
    random subsets of prove_count leaves.

    Raises:
        ValueError: If prove_count exceeds leaf_count
        AssertionError: If a multiproof does not reproduce the tree root
    """
    if prove_count > leaf_count:
        raise ValueError("Count exceeds the number of available elements.")

    rng = random.Random(seed)
    tree = SparseMerkleTree(height=height)
    keys = []
    for _ in range(leaf_count):
        note = Note.generate()
        tree.insert(note.key, note.commitment)
        keys.append(note.key)

    total_siblings = 0
    most_siblings = 0
    start = time.perf_counter()

    for _ in range(runs):
        proof = compute_multiproof(tree, rng.sample(keys, prove_count))
        assert proof.root == tree.root, "Multiproof root differs from tree root"
        total_siblings += len(proof.siblings)
        most_siblings = max(most_siblings, len(proof.siblings))

    elapsed = time.perf_counter() - start
    metrics = MultiProofMetrics(
        leaf_count=leaf_count,
        prove_count=prove_count,
        runs=runs,
        avg_gen_time_sec=elapsed / runs,
        avg_siblings=total_siblings / runs,
        max_siblings=most_siblings,
    )
    logger.info(str(metrics))
    return metrics


# =============================================================================
# Hash Benchmarks
# =============================================================================


def benchmark_hashing() -> List[BenchmarkResult]:
    """Benchmark hash functions."""
    results = []
    data = b"x" * 64

    results.append(benchmark(
        "SHA-256 (64 bytes)",
        lambda: sha256(data),
        iterations=10000,
    ))

    results.append(benchmark(
        "Keccak-256 (64 bytes)",
        lambda: keccak256(data),
        iterations=10000,
    ))

    results.append(benchmark(
        "Poseidon2 (node hash)",
        lambda: poseidon2(12345, 67890),
        iterations=1000,
    ))

    results.append(benchmark(
        "Poseidon3 (leaf hash)",
        lambda: poseidon3(12345, 67890, 1),
        iterations=1000,
    ))

    return results


# =============================================================================
# Sparse Merkle Tree Benchmarks
# =============================================================================


def benchmark_smt() -> List[BenchmarkResult]:
    """Benchmark SMT operations."""
    results = []
    notes = [Note.generate() for _ in range(256)]

    def build():
        tree = SparseMerkleTree(height=32)
        for note in notes:
            tree.insert(note.key, note.commitment)
        return tree

    results.append(benchmark(
        "SMT Build (256 leaves)",
        build,
        iterations=3,
        warmup=0,
    ))

    tree = build()
    key = notes[0].key
    results.append(benchmark(
        "SMT Proof Generation",
        lambda: tree.get_proof(key),
        iterations=1000,
    ))

    proof = tree.get_proof(key)
    results.append(benchmark(
        "SMT Proof Verification",
        lambda: verify_proof(proof),
        iterations=100,
    ))

    subset = [n.key for n in notes[:10]]
    results.append(benchmark(
        "Multiproof Generation (10 of 256)",
        lambda: compute_multiproof(tree, subset),
        iterations=20,
        warmup=2,
    ))

    multiproof = compute_multiproof(tree, subset)
    results.append(benchmark(
        "Multiproof Verification (10 of 256)",
        lambda: verify_multiproof(multiproof),
        iterations=20,
        warmup=2,
    ))

    return results


# =============================================================================
# Main
# =============================================================================


def run_all_benchmarks() -> None:
    """Run all benchmarks and print results."""
    print("=" * 60)
    print("shieldpool Performance Benchmarks")
    print("=" * 60)

    sections = [
        ("Hashing", benchmark_hashing),
        ("Sparse Merkle Tree", benchmark_smt),
    ]

    for section_name, bench_func in sections:
        print(f"\n{section_name}")
        print("-" * 40)
        results = bench_func()
        for r in results:
            print(f"  {r}")

    print("\nMultiproof Metrics")
    print("-" * 40)
    for prove_count in (5, 10):
        print(f"  {multiproof_metrics(200, prove_count, runs=20)}")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    run_all_benchmarks()
