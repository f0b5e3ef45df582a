"""
Unit tests for benchmark helpers.

Tests cover:
1. Generic benchmark runner
2. Multiproof metrics over a small tree
"""

import pytest

from shieldpool.utils.benchmark import benchmark, multiproof_metrics


class TestBenchmark:
    """Timing wrapper."""

    def test_counts_calls(self):
        calls = []
        result = benchmark("noop", lambda: calls.append(1), iterations=10, warmup=2)
        assert len(calls) == 12
        assert result.iterations == 10
        assert result.min_time_ms <= result.avg_time_ms <= result.max_time_ms
        assert "noop" in str(result)


class TestMultiProofMetrics:
    """Averages over random subsets."""

    def test_small_tree(self):
        metrics = multiproof_metrics(leaf_count=20, prove_count=4, runs=3, height=32, seed=1)
        assert metrics.runs == 3
        assert metrics.prove_count == 4
        assert 0 < metrics.avg_siblings <= metrics.max_siblings <= 4 * 32
        assert metrics.avg_gen_time_sec > 0

    def test_all_leaves_need_no_siblings(self):
        metrics = multiproof_metrics(leaf_count=8, prove_count=8, runs=2, height=32, seed=2)
        assert metrics.max_siblings == 0

    def test_too_many_leaves_requested(self):
        with pytest.raises(ValueError, match="exceeds"):
            multiproof_metrics(leaf_count=3, prove_count=4, runs=1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
