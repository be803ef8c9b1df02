"""Unit tests for Prometheus metric helpers."""

import pytest
from prometheus_client import REGISTRY

from memweave.monitoring.metrics import (
    record_circuit_breaker_failure,
    record_embedding,
    record_embedding_tier_failure,
    record_storage_failover,
    track_store_operation,
    update_circuit_breaker_state,
)


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestTrackStoreOperation:
    """Test the store operation context manager."""

    def test_success_is_counted(self):
        """Test a clean exit increments the success counter."""
        labels = {"store": "vector", "operation": "index_test", "status": "success"}
        before = sample("memweave_store_operations_total", **labels)

        with track_store_operation("vector", "index_test"):
            pass

        assert sample("memweave_store_operations_total", **labels) == before + 1

    def test_error_is_counted_and_reraised(self):
        """Test an exception increments the error counter and propagates."""
        labels = {"store": "graph", "operation": "traverse_test", "status": "error"}
        before = sample("memweave_store_operations_total", **labels)

        with pytest.raises(ConnectionError):
            with track_store_operation("graph", "traverse_test"):
                raise ConnectionError("neo4j down")

        assert sample("memweave_store_operations_total", **labels) == before + 1

    def test_latency_is_observed(self):
        labels = {"store": "metadata", "operation": "latency_test"}
        before = sample("memweave_store_latency_seconds_count", **labels)

        with track_store_operation("metadata", "latency_test"):
            pass

        assert sample("memweave_store_latency_seconds_count", **labels) == before + 1


class TestRecorders:
    """Test the simple counter and gauge helpers."""

    def test_embedding_counters(self):
        before = sample("memweave_embedding_generations_total", tier="hash", content_type="code")
        failures = sample("memweave_embedding_tier_failures_total", tier="remote")

        record_embedding("hash", "code")
        record_embedding_tier_failure("remote")

        assert sample(
            "memweave_embedding_generations_total", tier="hash", content_type="code"
        ) == before + 1
        assert sample("memweave_embedding_tier_failures_total", tier="remote") == failures + 1

    def test_storage_failover(self):
        before = sample("memweave_storage_failovers_total", direction="to_fallback")

        record_storage_failover("to_fallback")

        assert sample("memweave_storage_failovers_total", direction="to_fallback") == before + 1

    @pytest.mark.parametrize("state,value", [("closed", 0), ("half_open", 1), ("open", 2)])
    def test_circuit_breaker_state(self, state, value):
        update_circuit_breaker_state("metrics-test", state)

        assert sample("memweave_circuit_breaker_state", service="metrics-test") == value

    def test_circuit_breaker_failure(self):
        before = sample("memweave_circuit_breaker_failures_total", service="metrics-test")

        record_circuit_breaker_failure("metrics-test")

        assert sample("memweave_circuit_breaker_failures_total", service="metrics-test") == before + 1
