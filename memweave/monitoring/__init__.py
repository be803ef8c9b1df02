"""Prometheus metrics for store operations, embeddings and failover."""

from memweave.monitoring.metrics import (
    record_circuit_breaker_failure,
    record_embedding,
    record_embedding_tier_failure,
    record_storage_failover,
    track_store_operation,
    update_circuit_breaker_state,
)

__all__ = [
    "record_circuit_breaker_failure",
    "record_embedding",
    "record_embedding_tier_failure",
    "record_storage_failover",
    "track_store_operation",
    "update_circuit_breaker_state",
]
