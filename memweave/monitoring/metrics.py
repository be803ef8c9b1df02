"""
Prometheus metrics for memweave observability.

Usage:
    from memweave.monitoring.metrics import track_store_operation

    with track_store_operation("vector", "index"):
        await vector_store.index_memory(memory, embedding)
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram


# =============================================================================
# Metric Definitions
# =============================================================================

# Store metrics
STORE_OPERATIONS = Counter(
    "memweave_store_operations_total",
    "Total store operations",
    ["store", "operation", "status"],
)

STORE_LATENCY = Histogram(
    "memweave_store_latency_seconds",
    "Latency of store operations",
    ["store", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

STORAGE_FAILOVERS = Counter(
    "memweave_storage_failovers_total",
    "Metadata store strategy switches",
    ["direction"],
)

# Embedding metrics
EMBEDDING_GENERATIONS = Counter(
    "memweave_embedding_generations_total",
    "Embeddings produced, by the tier that produced them",
    ["tier", "content_type"],
)

EMBEDDING_TIER_FAILURES = Counter(
    "memweave_embedding_tier_failures_total",
    "Embedding tier failures that fell through to the next tier",
    ["tier"],
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "memweave_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "memweave_circuit_breaker_failures_total",
    "Total failures recorded by circuit breakers",
    ["service"],
)


# =============================================================================
# Tracking Helpers
# =============================================================================


@contextmanager
def track_store_operation(
    store: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track store operations.

    Usage:
        with track_store_operation("graph", "related_memories"):
            related = await graph.related_memories(memory_id, 2)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except BaseException:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        STORE_OPERATIONS.labels(
            store=store,
            operation=operation,
            status=status,
        ).inc()
        STORE_LATENCY.labels(
            store=store,
            operation=operation,
        ).observe(duration)


def record_embedding(tier: str, content_type: str) -> None:
    """Record which tier produced an embedding."""
    EMBEDDING_GENERATIONS.labels(tier=tier, content_type=content_type).inc()


def record_embedding_tier_failure(tier: str) -> None:
    """Record a tier failure."""
    EMBEDDING_TIER_FAILURES.labels(tier=tier).inc()


def record_storage_failover(direction: str) -> None:
    """Record a primary/fallback switch ("to_fallback" or "to_primary")."""
    STORAGE_FAILOVERS.labels(direction=direction).inc()


def update_circuit_breaker_state(service: str, state: str) -> None:
    """
    Update circuit breaker state gauge.

    Args:
        service: Service name
        state: Circuit state ("closed", "half_open", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    CIRCUIT_BREAKER_STATE.labels(service=service).set(state_map.get(state, 0))


def record_circuit_breaker_failure(service: str) -> None:
    """Record a circuit breaker failure."""
    CIRCUIT_BREAKER_FAILURES.labels(service=service).inc()
