"""
Core infrastructure modules for memweave.

Provides common utilities used across the engine:
- exceptions: Standardized exception hierarchy
- circuit_breaker: Resilience pattern for networked stores
- deadline: Per-call deadline propagation
- logging: structlog configuration
- container: Dependency wiring and lifecycle
"""

from memweave.core.exceptions import (
    MemweaveError,
    RetryableError,
    PermanentError,
    InitializationError,
    KnowledgeStoreError,
    KnowledgeStoreConnectionError,
    KnowledgeStoreQueryError,
    StoreUnavailableError,
    PartialWriteFailure,
    MemoryNotFoundError,
    ValidationFailureError,
    DeadlineExceededError,
    ConfigurationError,
    CircuitBreakerOpenError,
)

from memweave.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    reset_all_circuit_breakers,
)

from memweave.core.deadline import Deadline, run_with_deadline

from memweave.core.container import (
    DependencyContainer,
    get_container,
    initialize_container,
    shutdown_container,
)

__all__ = [
    # Exceptions
    "MemweaveError",
    "RetryableError",
    "PermanentError",
    "InitializationError",
    "KnowledgeStoreError",
    "KnowledgeStoreConnectionError",
    "KnowledgeStoreQueryError",
    "StoreUnavailableError",
    "PartialWriteFailure",
    "MemoryNotFoundError",
    "ValidationFailureError",
    "DeadlineExceededError",
    "ConfigurationError",
    "CircuitBreakerOpenError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "get_circuit_breaker",
    "reset_all_circuit_breakers",
    # Deadline
    "Deadline",
    "run_with_deadline",
    # Dependency Container
    "DependencyContainer",
    "get_container",
    "initialize_container",
    "shutdown_container",
]
