"""
Core exception hierarchy for memweave.

Provides standardized exception types with categorization for retry logic.
All components should use these exceptions instead of generic Exception.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class MemweaveError(Exception):
    """Base exception for all memweave errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(MemweaveError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, temporary network issues.
    """

    pass


class PermanentError(MemweaveError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, missing memories, authentication failures.
    """

    pass


# =============================================================================
# Initialization Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


# =============================================================================
# Knowledge Store Errors
# =============================================================================


class KnowledgeStoreError(MemweaveError):
    """Base exception for vector, graph and metadata store errors."""

    pass


class KnowledgeStoreConnectionError(KnowledgeStoreError, RetryableError):
    """Raised when unable to connect to a store."""

    pass


class KnowledgeStoreQueryError(KnowledgeStoreError, PermanentError):
    """Raised when a query is malformed or invalid."""

    pass


class StoreUnavailableError(KnowledgeStoreError, RetryableError):
    """Raised when a store fails its health check and no fallback remains."""

    def __init__(self, store: str, message: str, details: Optional[dict[str, Any]] = None):
        self.store = store
        super().__init__(f"[{store}] {message}", details)


class PartialWriteFailure(KnowledgeStoreError):
    """
    Vector and/or graph writes failed while the metadata write succeeded.

    Never raised out of the orchestrator; recorded on the store result instead.
    """

    def __init__(self, memory_id: str, failed_stores: list[str]):
        self.memory_id = memory_id
        self.failed_stores = failed_stores
        super().__init__(
            f"Memory {memory_id} stored without {', '.join(failed_stores)}",
            {"memory_id": memory_id, "failed_stores": failed_stores},
        )


# =============================================================================
# Request Errors
# =============================================================================


class MemoryNotFoundError(PermanentError):
    """Raised when a memory id is absent from the metadata store."""

    def __init__(self, memory_id: str):
        self.memory_id = memory_id
        super().__init__(f"Memory not found: {memory_id}", {"memory_id": memory_id})


class ValidationFailureError(PermanentError):
    """Raised for malformed input or references to nonexistent endpoints."""

    pass


class DeadlineExceededError(RetryableError):
    """Raised when an operation runs past its deadline."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            f"Deadline exceeded during {operation}",
            {"operation": operation, "timeout": timeout},
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreakerOpenError(RetryableError):
    """Raised when circuit breaker is open and blocking requests."""

    def __init__(self, service: str, recovery_time: float):
        self.service = service
        self.recovery_time = recovery_time
        super().__init__(
            f"Circuit breaker open for {service}. Recovery in {recovery_time:.1f}s",
            {"service": service, "recovery_time": recovery_time},
        )
