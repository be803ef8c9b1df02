"""Storage strategy selector for the metadata store.

Chooses between a primary (networked) and a fallback (local) metadata store
based on health checks, and retries a failed primary operation exactly once
against the fallback.

Usage:
    selector = StorageStrategySelector(primary=redis_store, fallback=local_store)
    await selector.initialize()

    await selector.execute_with_fallback(
        lambda store: store.put_memory(memory), operation_name="put_memory"
    )
"""

import asyncio
import contextlib
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from memweave.monitoring.metrics import record_storage_failover
from memweave.storage.base import MetadataStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

StoreOperation = Callable[[MetadataStore], Awaitable[T]]


class StorageStrategy(str, Enum):
    """Which metadata store currently serves requests."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class StorageStrategySelector:
    """
    Two-state failover between a primary and a fallback metadata store.

    Health re-checks are gated by `health_check_interval` so concurrent
    callers cannot hammer a struggling primary. A selector built without a
    primary runs on the fallback permanently.

    Args:
        primary: Networked metadata store, or None for fallback-only
        fallback: Local metadata store
        health_check_interval: Minimum seconds between health re-checks
        clock: Monotonic time source
    """

    def __init__(
        self,
        primary: Optional[MetadataStore],
        fallback: MetadataStore,
        health_check_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._primary = primary
        self._fallback = fallback
        self._health_check_interval = health_check_interval
        self._clock = clock
        self._strategy = StorageStrategy.FALLBACK
        self._last_health_check: Optional[float] = None
        self._primary_healthy = False
        self._lock = asyncio.Lock()
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def current_strategy(self) -> StorageStrategy:
        return self._strategy

    @property
    def current_store(self) -> MetadataStore:
        if self._strategy == StorageStrategy.PRIMARY and self._primary is not None:
            return self._primary
        return self._fallback

    @property
    def inactive_store(self) -> Optional[MetadataStore]:
        if self._strategy == StorageStrategy.PRIMARY:
            return self._fallback
        return self._primary

    async def initialize(self) -> StorageStrategy:
        """Probe the primary and pick the starting strategy."""
        await self._evaluate()
        logger.info(
            "storage_strategy_initialized",
            strategy=self._strategy.value,
            primary=getattr(self._primary, "name", None),
            fallback=getattr(self._fallback, "name", None),
        )
        return self._strategy

    async def _primary_health(self) -> bool:
        if self._primary is None:
            return False
        try:
            return bool(await self._primary.health_check())
        except Exception as e:
            logger.warning("primary_metadata_store_health_check_failed", error=str(e))
            return False

    async def _evaluate(self) -> None:
        """Run a health check and switch state if needed."""
        async with self._lock:
            self._primary_healthy = await self._primary_health()
            self._last_health_check = self._clock()

            if self._primary_healthy and self._strategy == StorageStrategy.FALLBACK:
                if self._primary is not None:
                    self._switch(StorageStrategy.PRIMARY, reason="primary_healthy")
            elif not self._primary_healthy and self._strategy == StorageStrategy.PRIMARY:
                self._switch(StorageStrategy.FALLBACK, reason="primary_unhealthy")

    def _switch(self, strategy: StorageStrategy, reason: str) -> None:
        if strategy == self._strategy:
            return
        previous = self._strategy
        self._strategy = strategy
        record_storage_failover(f"to_{strategy.value}")
        logger.warning(
            "storage_strategy_switched",
            previous=previous.value,
            current=strategy.value,
            reason=reason,
        )

    def _health_check_due(self) -> bool:
        if self._last_health_check is None:
            return True
        return self._clock() - self._last_health_check >= self._health_check_interval

    async def ensure_healthy_strategy(self) -> StorageStrategy:
        """Re-evaluate health if the minimum interval has elapsed."""
        if self._primary is not None and self._health_check_due():
            await self._evaluate()
        return self._strategy

    async def refresh_strategy(self) -> StorageStrategy:
        """Force a health re-check regardless of the interval."""
        await self._evaluate()
        return self._strategy

    async def execute_with_fallback(
        self,
        operation: StoreOperation[T],
        operation_name: str = "operation",
    ) -> T:
        """
        Run `operation` against the current store.

        On primary failure, switch to the fallback and retry once; the
        fallback's error propagates if that attempt also fails. Failures on
        the fallback propagate immediately.
        """
        await self.ensure_healthy_strategy()

        store = self.current_store
        try:
            return await operation(store)
        except Exception as e:
            if store is self._fallback:
                logger.error(
                    "metadata_operation_failed",
                    operation=operation_name,
                    store=getattr(store, "name", None),
                    error=str(e),
                )
                raise

            logger.warning(
                "primary_metadata_operation_failed",
                operation=operation_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            async with self._lock:
                self._primary_healthy = False
                self._last_health_check = self._clock()
                self._switch(StorageStrategy.FALLBACK, reason="operation_failed")

        return await operation(self._fallback)

    async def read_with_fallback(
        self,
        operation: StoreOperation[Optional[T]],
        operation_name: str = "read",
    ) -> Optional[T]:
        """
        Like execute_with_fallback, but a miss on the active store is retried
        against the inactive one so records written during an outage stay
        readable after promotion.
        """
        result = await self.execute_with_fallback(operation, operation_name)
        if result is not None:
            return result

        inactive = self.inactive_store
        if inactive is None:
            return None
        try:
            return await operation(inactive)
        except Exception as e:
            logger.debug("inactive_store_read_failed", operation=operation_name, error=str(e))
            return None

    async def execute_everywhere(
        self,
        operation: StoreOperation[T],
        operation_name: str = "operation",
        combine: Optional[Callable[[T, T], T]] = None,
    ) -> T:
        """
        Run on the active store (with fallback), then best-effort on the inactive one.

        Args:
            combine: Merges (active_result, inactive_result). Without it, or
                when the inactive store fails, the active result is returned.
        """
        result = await self.execute_with_fallback(operation, operation_name)

        inactive = self.inactive_store
        if inactive is None:
            return result
        try:
            inactive_result = await operation(inactive)
        except Exception as e:
            logger.debug(
                "inactive_store_operation_failed",
                operation=operation_name,
                error=str(e),
            )
            return result
        return combine(result, inactive_result) if combine is not None else result

    async def get_storage_health(self) -> dict[str, Any]:
        """Report both stores' health without changing the strategy."""
        fallback_healthy = False
        try:
            fallback_healthy = bool(await self._fallback.health_check())
        except Exception as e:
            logger.warning("fallback_metadata_store_health_check_failed", error=str(e))

        return {
            "current_strategy": self._strategy.value,
            "primary_configured": self._primary is not None,
            "primary_healthy": await self._primary_health(),
            "fallback_healthy": fallback_healthy,
            "last_health_check": self._last_health_check,
        }

    def start_health_monitor(self) -> None:
        """Start a background task that re-checks health every interval."""
        if self._monitor_task is not None or self._primary is None:
            return
        self._monitor_task = asyncio.create_task(self._monitor())

    async def stop_health_monitor(self) -> None:
        if self._monitor_task is None:
            return
        self._monitor_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._monitor_task
        self._monitor_task = None

    async def _monitor(self) -> None:
        while True:
            await asyncio.sleep(self._health_check_interval)
            try:
                await self._evaluate()
            except Exception as e:
                logger.error("storage_health_monitor_error", error=str(e))
