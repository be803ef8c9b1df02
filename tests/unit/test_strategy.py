"""
Unit tests for the storage strategy selector.

Uses the flaky local store fixture as the primary so failover can be driven
deterministically, and a fake clock to control health-check gating.
"""

import pytest
import pytest_asyncio

from memweave.models.schemas import ContentType, Memory, MemoryType
from memweave.storage.local_store import LocalMetadataStore
from memweave.storage.strategy import StorageStrategy, StorageStrategySelector


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_memory(content: str = "note") -> Memory:
    return Memory(type=MemoryType.SEMANTIC, content_type=ContentType.TEXT, content=content)


@pytest.fixture
def primary(flaky_primary):
    return flaky_primary


@pytest.fixture
def fallback(tmp_path) -> LocalMetadataStore:
    return LocalMetadataStore(tmp_path / "fallback")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def failover_selector(primary, fallback, clock) -> StorageStrategySelector:
    selector = StorageStrategySelector(
        primary=primary, fallback=fallback, health_check_interval=30.0, clock=clock
    )
    await selector.initialize()
    return selector


class TestInitialization:
    """Test the starting strategy."""

    @pytest.mark.asyncio
    async def test_healthy_primary_is_selected(self, failover_selector, primary):
        assert failover_selector.current_strategy == StorageStrategy.PRIMARY
        assert failover_selector.current_store is primary

    @pytest.mark.asyncio
    async def test_unhealthy_primary_starts_on_fallback(self, primary, fallback, clock):
        primary.healthy = False
        selector = StorageStrategySelector(primary=primary, fallback=fallback, clock=clock)

        assert await selector.initialize() == StorageStrategy.FALLBACK
        assert selector.current_store is fallback

    @pytest.mark.asyncio
    async def test_no_primary_is_fallback_only(self, fallback):
        selector = StorageStrategySelector(primary=None, fallback=fallback)
        await selector.initialize()

        assert selector.current_strategy == StorageStrategy.FALLBACK
        assert selector.inactive_store is None
        assert await selector.refresh_strategy() == StorageStrategy.FALLBACK


class TestExecuteWithFallback:
    """Test one-shot retry against the fallback."""

    @pytest.mark.asyncio
    async def test_primary_failure_retries_on_fallback(self, failover_selector, primary, fallback):
        """A failing primary write lands in the fallback and flips the strategy."""
        primary.healthy = False
        memory = make_memory()

        await failover_selector.execute_with_fallback(
            lambda store: store.put_memory(memory), operation_name="put_memory"
        )

        assert failover_selector.current_strategy == StorageStrategy.FALLBACK
        assert await fallback.get_memory(memory.memory_id, track_access=False) is not None

    @pytest.mark.asyncio
    async def test_fallback_error_propagates(self, fallback):
        selector = StorageStrategySelector(primary=None, fallback=fallback)
        await selector.initialize()

        async def boom(store):
            raise RuntimeError("disk full")

        with pytest.raises(RuntimeError, match="disk full"):
            await selector.execute_with_fallback(boom)

    @pytest.mark.asyncio
    async def test_fallback_error_after_primary_failure_propagates(self, failover_selector):
        """The retry happens exactly once; its error is not swallowed."""
        calls = []

        async def always_fails(store):
            calls.append(store.name)
            raise ValueError(f"{store.name} failed")

        with pytest.raises(ValueError, match="local failed"):
            await failover_selector.execute_with_fallback(always_fails)

        assert calls == ["flaky", "local"]


class TestHealthGating:
    """Test interval-gated re-checks and promotion."""

    @pytest.mark.asyncio
    async def test_recheck_waits_for_interval(self, failover_selector, primary, clock):
        checks = primary.health_checks

        clock.now = 10.0
        await failover_selector.ensure_healthy_strategy()
        assert primary.health_checks == checks

        clock.now = 31.0
        await failover_selector.ensure_healthy_strategy()
        assert primary.health_checks == checks + 1

    @pytest.mark.asyncio
    async def test_recovery_promotes_primary(self, failover_selector, primary, clock):
        primary.healthy = False
        await failover_selector.execute_with_fallback(
            lambda store: store.put_memory(make_memory())
        )
        assert failover_selector.current_strategy == StorageStrategy.FALLBACK

        primary.healthy = True
        clock.now = 100.0
        memory = make_memory("after recovery")
        await failover_selector.execute_with_fallback(lambda store: store.put_memory(memory))

        assert failover_selector.current_strategy == StorageStrategy.PRIMARY
        assert await primary.get_memory(memory.memory_id, track_access=False) is not None

    @pytest.mark.asyncio
    async def test_refresh_ignores_interval(self, failover_selector, primary):
        primary.healthy = False

        assert await failover_selector.refresh_strategy() == StorageStrategy.FALLBACK


class TestCrossStoreReads:
    """Test reads and deletes that span both stores."""

    @pytest.mark.asyncio
    async def test_read_falls_through_to_inactive_store(
        self, failover_selector, primary, fallback, clock
    ):
        """A record written during an outage is readable after promotion."""
        primary.healthy = False
        memory = make_memory("written during outage")
        await failover_selector.execute_with_fallback(lambda store: store.put_memory(memory))

        primary.healthy = True
        clock.now = 100.0
        found = await failover_selector.read_with_fallback(
            lambda store: store.get_memory(memory.memory_id, track_access=False)
        )

        assert failover_selector.current_strategy == StorageStrategy.PRIMARY
        assert found is not None
        assert found.memory_id == memory.memory_id

    @pytest.mark.asyncio
    async def test_execute_everywhere_hits_both(self, failover_selector, primary, fallback):
        memory = make_memory()
        await primary.put_memory(memory)
        await fallback.put_memory(memory)

        await failover_selector.execute_everywhere(
            lambda store: store.delete_memory(memory.memory_id)
        )

        assert await primary.get_memory(memory.memory_id) is None
        assert await fallback.get_memory(memory.memory_id) is None

    @pytest.mark.asyncio
    async def test_execute_everywhere_combines_results(self, failover_selector, fallback):
        """Test a delete that only succeeds on the inactive store still reports success."""
        memory = make_memory("written during an outage")
        await fallback.put_memory(memory)

        deleted = await failover_selector.execute_everywhere(
            lambda store: store.delete_memory(memory.memory_id),
            combine=lambda active, inactive: active or inactive,
        )

        assert deleted is True
        assert await fallback.get_memory(memory.memory_id) is None

    @pytest.mark.asyncio
    async def test_execute_everywhere_without_combine_returns_active(
        self, failover_selector, fallback
    ):
        memory = make_memory()
        await fallback.put_memory(memory)

        deleted = await failover_selector.execute_everywhere(
            lambda store: store.delete_memory(memory.memory_id)
        )

        assert deleted is False

    @pytest.mark.asyncio
    async def test_execute_everywhere_ignores_inactive_failure(
        self, failover_selector, primary, fallback, monkeypatch
    ):
        async def broken(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(fallback, "list_memories", broken)
        memory = make_memory()
        await primary.put_memory(memory)

        listed = await failover_selector.execute_everywhere(
            lambda store: store.list_memories(),
            combine=lambda active, inactive: active + inactive,
        )

        assert [m.memory_id for m in listed] == [memory.memory_id]


class TestStorageHealth:
    """Test health reporting."""

    @pytest.mark.asyncio
    async def test_report(self, failover_selector):
        health = await failover_selector.get_storage_health()

        assert health["current_strategy"] == "primary"
        assert health["primary_configured"] is True
        assert health["primary_healthy"] is True
        assert health["fallback_healthy"] is True
        assert health["last_health_check"] == 0.0

    @pytest.mark.asyncio
    async def test_monitor_lifecycle(self, failover_selector):
        failover_selector.start_health_monitor()
        await failover_selector.stop_health_monitor()
        await failover_selector.stop_health_monitor()
