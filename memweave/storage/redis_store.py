"""Redis-backed metadata store.

Each record is a Redis hash at `<prefix>:<PK>:<SK>` whose fields are
JSON-encoded, so numeric fields such as access_count can be bumped with
HINCRBY. A set at `<prefix>:memories` indexes live memory ids.

Usage:
    store = RedisMetadataStore(redis_url="redis://localhost:6379")
    await store.connect()
    await store.put_memory(memory)
"""

import json
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from memweave.models.schemas import (
    AgentProfile,
    Memory,
    Session,
    agent_key,
    memory_key,
    session_key,
    utcnow,
)

logger = structlog.get_logger(__name__)

# Bumps access tracking only on an existing hash; returns nil otherwise.
TRACK_ACCESS_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    local count = redis.call('HINCRBY', KEYS[1], 'access_count', 1)
    redis.call('HSET', KEYS[1], 'last_accessed', ARGV[1])
    return count
end
return nil
"""


def _encode(record: dict[str, Any]) -> dict[str, str]:
    return {field: json.dumps(value) for field, value in record.items()}


def _decode(data: dict[str, str]) -> dict[str, Any]:
    return {field: json.loads(value) for field, value in data.items()}


class RedisMetadataStore:
    """
    Durable networked metadata store.

    Args:
        redis_url: Redis connection URL
        key_prefix: Prefix for Redis keys (default: "memweave")
    """

    name = "redis"

    def __init__(self, redis_url: str, key_prefix: str = "memweave"):
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._client: Optional[redis.Redis] = None
        self._connected = False

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._connected:
            return

        try:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self._client.ping()
            self._connected = True
            logger.info("redis_metadata_store_connected", url=self._redis_url)
        except Exception as e:
            logger.error("redis_metadata_store_connection_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("redis_metadata_store_disconnected")

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Metadata store not connected. Call connect() first.")
        return self._client

    def _make_key(self, key: tuple[str, str]) -> str:
        pk, sk = key
        return f"{self._key_prefix}:{pk}:{sk}"

    @property
    def _index_key(self) -> str:
        return f"{self._key_prefix}:memories"

    # -------------------------------------------------------------------------
    # Memories
    # -------------------------------------------------------------------------

    async def put_memory(self, memory: Memory) -> None:
        key = self._make_key(memory_key(memory.memory_id))
        pipe = self.client.pipeline(transaction=True)
        pipe.delete(key)
        pipe.hset(key, mapping=_encode(memory.to_record()))
        pipe.sadd(self._index_key, memory.memory_id)
        if memory.expires_at is not None:
            pipe.expireat(key, int(memory.expires_at.timestamp()))
        await pipe.execute()
        logger.debug("redis_memory_stored", memory_id=memory.memory_id)

    async def get_memory(self, memory_id: str, track_access: bool = True) -> Optional[Memory]:
        key = self._make_key(memory_key(memory_id))
        data = await self.client.hgetall(key)
        if not data:
            # Expired keys leave a dangling index entry
            await self.client.srem(self._index_key, memory_id)
            return None

        record = _decode(data)
        if track_access:
            now = utcnow().isoformat()
            access_count = await self.client.eval(TRACK_ACCESS_SCRIPT, 1, key, json.dumps(now))
            if access_count is None:
                # Expired or deleted since the read
                await self.client.srem(self._index_key, memory_id)
                return None
            record["access_count"] = int(access_count)
            record["last_accessed"] = now

        return Memory.from_record(record)

    async def update_memory(self, memory_id: str, updates: dict[str, Any]) -> Optional[Memory]:
        current = await self.get_memory(memory_id, track_access=False)
        if current is None:
            return None
        updated = Memory.model_validate({**current.model_dump(), **updates, "updated_at": utcnow()})
        await self.put_memory(updated)
        return updated

    async def delete_memory(self, memory_id: str) -> bool:
        pipe = self.client.pipeline(transaction=True)
        pipe.delete(self._make_key(memory_key(memory_id)))
        pipe.srem(self._index_key, memory_id)
        deleted, _ = await pipe.execute()
        return deleted > 0

    async def list_memories(self) -> list[Memory]:
        memory_ids = sorted(await self.client.smembers(self._index_key))
        if not memory_ids:
            return []

        pipe = self.client.pipeline(transaction=False)
        for memory_id in memory_ids:
            pipe.hgetall(self._make_key(memory_key(memory_id)))
        results = await pipe.execute()

        memories = []
        stale = []
        for memory_id, data in zip(memory_ids, results):
            if not data:
                stale.append(memory_id)
                continue
            memories.append(Memory.from_record(_decode(data)))

        if stale:
            await self.client.srem(self._index_key, *stale)
        return memories

    # -------------------------------------------------------------------------
    # Sessions & Agents
    # -------------------------------------------------------------------------

    async def put_session(self, session: Session) -> None:
        await self.client.hset(
            self._make_key(session_key(session.session_id)),
            mapping=_encode(session.to_record()),
        )

    async def get_session(self, session_id: str) -> Optional[Session]:
        data = await self.client.hgetall(self._make_key(session_key(session_id)))
        return Session.from_record(_decode(data)) if data else None

    async def record_session_memory(
        self,
        session_id: str,
        memory_id: str,
        agent_id: Optional[str] = None,
        project: Optional[str] = None,
        window: int = 10,
    ) -> Session:
        session = await self.get_session(session_id)
        if session is None:
            session = Session(session_id=session_id, agent_id=agent_id, project=project)
        session.record_memory(memory_id, window)
        await self.put_session(session)
        return session

    async def put_agent_profile(self, profile: AgentProfile) -> None:
        await self.client.hset(
            self._make_key(agent_key(profile.agent_id)),
            mapping=_encode(profile.to_record()),
        )

    async def get_agent_profile(self, agent_id: str) -> Optional[AgentProfile]:
        data = await self.client.hgetall(self._make_key(agent_key(agent_id)))
        return AgentProfile.from_record(_decode(data)) if data else None

    async def health_check(self) -> bool:
        try:
            if self._client is None:
                await self.connect()
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning("redis_health_check_failed", error=str(e))
            return False
