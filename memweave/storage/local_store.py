"""Local-disk metadata store.

Persists one JSON document per table under the storage directory:

    memory-metadata.json   memories keyed by "MEMORY#<id>|METADATA"
    sessions.json          sessions keyed by "SESSION#<id>|INFO"
    agents.json            agent profiles keyed by "AGENT#<id>|PROFILE"

Every mutation is a full read-modify-write of the table file. Files are
not locked, so only one process may use a directory at a time.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

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

T = TypeVar("T")

TABLE_FILES = {
    "memories": "memory-metadata.json",
    "sessions": "sessions.json",
    "agents": "agents.json",
}


def _record_key(key: tuple[str, str]) -> str:
    return "|".join(key)


class LocalMetadataStore:
    """
    JSON-file metadata store used as the fallback strategy.

    Args:
        storage_dir: Directory for the table files (created on demand)
    """

    name = "local"

    def __init__(self, storage_dir: Path | str = ".local-memory-db"):
        self._storage_dir = Path(storage_dir)
        self._lock = asyncio.Lock()

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    def _path(self, table: str) -> Path:
        return self._storage_dir / TABLE_FILES[table]

    def _read_sync(self, table: str) -> dict[str, Any]:
        path = self._path(table)
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write_sync(self, table: str, data: dict[str, Any]) -> None:
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(table)
        tmp_path = path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

    async def _read(self, table: str) -> dict[str, Any]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._read_sync, table)

    async def _mutate(self, table: str, mutation: Callable[[dict[str, Any]], T]) -> T:
        """Read the table, apply `mutation` in place, write it back."""
        async with self._lock:
            data = await self._read(table)
            result = mutation(data)
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, self._write_sync, table, data)
            return result

    # -------------------------------------------------------------------------
    # Memories
    # -------------------------------------------------------------------------

    async def put_memory(self, memory: Memory) -> None:
        record = memory.to_record()

        def _put(data: dict[str, Any]) -> None:
            data[_record_key(memory_key(memory.memory_id))] = record

        await self._mutate("memories", _put)
        logger.debug("local_memory_stored", memory_id=memory.memory_id)

    async def get_memory(self, memory_id: str, track_access: bool = True) -> Optional[Memory]:
        key = _record_key(memory_key(memory_id))

        if not track_access:
            async with self._lock:
                record = (await self._read("memories")).get(key)
            if record is None:
                return None
            memory = Memory.from_record(record)
            return None if memory.is_expired else memory

        def _touch(data: dict[str, Any]) -> Optional[dict[str, Any]]:
            record = data.get(key)
            if record is None:
                return None
            if Memory.from_record(record).is_expired:
                del data[key]
                return None
            record["access_count"] = record.get("access_count", 0) + 1
            record["last_accessed"] = utcnow().isoformat()
            return record

        record = await self._mutate("memories", _touch)
        return Memory.from_record(record) if record is not None else None

    async def update_memory(self, memory_id: str, updates: dict[str, Any]) -> Optional[Memory]:
        key = _record_key(memory_key(memory_id))

        def _update(data: dict[str, Any]) -> Optional[Memory]:
            record = data.get(key)
            if record is None:
                return None
            current = Memory.from_record(record)
            updated = Memory.model_validate(
                {**current.model_dump(), **updates, "updated_at": utcnow()}
            )
            data[key] = updated.to_record()
            return updated

        return await self._mutate("memories", _update)

    async def delete_memory(self, memory_id: str) -> bool:
        key = _record_key(memory_key(memory_id))
        return await self._mutate("memories", lambda data: data.pop(key, None) is not None)

    async def list_memories(self) -> list[Memory]:
        async with self._lock:
            data = await self._read("memories")
        memories = (Memory.from_record(record) for record in data.values())
        return [memory for memory in memories if not memory.is_expired]

    # -------------------------------------------------------------------------
    # Sessions & Agents
    # -------------------------------------------------------------------------

    async def put_session(self, session: Session) -> None:
        key = _record_key(session_key(session.session_id))
        record = session.to_record()
        await self._mutate("sessions", lambda data: data.__setitem__(key, record))

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            record = (await self._read("sessions")).get(_record_key(session_key(session_id)))
        return Session.from_record(record) if record else None

    async def record_session_memory(
        self,
        session_id: str,
        memory_id: str,
        agent_id: Optional[str] = None,
        project: Optional[str] = None,
        window: int = 10,
    ) -> Session:
        key = _record_key(session_key(session_id))

        def _record(data: dict[str, Any]) -> Session:
            record = data.get(key)
            session = (
                Session.from_record(record)
                if record
                else Session(session_id=session_id, agent_id=agent_id, project=project)
            )
            session.record_memory(memory_id, window)
            data[key] = session.to_record()
            return session

        return await self._mutate("sessions", _record)

    async def put_agent_profile(self, profile: AgentProfile) -> None:
        key = _record_key(agent_key(profile.agent_id))
        record = profile.to_record()
        await self._mutate("agents", lambda data: data.__setitem__(key, record))

    async def get_agent_profile(self, agent_id: str) -> Optional[AgentProfile]:
        async with self._lock:
            record = (await self._read("agents")).get(_record_key(agent_key(agent_id)))
        return AgentProfile.from_record(record) if record else None

    async def health_check(self) -> bool:
        try:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("local_storage_unwritable", path=str(self._storage_dir), error=str(e))
            return False
        return os.access(self._storage_dir, os.W_OK)
