"""
Metadata Store interface.

The metadata store is the authoritative record of every memory. Records are
keyed by composite (partition, sort) keys:

    ("MEMORY#<id>",  "METADATA")
    ("SESSION#<id>", "INFO")
    ("AGENT#<id>",   "PROFILE")

Two implementations exist (Redis and local JSON files); the storage
strategy selector decides which one serves each call.
"""

from typing import Any, Optional, Protocol

from memweave.models.schemas import AgentProfile, Memory, Session


class MetadataStore(Protocol):
    """Protocol for metadata store implementations."""

    name: str

    async def put_memory(self, memory: Memory) -> None: ...

    async def get_memory(self, memory_id: str, track_access: bool = True) -> Optional[Memory]: ...

    async def update_memory(self, memory_id: str, updates: dict[str, Any]) -> Optional[Memory]: ...

    async def delete_memory(self, memory_id: str) -> bool: ...

    async def list_memories(self) -> list[Memory]: ...

    async def put_session(self, session: Session) -> None: ...

    async def get_session(self, session_id: str) -> Optional[Session]: ...

    async def record_session_memory(
        self,
        session_id: str,
        memory_id: str,
        agent_id: Optional[str] = None,
        project: Optional[str] = None,
        window: int = 10,
    ) -> Session: ...

    async def put_agent_profile(self, profile: AgentProfile) -> None: ...

    async def get_agent_profile(self, agent_id: str) -> Optional[AgentProfile]: ...

    async def health_check(self) -> bool: ...
