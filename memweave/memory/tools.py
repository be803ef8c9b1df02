"""
Named memory operations.

Maps the operation names exposed to tool-invocation layers onto the
orchestrator. Arguments arrive as plain dictionaries and results leave as
JSON-compatible dictionaries; transport is the caller's concern.

Usage:
    tools = MemoryTools(orchestrator)
    result = await tools.dispatch("store-memory", {"content": "..."})
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ValidationError

from memweave.core.deadline import Deadline
from memweave.core.exceptions import ValidationFailureError
from memweave.memory.orchestrator import MemoryOrchestrator
from memweave.models.schemas import (
    AddConnectionRequest,
    ConnectionsByEntityRequest,
    ConsolidateMemoriesRequest,
    CreateObservationRequest,
    DeleteMemoryRequest,
    ListAgentsRequest,
    ListAgentsResult,
    ListProjectsRequest,
    ListProjectsResult,
    RetrieveConnectionsRequest,
    RetrieveMemoriesRequest,
    StatisticsRequest,
    StoreMemoryRequest,
)

logger = structlog.get_logger(__name__)

Handler = Callable[[Any, Optional[Deadline]], Awaitable[BaseModel]]


class MemoryTools:
    """Dispatches named operations to a MemoryOrchestrator."""

    def __init__(self, orchestrator: MemoryOrchestrator):
        self._orchestrator = orchestrator
        self._operations: dict[str, tuple[type[BaseModel], Handler]] = {
            "store-memory": (StoreMemoryRequest, self._store_memory),
            "retrieve-memories": (RetrieveMemoriesRequest, self._retrieve_memories),
            "add-connection": (AddConnectionRequest, self._add_connection),
            "create-observation": (CreateObservationRequest, self._create_observation),
            "consolidate-memories": (ConsolidateMemoriesRequest, self._consolidate_memories),
            "delete-memory": (DeleteMemoryRequest, self._delete_memory),
            "get-memory-statistics": (StatisticsRequest, self._get_statistics),
            "list-agents": (ListAgentsRequest, self._list_agents),
            "list-projects": (ListProjectsRequest, self._list_projects),
            "retrieve-connections": (RetrieveConnectionsRequest, self._retrieve_connections),
            "connections-by-entity": (ConnectionsByEntityRequest, self._connections_by_entity),
        }

    @property
    def operation_names(self) -> list[str]:
        return list(self._operations)

    def request_schema(self, name: str) -> dict[str, Any]:
        """JSON schema of an operation's arguments."""
        request_model, _ = self._lookup(name)
        return request_model.model_json_schema()

    def _lookup(self, name: str) -> tuple[type[BaseModel], Handler]:
        try:
            return self._operations[name]
        except KeyError:
            raise ValidationFailureError(
                f"Unknown operation: {name}",
                {"available": self.operation_names},
            ) from None

    async def dispatch(
        self,
        name: str,
        arguments: Optional[dict[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> dict[str, Any]:
        """
        Validate `arguments` and run the named operation.

        Raises:
            ValidationFailureError: Unknown operation or invalid arguments.
        """
        request_model, handler = self._lookup(name)
        try:
            request = request_model.model_validate(arguments or {})
        except ValidationError as e:
            raise ValidationFailureError(
                f"Invalid arguments for {name}",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        logger.debug("memory_operation_dispatched", operation=name)
        result = await handler(request, deadline)
        return result.model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _store_memory(self, request: StoreMemoryRequest, deadline: Optional[Deadline]):
        return await self._orchestrator.store_memory(request, deadline)

    async def _retrieve_memories(self, request: RetrieveMemoriesRequest, deadline: Optional[Deadline]):
        return await self._orchestrator.retrieve_memories(request, deadline)

    async def _add_connection(self, request: AddConnectionRequest, deadline: Optional[Deadline]):
        return await self._orchestrator.add_connection(request, deadline)

    async def _create_observation(self, request: CreateObservationRequest, deadline: Optional[Deadline]):
        return await self._orchestrator.create_observation(request, deadline)

    async def _consolidate_memories(
        self, request: ConsolidateMemoriesRequest, deadline: Optional[Deadline]
    ):
        return await self._orchestrator.consolidate_memories(request, deadline)

    async def _delete_memory(self, request: DeleteMemoryRequest, deadline: Optional[Deadline]):
        return await self._orchestrator.delete_memory(request.memory_id, deadline)

    async def _get_statistics(self, request: StatisticsRequest, deadline: Optional[Deadline]):
        return await self._orchestrator.get_statistics(request.agent_id, deadline)

    async def _list_agents(self, request: ListAgentsRequest, deadline: Optional[Deadline]):
        agents = await self._orchestrator.list_agents(request.project, deadline)
        return ListAgentsResult(agents=agents)

    async def _list_projects(self, request: ListProjectsRequest, deadline: Optional[Deadline]):
        projects = await self._orchestrator.list_projects(request.include_stats, deadline)
        return ListProjectsResult(projects=projects)

    async def _retrieve_connections(
        self, request: RetrieveConnectionsRequest, deadline: Optional[Deadline]
    ):
        return await self._orchestrator.retrieve_connections(
            request.memory_id, request.relationship_type, request.limit, deadline
        )

    async def _connections_by_entity(
        self, request: ConnectionsByEntityRequest, deadline: Optional[Deadline]
    ):
        return await self._orchestrator.connections_by_entity(
            request.entity_id, request.entity_type, request.limit, deadline
        )
