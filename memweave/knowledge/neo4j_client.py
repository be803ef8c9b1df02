"""
Neo4j Client.

Owns the async driver for the memory graph. Reads and writes both run as
managed transactions behind the "neo4j" circuit breaker, and driver errors
surface as KnowledgeStore* exceptions.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import AuthError, Neo4jError, ServiceUnavailable

from memweave.config import settings
from memweave.core.circuit_breaker import get_circuit_breaker
from memweave.core.exceptions import (
    KnowledgeStoreConnectionError,
    KnowledgeStoreQueryError,
)

logger = structlog.get_logger(__name__)

_neo4j_breaker = get_circuit_breaker("neo4j", failure_threshold=5, recovery_timeout=60)

Records = list[dict[str, Any]]


# =============================================================================
# Schema
# =============================================================================

SCHEMA_STATEMENTS: tuple[str, ...] = (
    "CREATE CONSTRAINT memory_id IF NOT EXISTS FOR (m:Memory) REQUIRE m.memory_id IS UNIQUE",
    "CREATE INDEX memory_agent IF NOT EXISTS FOR (m:Memory) ON (m.agent_id)",
    "CREATE INDEX memory_project IF NOT EXISTS FOR (m:Memory) ON (m.project)",
    "CREATE INDEX memory_type IF NOT EXISTS FOR (m:Memory) ON (m.type)",
    "CREATE CONSTRAINT agent_id IF NOT EXISTS FOR (a:Agent) REQUIRE a.agent_id IS UNIQUE",
    "CREATE CONSTRAINT session_id IF NOT EXISTS FOR (s:Session) REQUIRE s.session_id IS UNIQUE",
    "CREATE CONSTRAINT tag_name IF NOT EXISTS FOR (t:Tag) REQUIRE t.name IS UNIQUE",
    "CREATE CONSTRAINT concept_name IF NOT EXISTS FOR (c:Concept) REQUIRE c.name IS UNIQUE",
    "CREATE INDEX connects_type IF NOT EXISTS FOR ()-[r:CONNECTS]-() ON (r.type)",
    "CREATE INDEX connects_id IF NOT EXISTS FOR ()-[r:CONNECTS]-() ON (r.connection_id)",
)

_CONNECT_FAILURES: tuple[tuple[type[Exception], str, str], ...] = (
    (AuthError, "neo4j_auth_failed", "Neo4j authentication failed"),
    (ServiceUnavailable, "neo4j_unavailable", "Neo4j service unavailable"),
    (Exception, "neo4j_connection_failed", "Failed to connect to Neo4j"),
)


class Neo4jClient:
    """
    Async Neo4j client.

    Usage:
        async with Neo4jClient() as client:
            records = await client.run_query("MATCH (m:Memory) RETURN m.memory_id AS id")
    """

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
        database: str | None = None,
    ) -> None:
        """
        Args:
            uri: Bolt URI. Defaults to settings.neo4j_uri.
            user: Username. Defaults to settings.neo4j_user.
            password: Password. Defaults to settings.neo4j_password.
            database: Target database. Defaults to settings.neo4j_database.
        """
        if password is None and settings.neo4j_password is not None:
            password = settings.neo4j_password.get_secret_value()
        self._uri = uri or settings.neo4j_uri
        self._auth = (user or settings.neo4j_user, password)
        self._database = database or settings.neo4j_database
        self._driver: AsyncDriver | None = None

    @property
    def driver(self) -> AsyncDriver:
        if self._driver is None:
            raise RuntimeError("Neo4j client not connected. Use 'async with' or call connect().")
        return self._driver

    async def connect(self, auto_init_schema: bool = True) -> None:
        """
        Open the driver and verify connectivity.

        Raises:
            KnowledgeStoreConnectionError: If the server rejects or cannot be reached.
        """
        if self._driver is not None:
            return

        driver = AsyncGraphDatabase.driver(self._uri, auth=self._auth)
        try:
            await driver.verify_connectivity()
        except Exception as e:
            await driver.close()
            event, message = next(
                (event, message)
                for error_type, event, message in _CONNECT_FAILURES
                if isinstance(e, error_type)
            )
            logger.error(event, uri=self._uri, error=str(e), error_type=type(e).__name__)
            raise KnowledgeStoreConnectionError(
                f"{message}: {e}",
                {"uri": self._uri, "original_error": str(e)},
            ) from e

        self._driver = driver
        logger.info("neo4j_connected", uri=self._uri, database=self._database)

        if auto_init_schema:
            await self.ensure_schema()

    async def ensure_schema(self) -> int:
        """Apply constraints and indexes; returns how many statements succeeded."""
        applied = 0
        async with self.driver.session(database=self._database) as session:
            for statement in SCHEMA_STATEMENTS:
                try:
                    await session.run(statement)
                    applied += 1
                except Neo4jError as e:
                    logger.debug("neo4j_schema_statement_skipped", statement=statement, reason=str(e))

        logger.info("neo4j_schema_ready", applied=applied, total=len(SCHEMA_STATEMENTS))
        return applied

    async def close(self) -> None:
        if self._driver is None:
            return
        await self._driver.close()
        self._driver = None
        logger.info("neo4j_disconnected")

    async def __aenter__(self) -> Neo4jClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def _execute(self, mode: str, query: str, parameters: dict[str, Any] | None) -> Records:
        async def work(tx: AsyncManagedTransaction) -> Records:
            result = await tx.run(query, parameters or {})
            return await result.data()

        async with _neo4j_breaker.guard():
            try:
                async with self.driver.session(database=self._database) as session:
                    runner: Callable[..., Awaitable[Records]] = (
                        session.execute_write if mode == "write" else session.execute_read
                    )
                    records = await runner(work)
            except Exception as e:
                logger.error(
                    "neo4j_query_failed",
                    mode=mode,
                    query=query[:100],
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise KnowledgeStoreQueryError(
                    f"Neo4j {mode} query failed: {e}",
                    {"query": query[:100], "original_error": str(e)},
                ) from e

        logger.debug("neo4j_query_executed", mode=mode, record_count=len(records))
        return records

    async def run_query(self, query: str, parameters: dict[str, Any] | None = None) -> Records:
        """
        Run a read transaction and return records as dictionaries.

        Raises:
            CircuitBreakerOpenError: If the circuit breaker is open.
            KnowledgeStoreQueryError: If the query fails.
        """
        return await self._execute("read", query, parameters)

    async def run_write_query(
        self, query: str, parameters: dict[str, Any] | None = None
    ) -> Records:
        """Run a write transaction; raises like run_query."""
        return await self._execute("write", query, parameters)
