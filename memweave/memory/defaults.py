"""
Default attribution for memories stored without an agent or project.

The resolver is an explicit object handed to the orchestrator. The git
resolver derives defaults from the working directory's repository and
caches them for a short TTL; call refresh() to drop the cache.
"""

from __future__ import annotations

import asyncio
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_BRANCHES = frozenset({"main", "master"})
GIT_TIMEOUT_SECONDS = 5.0

_SSH_REMOTE = re.compile(r"^[\w.-]+@[^:]+:(?:.+/)?([^/]+?)(?:\.git)?/?$")
_GENERIC_REMOTE = re.compile(r"/([^/]+?)(?:\.git)?/?$")


@dataclass(frozen=True)
class ResolvedDefaults:
    agent_id: str
    project: str


class DefaultResolver(Protocol):
    async def resolve(self) -> ResolvedDefaults: ...

    def refresh(self) -> None: ...


def sanitize_identifier(value: str) -> str:
    """Lowercase, non [a-z0-9-] to '-', collapse and trim dashes."""
    sanitized = re.sub(r"[^a-z0-9-]", "-", value.lower())
    sanitized = re.sub(r"-+", "-", sanitized)
    return sanitized.strip("-")


def project_from_remote(url: str) -> Optional[str]:
    """Repository name from an ssh or https remote URL."""
    url = url.strip()
    if not url:
        return None

    match = _SSH_REMOTE.match(url)
    if match:
        return match.group(1)

    if url.startswith(("http://", "https://", "ssh://", "git://")):
        parts = [p for p in urlparse(url).path.split("/") if p]
        if parts:
            return re.sub(r"\.git$", "", parts[-1]) or None

    match = _GENERIC_REMOTE.search(url)
    return match.group(1) if match else None


def agent_id_for(project: str, branch: Optional[str] = None) -> str:
    agent_id = sanitize_identifier(project)
    if branch and branch not in DEFAULT_BRANCHES:
        branch_part = sanitize_identifier(branch)
        if branch_part:
            agent_id = f"{agent_id}-{branch_part}"
    return agent_id


class StaticDefaultResolver:
    """Fixed defaults, for tests and deployments without a repository."""

    def __init__(self, agent_id: str = "default-agent", project: str = "common"):
        self._defaults = ResolvedDefaults(agent_id=agent_id, project=project)

    async def resolve(self) -> ResolvedDefaults:
        return self._defaults

    def refresh(self) -> None:
        pass


class GitDefaultResolver:
    """
    Defaults from the git repository containing `working_dir`.

    - project: repository name from the origin remote, else the repository
      root's basename
    - agent_id: sanitized project, suffixed with the branch unless it is
      main or master

    Outside a repository the agent id comes from the directory basename and
    the project is `default_project`.

    Args:
        working_dir: Directory to inspect (default: process cwd)
        default_project: Project used outside a repository
        ttl_seconds: How long a resolved value is reused
        clock: Monotonic time source
    """

    def __init__(
        self,
        working_dir: Optional[Path | str] = None,
        default_project: str = "common",
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._working_dir = Path(working_dir) if working_dir else Path(os.getcwd())
        self._default_project = default_project
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached: Optional[ResolvedDefaults] = None
        self._cached_at = 0.0

    def refresh(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    async def resolve(self) -> ResolvedDefaults:
        now = self._clock()
        if self._cached is not None and now - self._cached_at < self._ttl_seconds:
            return self._cached

        try:
            defaults = await self._detect()
        except Exception as e:
            logger.warning("git_context_detection_failed", error=str(e))
            defaults = self._outside_repository()

        self._cached = defaults
        self._cached_at = now
        logger.debug("defaults_resolved", agent_id=defaults.agent_id, project=defaults.project)
        return defaults

    async def _git(self, *args: str) -> Optional[str]:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(self._working_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), GIT_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        if process.returncode != 0:
            return None
        return stdout.decode("utf-8", errors="replace").strip() or None

    async def _detect(self) -> ResolvedDefaults:
        root = await self._git("rev-parse", "--show-toplevel")
        if root is None:
            return self._outside_repository()

        remote, branch = await asyncio.gather(
            self._git("remote", "get-url", "origin"),
            self._git("rev-parse", "--abbrev-ref", "HEAD"),
        )
        project = (remote and project_from_remote(remote)) or Path(root).name
        if branch == "HEAD":
            branch = None

        return ResolvedDefaults(agent_id=agent_id_for(project, branch), project=project)

    def _outside_repository(self) -> ResolvedDefaults:
        name = self._working_dir.name or "unknown-project"
        return ResolvedDefaults(
            agent_id=agent_id_for(name) or "unknown-project",
            project=self._default_project,
        )
