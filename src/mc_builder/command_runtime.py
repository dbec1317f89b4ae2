"""String command boundary between the decision layer and the building manager."""

from __future__ import annotations

import json
import logging
import shlex
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from mc_builder.building.manager import BuildingManager
from mc_builder.geometry import BlockPos
from mc_builder.models import CommandResult, CommandStatus


class CommandJobStatus(str, Enum):
    """Lifecycle states for agent commands."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class CommandJob:
    """One agent command and the text it produced."""

    id: str
    command: str
    submitted_at: datetime
    status: CommandJobStatus
    stdout: str | None = None
    error: str | None = None


class CommandHistoryStore(Protocol):
    """Persistence contract for storing command history."""

    def append(self, job: CommandJob) -> None:
        """Persist a finished job record."""

    def list_recent(self, limit: int) -> list[CommandJob]:
        """Return up to ``limit`` newest jobs."""


class InMemoryHistoryStore:
    """Bounded in-memory history store."""

    def __init__(self, max_jobs: int = 1_000) -> None:
        self._jobs: deque[CommandJob] = deque(maxlen=max_jobs)

    def append(self, job: CommandJob) -> None:
        self._jobs.appendleft(job)

    def list_recent(self, limit: int) -> list[CommandJob]:
        return list(self._jobs)[:limit]


class JsonlHistoryStore:
    """Simple JSONL-backed command history persistence."""

    def __init__(self, file_path: str | Path) -> None:
        self._path = Path(file_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, job: CommandJob) -> None:
        payload = asdict(job)
        payload["status"] = job.status.value
        payload["submitted_at"] = job.submitted_at.isoformat()
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload) + "\n")

    def list_recent(self, limit: int) -> list[CommandJob]:
        if not self._path.exists():
            return []

        jobs: list[CommandJob] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                payload = json.loads(line)
                jobs.append(
                    CommandJob(
                        id=payload["id"],
                        command=payload["command"],
                        submitted_at=datetime.fromisoformat(payload["submitted_at"]),
                        status=CommandJobStatus(payload["status"]),
                        stdout=payload.get("stdout"),
                        error=payload.get("error"),
                    )
                )

        jobs.reverse()
        return jobs[:limit]


class CommandUsageError(ValueError):
    """Raised when an agent command is unknown or misses its arguments."""


Handler = Callable[[list[str]], Awaitable[CommandResult]]


def parse_target(args: list[str]) -> tuple[str, BlockPos | None]:
    """Split ``<name> [x y z]``; structure names may contain spaces."""
    if len(args) >= 4:
        try:
            x, y, z = (int(value) for value in args[-3:])
        except ValueError:
            pass
        else:
            return " ".join(args[:-3]), BlockPos(x, y, z)
    return " ".join(args), None


class BuildCommandRuntime:
    """Executes agent command lines (``!build house``) and records each one as a job."""

    def __init__(
        self,
        manager: BuildingManager,
        *,
        history_store: CommandHistoryStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._manager = manager
        self._history_store = history_store or InMemoryHistoryStore()
        self._logger = logger or logging.getLogger("mc_builder.command_runtime")
        self._jobs: dict[str, CommandJob] = {}
        self._handlers: dict[str, Handler] = {
            "build": self._build,
            "build-survival": self._build_survival,
            "build-autonomous": self._build_autonomous,
            "preview-materials": self._preview_materials,
            "resume-build": self._resume_build,
            "get-build-state": self._build_state,
            "build-status": self._build_status,
            "cancel-build": self._cancel_build,
            "list-structures": self._list_structures,
            "describe-structure": self._describe_structure,
        }

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def execute(self, line: str) -> str:
        """Run one command line and return the text to show the agent."""
        job = CommandJob(
            id=uuid4().hex,
            command=line.strip(),
            submitted_at=datetime.now(timezone.utc),
            status=CommandJobStatus.QUEUED,
        )
        self._jobs[job.id] = job
        self._logger.info("command_submitted", extra={"job_id": job.id, "command": job.command})

        job.status = CommandJobStatus.RUNNING
        try:
            name, args = self._parse(job.command)
            result = await self._handlers[name](args)
        except CommandUsageError as exc:
            result = CommandResult(status=CommandStatus.error, message=str(exc))
        except Exception as exc:  # noqa: BLE001 - runtime should capture execution failures.
            self._logger.exception("command_failed", extra={"job_id": job.id, "command": job.command})
            result = CommandResult(status=CommandStatus.error, message=f"Command failed: {type(exc).__name__}: {exc}")

        job.stdout = result.message
        if result.status == CommandStatus.error:
            job.status = CommandJobStatus.FAILED
            job.error = result.message
        else:
            job.status = CommandJobStatus.SUCCEEDED
        self._logger.info("command_finished", extra={"job_id": job.id, "status": job.status.value})
        self._history_store.append(job)
        return result.message

    def get_job(self, job_id: str) -> CommandJob:
        """Return job state for the given id."""
        if job_id not in self._jobs:
            raise KeyError(f"Unknown command job id: {job_id}")
        return self._jobs[job_id]

    def list_recent_jobs(self, limit: int = 20) -> list[CommandJob]:
        """Return most recent in-memory jobs and persisted history entries."""
        in_memory = sorted(self._jobs.values(), key=lambda job: job.submitted_at, reverse=True)
        if len(in_memory) >= limit:
            return in_memory[:limit]

        persisted = self._history_store.list_recent(limit)
        merged: list[CommandJob] = []
        seen: set[str] = set()
        for job in [*in_memory, *persisted]:
            if job.id in seen:
                continue
            seen.add(job.id)
            merged.append(job)
            if len(merged) >= limit:
                break
        return merged

    def _parse(self, line: str) -> tuple[str, list[str]]:
        try:
            tokens = shlex.split(line)
        except ValueError as exc:
            raise CommandUsageError(f"Could not parse command: {exc}") from exc
        if not tokens:
            raise CommandUsageError("Empty command.")

        name = tokens[0].removeprefix("!").lower()
        if name not in self._handlers:
            raise CommandUsageError(f"Unknown command: {name}. Available: {', '.join(self.commands)}")
        return name, tokens[1:]

    @staticmethod
    def _require_name(command: str, args: list[str]) -> tuple[str, BlockPos | None]:
        name, origin = parse_target(args)
        if not name:
            raise CommandUsageError(f"Usage: !{command} <structure> [x y z]")
        return name, origin

    async def _build(self, args: list[str]) -> CommandResult:
        return await self._manager.build(*self._require_name("build", args))

    async def _build_survival(self, args: list[str]) -> CommandResult:
        return await self._manager.build_survival(*self._require_name("build-survival", args))

    async def _build_autonomous(self, args: list[str]) -> CommandResult:
        return await self._manager.build_autonomous(*self._require_name("build-autonomous", args))

    async def _preview_materials(self, args: list[str]) -> CommandResult:
        name, _ = self._require_name("preview-materials", args)
        return await self._manager.preview_materials(name)

    async def _resume_build(self, args: list[str]) -> CommandResult:
        return await self._manager.resume_build()

    async def _build_state(self, args: list[str]) -> CommandResult:
        return self._manager.build_state_info()

    async def _build_status(self, args: list[str]) -> CommandResult:
        return self._manager.build_status()

    async def _cancel_build(self, args: list[str]) -> CommandResult:
        return self._manager.cancel_build()

    async def _list_structures(self, args: list[str]) -> CommandResult:
        return self._manager.list_structures()

    async def _describe_structure(self, args: list[str]) -> CommandResult:
        name, _ = self._require_name("describe-structure", args)
        return self._manager.describe_structure(name)
