from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BuildOutcome(str, Enum):
    completed = "completed"
    paused = "paused"
    failed = "failed"
    rejected = "rejected"
    cancelled = "cancelled"


class CommandStatus(str, Enum):
    ok = "ok"
    paused = "paused"
    error = "error"


@dataclass(slots=True)
class BuildResult:
    outcome: BuildOutcome
    message: str
    blocks_placed: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    success_rate: float | None = None
    pause_reason: str | None = None
    can_resume: bool = False
    needs_help: bool = False
    material: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome == BuildOutcome.completed


@dataclass(slots=True)
class CommandResult:
    """Outcome of one agent-facing operation; ``str()`` is what the agent sees."""

    status: CommandStatus
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    @property
    def ok(self) -> bool:
        return self.status == CommandStatus.ok
