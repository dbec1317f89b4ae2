"""Persisted progress of a survival build."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from mc_builder.geometry import BlockPos

STATE_FILE_NAME = "build_state.json"

logger = logging.getLogger("mc_builder.building.state")


class BuildStatus(str, Enum):
    BUILDING = "building"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class PauseReason(str, Enum):
    LOW_HEALTH = "low_health"
    DEATH = "death"
    COMBAT = "combat"
    TOO_MANY_ERRORS = "too_many_errors"
    MATERIAL_GATHERING_FAILED = "material_gathering_failed"
    WAITING_FOR_HELP = "waiting_for_help"
    ERROR = "error"


@dataclass(slots=True)
class BuildState:
    """Resumable snapshot of one survival build.

    ``placed_blocks`` holds ``"x,y,z"`` world keys and only ever grows;
    ``current_layer`` is the highest layer finished so far.
    """

    schematic_name: str
    position: BlockPos
    total_blocks: int
    current_layer: int | None = None
    placed_blocks: set[str] = field(default_factory=set)
    status: BuildStatus = BuildStatus.BUILDING
    pause_reason: PauseReason | None = None
    start_time: float = field(default_factory=time.time)
    last_update: float = field(default_factory=time.time)
    error_recovery: dict[str, Any] = field(default_factory=dict)

    @property
    def placed_count(self) -> int:
        return len(self.placed_blocks)

    @property
    def percentage(self) -> int:
        if self.total_blocks == 0:
            return 100
        return round(self.placed_count / self.total_blocks * 100)

    @property
    def is_paused(self) -> bool:
        return self.status == BuildStatus.PAUSED

    def mark_placed(self, pos: BlockPos) -> None:
        self.placed_blocks.add(pos.key())

    def is_placed(self, pos: BlockPos) -> bool:
        return pos.key() in self.placed_blocks

    def finish_layer(self, layer_y: int) -> None:
        self.current_layer = layer_y if self.current_layer is None else max(self.current_layer, layer_y)

    def gathering_retries(self) -> dict[str, int]:
        return self.error_recovery.setdefault("gathering_retries", {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "schematic_name": self.schematic_name,
            "position": self.position.as_dict(),
            "total_blocks": self.total_blocks,
            "current_layer": self.current_layer,
            "placed_blocks": sorted(self.placed_blocks),
            "status": self.status.value,
            "pause_reason": self.pause_reason.value if self.pause_reason else None,
            "start_time": self.start_time,
            "last_update": self.last_update,
            "error_recovery": self.error_recovery,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> BuildState:
        reason = payload.get("pause_reason")
        return cls(
            schematic_name=payload["schematic_name"],
            position=BlockPos.from_dict(payload["position"]),
            total_blocks=int(payload.get("total_blocks", 0)),
            current_layer=payload.get("current_layer"),
            placed_blocks=set(payload.get("placed_blocks", [])),
            status=BuildStatus(payload.get("status", BuildStatus.PAUSED.value)),
            pause_reason=PauseReason(reason) if reason else None,
            start_time=float(payload.get("start_time", time.time())),
            last_update=float(payload.get("last_update", time.time())),
            error_recovery=dict(payload.get("error_recovery") or {}),
        )


class BuildStateStore:
    """One JSON snapshot per agent at ``<state_dir>/<agent>/build_state.json``."""

    def __init__(self, state_dir: str | Path, agent_name: str) -> None:
        self._path = Path(state_dir) / agent_name / STATE_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def save(self, state: BuildState) -> None:
        state.last_update = time.time()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        tmp_path.replace(self._path)
        logger.debug(
            "build_state_saved",
            extra={"path": str(self._path), "count": state.placed_count, "total": state.total_blocks},
        )

    def load(self) -> BuildState | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            return BuildState.from_dict(payload)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("build_state_unreadable", extra={"path": str(self._path), "error": str(exc)})
            return None

    def delete(self) -> None:
        self._path.unlink(missing_ok=True)
        logger.info("build_state_deleted", extra={"path": str(self._path)})
