"""Read/act boundary over the live bot session (mineflayer-style world view)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from mc_builder.geometry import BlockPos, Vec3


class WorldEvent(str, Enum):
    """Session events the building system subscribes to."""

    HEALTH = "health"
    DEATH = "death"
    HURT = "hurt"


@dataclass(slots=True)
class PlayerInfo:
    username: str
    position: Vec3 | None
    yaw: float = 0.0


class AgentWorld(Protocol):
    """Everything the building system reads from, or does to, the bot's own session."""

    username: str
    game_mode: str
    health: float

    def position(self) -> Vec3:
        """Current feet position of the bot."""

    def eye_position(self) -> Vec3:
        """Position rays are cast from."""

    def players(self) -> list[PlayerInfo]:
        """All known players, including the bot itself."""

    def block_at(self, pos: BlockPos) -> str | None:
        """Base block name at ``pos`` or ``None`` when the chunk is not loaded."""

    def raycast(self, start: Vec3, direction: Vec3, max_distance: float) -> BlockPos | None:
        """First solid block hit along the ray, if any."""

    def inventory_counts(self) -> dict[str, int]:
        """Item name to total count across the bot inventory."""

    async def look(self, yaw: float, pitch: float) -> None:
        """Turn the bot's head (radians)."""

    def on(self, event: WorldEvent, callback: Callable[[], None]) -> None:
        """Register a synchronous callback for a session event."""
