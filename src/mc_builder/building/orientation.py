"""Positioning and turning the bot so directional blocks land facing the right way."""

from __future__ import annotations

import asyncio
import logging
import math

from mc_builder.adapters.skills import SkillLibrary
from mc_builder.adapters.world import AgentWorld
from mc_builder.errors import PositionUnreachable
from mc_builder.geometry import BlockPos

ORIENTED_BLOCKS = (
    "stairs", "chest", "furnace", "blast_furnace", "smoker",
    "door", "bed", "piston", "sticky_piston", "dispenser",
    "dropper", "observer", "hopper", "barrel", "lectern",
    "loom", "stonecutter", "grindstone", "sign", "banner",
    "anvil", "bell", "campfire", "soul_campfire", "ladder",
    "wall_sign", "wall_banner", "wall_torch", "wall_head",
)

# Minecraft yaw: north = -Z, south = +Z, east = +X, west = -X.
FACING_YAW_DEGREES = {
    "north": 180.0,
    "south": 0.0,
    "east": -90.0,
    "west": 90.0,
}

FACING_VECTORS = {
    "north": (0, 0, -1),
    "south": (0, 0, 1),
    "east": (1, 0, 0),
    "west": (-1, 0, 0),
}

OPPOSITE_FACING = {"north": "south", "south": "north", "east": "west", "west": "east"}

IN_POSITION_DISTANCE = 1.5

logger = logging.getLogger("mc_builder.building.orientation")


class OrientationHandler:
    def __init__(self, world: AgentWorld, skills: SkillLibrary, *, settle_delay_seconds: float = 0.3) -> None:
        self._world = world
        self._skills = skills
        self._settle_delay_seconds = settle_delay_seconds

    @staticmethod
    def needs_orientation(block_name: str) -> bool:
        return any(kind in block_name for kind in ORIENTED_BLOCKS)

    @staticmethod
    def placement_facing(block_name: str, facing: str | None) -> str | None:
        """Facing the bot must look towards; beds are placed looking at their foot end."""
        if not facing:
            return None
        facing = facing.lower()
        if "bed" in block_name:
            return OPPOSITE_FACING.get(facing, facing)
        return facing

    @staticmethod
    def facing_to_yaw(facing: str) -> float:
        """Yaw in radians for a horizontal facing; unknown facings map to south."""
        return math.radians(FACING_YAW_DEGREES.get(facing.lower(), 0.0))

    @staticmethod
    def standing_position(block_pos: BlockPos, facing: str | None) -> BlockPos | None:
        """Cell on the opposite side of the direction the block will face."""
        if not facing:
            return None
        vector = FACING_VECTORS.get(facing.lower())
        if vector is None:
            return None
        dx, dy, dz = vector
        return block_pos.offset(-dx, -dy, -dz)

    async def rotate_to_facing(self, facing: str | None) -> None:
        if not facing:
            return
        yaw = self.facing_to_yaw(facing)
        try:
            await self._world.look(yaw, 0.0)
        except Exception as exc:  # noqa: BLE001 - a failed head turn never blocks placement.
            logger.warning("rotation_failed", extra={"facing": facing, "error": str(exc)})
            return
        await asyncio.sleep(self._settle_delay_seconds)

    async def go_to_standing_position(self, standing: BlockPos) -> None:
        try:
            moved = await self._skills.go_to(standing, 1.0)
        except Exception as exc:  # noqa: BLE001
            raise PositionUnreachable(f"Navigation to {standing.key()} failed: {exc}") from exc
        if not moved:
            raise PositionUnreachable(f"Could not reach {standing.key()}")

    async def move_and_rotate(self, block_pos: BlockPos, facing: str | None) -> bool:
        """Stand behind ``block_pos`` and face ``facing``.

        Returns ``False`` when the standing position could not be reached; the
        bot is still rotated so the caller can attempt the placement anyway.
        """
        standing = self.standing_position(block_pos, facing)
        if standing is None:
            return True

        distance = self._world.position().distance_to(standing.center())
        if distance <= IN_POSITION_DISTANCE:
            await self.rotate_to_facing(facing)
            return True

        logger.info("moving_to_placement_position", extra={"target": standing.key(), "facing": facing})
        try:
            await self.go_to_standing_position(standing)
        except PositionUnreachable as exc:
            logger.warning("placement_position_unreachable", extra={"error": str(exc)})
            await self.rotate_to_facing(facing)
            return False

        await self.rotate_to_facing(facing)
        return True
