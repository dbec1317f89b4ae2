"""Placing one block, in creative (``/setblock``) or survival (skill library) mode."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from mc_builder.adapters.game_command import GameCommand, GameCommandAdapter
from mc_builder.adapters.skills import SkillLibrary
from mc_builder.adapters.world import AgentWorld
from mc_builder.building.orientation import OrientationHandler
from mc_builder.errors import PlacementFailed
from mc_builder.geometry import BlockPos, Vec3
from mc_builder.schematics.blockstate import AIR_BLOCKS, base_name, format_block_state

REACH = 4.5
REPOSITION_TOLERANCE = 1.5

# Standing-spot search around the target: four cardinal, four diagonal.
CANDIDATE_DIRECTIONS = ((0, 2), (0, -2), (2, 0), (-2, 0), (2, 2), (-2, 2), (2, -2), (-2, -2))
CANDIDATE_RADII = (2, 3, 4)

# Blocks that only exist attached to something and are placed as their free-standing form.
PLACEABLE_FORMS = {
    "wall_torch": "torch",
    "soul_wall_torch": "soul_torch",
    "redstone_wall_torch": "redstone_torch",
}

logger = logging.getLogger("mc_builder.building.placer")


def normalize_block_name(block_name: str) -> str:
    name = base_name(block_name)
    return PLACEABLE_FORMS.get(name, name)


class PlacementStrategy(Protocol):
    async def place(self, block_name: str, pos: BlockPos, properties: dict[str, str]) -> bool:
        """Attempt to put ``block_name`` at ``pos``; ``True`` once the world shows it."""


@dataclass(slots=True)
class _Candidate:
    pos: BlockPos
    radius: int


class CreativePlacement:
    """Privileged placement through ``/setblock``, verified by reading the world back."""

    def __init__(
        self,
        world: AgentWorld,
        commands: GameCommandAdapter,
        *,
        settle_delay_seconds: float = 0.3,
        verify_delay_seconds: float = 0.1,
        verify_attempts: int = 3,
    ) -> None:
        self._world = world
        self._commands = commands
        self._settle_delay_seconds = settle_delay_seconds
        self._verify_delay_seconds = verify_delay_seconds
        self._verify_attempts = verify_attempts

    @staticmethod
    def setblock_command(block_name: str, pos: BlockPos, properties: dict[str, str] | None = None) -> str:
        return f"/setblock {pos.x} {pos.y} {pos.z} {format_block_state(block_name, properties)}"

    async def place(self, block_name: str, pos: BlockPos, properties: dict[str, str]) -> bool:
        command = self.setblock_command(block_name, pos, properties)
        logger.debug("creative_setblock", extra={"command": command})
        await asyncio.to_thread(self._commands.send, GameCommand(command=command))
        await asyncio.sleep(self._settle_delay_seconds)

        for _ in range(self._verify_attempts):
            if self._world.block_at(pos) == block_name:
                return True
            await asyncio.sleep(self._verify_delay_seconds)

        logger.warning("creative_verification_failed", extra={"block": block_name, "target": pos.key()})
        return False


class SurvivalPlacement:
    """Places owned blocks through the skill library, repositioning once when out of sight."""

    def __init__(
        self,
        world: AgentWorld,
        skills: SkillLibrary,
        *,
        reach: float = REACH,
        post_place_delay_seconds: float = 0.1,
        stabilize_delay_seconds: float = 0.3,
    ) -> None:
        self._world = world
        self._skills = skills
        self._reach = reach
        self._post_place_delay_seconds = post_place_delay_seconds
        self._stabilize_delay_seconds = stabilize_delay_seconds

    async def place(self, block_name: str, pos: BlockPos, properties: dict[str, str]) -> bool:
        if await self._attempt(block_name, pos):
            return True

        if self.has_line_of_sight(pos):
            return False

        logger.info("placement_repositioning", extra={"block": block_name, "target": pos.key()})
        if not await self.move_to_placement_position(pos):
            return False
        return await self._attempt(block_name, pos)

    async def _attempt(self, block_name: str, pos: BlockPos) -> bool:
        if not await self._skills.place_block(block_name, pos):
            return False
        await asyncio.sleep(self._post_place_delay_seconds)
        return self._world.block_at(pos) == block_name

    def has_line_of_sight(self, target: BlockPos) -> bool:
        """Eye-to-centre ray is within reach and hits nothing but the target cell."""
        start = self._world.eye_position()
        end = target.center()
        distance = start.distance_to(end)
        if distance > self._reach:
            return False

        hit = self._world.raycast(start, end.minus(start).normalized(), distance)
        if hit is None:
            return True
        return hit.distance_to(target) < 0.5

    def find_best_placement_position(self, target: BlockPos) -> BlockPos | None:
        candidates: list[_Candidate] = []
        for dx, dz in CANDIDATE_DIRECTIONS:
            for radius in CANDIDATE_RADII:
                spot = Vec3(target.x + dx * (radius / 2), target.y, target.z + dz * (radius / 2)).floored()
                if self._world.block_at(spot) not in AIR_BLOCKS:
                    continue
                if self._world.block_at(spot.offset(dy=1)) not in AIR_BLOCKS:
                    continue
                if spot.distance_to(target) <= self._reach:
                    candidates.append(_Candidate(spot, radius))

        if not candidates:
            return None
        candidates.sort(key=lambda candidate: candidate.radius)
        return candidates[0].pos

    async def move_to_placement_position(self, target: BlockPos) -> bool:
        best = self.find_best_placement_position(target)
        if best is None:
            logger.warning("no_placement_position", extra={"target": target.key()})
            return False

        if self._world.position().distance_to(best) < REPOSITION_TOLERANCE:
            return True

        try:
            moved = await self._skills.go_to(best, 1.0)
        except Exception as exc:  # noqa: BLE001
            logger.warning("placement_move_failed", extra={"target": best.key(), "error": str(exc)})
            return False
        if not moved:
            return False

        await asyncio.sleep(self._stabilize_delay_seconds)
        return True


class BlockPlacer:
    """Per-cell placement: idempotence check, orientation, then the mode's strategy."""

    def __init__(
        self,
        world: AgentWorld,
        orientation: OrientationHandler,
        *,
        creative: PlacementStrategy,
        survival: PlacementStrategy,
    ) -> None:
        self._world = world
        self._orientation = orientation
        self._creative = creative
        self._survival = survival

    @property
    def world(self) -> AgentWorld:
        return self._world

    def is_already_placed(self, pos: BlockPos, block_name: str) -> bool:
        return self._world.block_at(pos) == block_name

    def strategy(self) -> PlacementStrategy:
        if self._world.game_mode == "creative":
            return self._creative
        return self._survival

    async def place(self, block_name: str, pos: BlockPos, properties: dict[str, str] | None = None) -> bool:
        """Place one block; never raises, failures come back as ``False``."""
        name = base_name(block_name)
        properties = properties or {}

        if self.is_already_placed(pos, name):
            logger.debug("block_already_placed", extra={"block": name, "target": pos.key()})
            return True

        try:
            facing = properties.get("facing")
            if facing and self._orientation.needs_orientation(name):
                await self._orientation.move_and_rotate(pos, self._orientation.placement_facing(name, facing))

            if not await self.strategy().place(name, pos, properties):
                raise PlacementFailed(f"{name} at {pos.key()}")
        except PlacementFailed as exc:
            logger.info("block_placement_failed", extra={"error": str(exc)})
            return False
        except Exception as exc:  # noqa: BLE001
            logger.warning("block_placement_error", extra={"block": name, "target": pos.key(), "error": str(exc)})
            return False
        return True
