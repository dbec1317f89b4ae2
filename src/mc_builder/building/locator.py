"""Finding the reference player and deriving a build origin in front of them."""

from __future__ import annotations

import logging
import math

from mc_builder.adapters.skills import SkillLibrary
from mc_builder.adapters.world import AgentWorld, PlayerInfo
from mc_builder.errors import PositionUnreachable
from mc_builder.geometry import BlockPos, Vec3
from mc_builder.schematics.loader import GridSize

DEFAULT_FOOTPRINT = 10
MIN_CLEARANCE = 5

logger = logging.getLogger("mc_builder.building.locator")


class PlayerLocator:
    def __init__(self, world: AgentWorld, skills: SkillLibrary) -> None:
        self._world = world
        self._skills = skills

    def player(self, username: str) -> PlayerInfo | None:
        for info in self._world.players():
            if info.username == username:
                return info
        return None

    def find_nearest(self) -> str | None:
        """Username of the closest other player with a known position."""
        own_position = self._world.position()
        nearest: str | None = None
        nearest_distance = math.inf
        for info in self._world.players():
            if info.username == self._world.username or info.position is None:
                continue
            distance = own_position.distance_to(info.position)
            if distance < nearest_distance:
                nearest = info.username
                nearest_distance = distance

        if nearest is None:
            logger.warning("no_players_found")
        return nearest

    async def go_to_player(self, username: str, range_blocks: float = 3.0) -> None:
        info = self.player(username)
        if info is None or info.position is None:
            raise PositionUnreachable(f"Player {username} not found")

        if self._world.position().distance_to(info.position) <= range_blocks:
            return

        logger.info("moving_to_player", extra={"player": username})
        if not await self._skills.go_to_player(username, range_blocks):
            raise PositionUnreachable(f"Could not reach player {username}")

    @staticmethod
    def calculate_build_position(player_position: Vec3, player_yaw: float, size: GridSize | None) -> BlockPos:
        """Origin a few blocks ahead of the player, far enough that the structure clears them.

        ``player_yaw`` is in degrees. The result depends only on the arguments.
        """
        yaw = math.radians(player_yaw + 90)
        direction_x = math.cos(yaw)
        direction_z = math.sin(yaw)

        footprint = max(size.x, size.z) if size else DEFAULT_FOOTPRINT
        clearance = max(MIN_CLEARANCE, math.ceil(footprint / 2) + 2)

        return BlockPos(
            math.floor(player_position.x + direction_x * clearance),
            math.floor(player_position.y),
            math.floor(player_position.z + direction_z * clearance),
        )
