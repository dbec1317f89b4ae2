"""Contract for the movement, gathering, crafting and storage skill library."""

from __future__ import annotations

from typing import Protocol

from mc_builder.geometry import BlockPos, Vec3

# Container location key ("x,y,z") -> item name -> count.
StorageMap = dict[str, dict[str, int]]


class SkillLibrary(Protocol):
    """Low-level skills the building system delegates to."""

    async def go_to(self, target: Vec3 | BlockPos, min_distance: float = 1.0) -> bool:
        """Path-find to within ``min_distance`` of ``target``."""

    async def go_to_player(self, username: str, min_distance: float = 3.0) -> bool:
        """Path-find to a player."""

    async def place_block(self, block_name: str, pos: BlockPos) -> bool:
        """Place a held block at ``pos`` against an adjacent supporting block."""

    async def collect(self, material: str, count: int) -> bool:
        """Mine or pick up ``count`` of a material from the world."""

    async def craft(self, material: str, count: int) -> bool:
        """Craft a material, resolving missing sub-ingredients recursively."""

    async def scan_storage(self) -> StorageMap:
        """Contents of the storage containers near the bot."""

    async def withdraw(self, container: BlockPos, material: str, count: int) -> int:
        """Take up to ``count`` of ``material`` out of one container; returns the amount taken."""

    async def store(self, items: dict[str, int]) -> bool:
        """Deposit inventory items into the nearest container."""
