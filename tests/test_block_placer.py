from __future__ import annotations

import asyncio
import math

import pytest
from fakes import FakeSkills, FakeWorld, SetblockAdapter

from mc_builder.adapters import GameCommand
from mc_builder.building.orientation import OrientationHandler
from mc_builder.building.placer import BlockPlacer, CreativePlacement, SurvivalPlacement, normalize_block_name
from mc_builder.geometry import BlockPos, Vec3


class SpyStrategy:
    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, BlockPos, dict[str, str]]] = []

    async def place(self, block_name: str, pos: BlockPos, properties: dict[str, str]) -> bool:
        self.calls.append((block_name, pos, properties))
        if self.error is not None:
            raise self.error
        return self.result


class SilentAdapter:
    def __init__(self) -> None:
        self.commands: list[str] = []

    def send(self, payload: GameCommand) -> str:
        self.commands.append(payload.command)
        return ""


class ReachLimitedSkills(FakeSkills):
    async def place_block(self, block_name: str, pos: BlockPos) -> bool:
        if self.world.position().distance_to(pos.center()) > 4.5:
            self.calls.append(("place_block", block_name, pos))
            return False
        return await super().place_block(block_name, pos)


def _placer(world: FakeWorld, skills: FakeSkills, *, creative, survival) -> BlockPlacer:
    orientation = OrientationHandler(world, skills, settle_delay_seconds=0)
    return BlockPlacer(world, orientation, creative=creative, survival=survival)


def test_already_placed_block_skips_every_strategy() -> None:
    world = FakeWorld()
    world.blocks[BlockPos(1, 64, 1)] = "stone"
    creative, survival = SpyStrategy(), SpyStrategy()
    placer = _placer(world, FakeSkills(world), creative=creative, survival=survival)

    assert asyncio.run(placer.place("minecraft:stone", BlockPos(1, 64, 1)))
    assert creative.calls == []
    assert survival.calls == []


def test_strategy_follows_game_mode() -> None:
    world = FakeWorld(game_mode="creative")
    creative, survival = SpyStrategy(), SpyStrategy()
    placer = _placer(world, FakeSkills(world), creative=creative, survival=survival)

    asyncio.run(placer.place("stone", BlockPos(0, 64, 3)))
    world.game_mode = "survival"
    asyncio.run(placer.place("dirt", BlockPos(0, 64, 4)))

    assert [call[0] for call in creative.calls] == ["stone"]
    assert [call[0] for call in survival.calls] == ["dirt"]


def test_place_never_raises() -> None:
    world = FakeWorld()
    survival = SpyStrategy(error=RuntimeError("connection lost"))
    placer = _placer(world, FakeSkills(world), creative=SpyStrategy(), survival=survival)

    assert asyncio.run(placer.place("stone", BlockPos(2, 64, 2))) is False


def test_failed_strategy_returns_false() -> None:
    world = FakeWorld()
    placer = _placer(world, FakeSkills(world), creative=SpyStrategy(), survival=SpyStrategy(result=False))

    assert asyncio.run(placer.place("stone", BlockPos(2, 64, 2))) is False


def test_creative_setblock_with_orientation() -> None:
    world = FakeWorld(game_mode="creative")
    skills = FakeSkills(world)
    adapter = SetblockAdapter(world)
    creative = CreativePlacement(world, adapter, settle_delay_seconds=0, verify_delay_seconds=0)
    placer = _placer(world, skills, creative=creative, survival=SpyStrategy())

    placed = asyncio.run(placer.place("minecraft:oak_stairs", BlockPos(5, 64, 5), {"half": "bottom", "facing": "north"}))

    assert placed
    assert adapter.commands == ["/setblock 5 64 5 minecraft:oak_stairs[facing=north,half=bottom]"]
    assert skills.calls == [("go_to", BlockPos(5, 64, 6))]
    assert world.looks == [(pytest.approx(math.pi), 0.0)]
    assert world.blocks[BlockPos(5, 64, 5)] == "oak_stairs"


def test_bed_is_placed_looking_the_other_way() -> None:
    world = FakeWorld(game_mode="creative")
    skills = FakeSkills(world)
    creative = CreativePlacement(world, SetblockAdapter(world), settle_delay_seconds=0, verify_delay_seconds=0)
    placer = _placer(world, skills, creative=creative, survival=SpyStrategy())

    asyncio.run(placer.place("red_bed", BlockPos(5, 64, 5), {"facing": "north", "part": "foot"}))

    assert skills.calls == [("go_to", BlockPos(5, 64, 4))]
    assert world.looks == [(0.0, 0.0)]


def test_creative_placement_fails_when_world_does_not_change() -> None:
    world = FakeWorld(game_mode="creative")
    adapter = SilentAdapter()
    creative = CreativePlacement(world, adapter, settle_delay_seconds=0, verify_delay_seconds=0, verify_attempts=2)

    assert asyncio.run(creative.place("glass", BlockPos(0, 70, 0), {})) is False
    assert adapter.commands == ["/setblock 0 70 0 minecraft:glass"]


def test_survival_repositions_once_when_target_is_out_of_sight() -> None:
    world = FakeWorld(position=Vec3(0.5, 64.0, 0.5), inventory={"stone": 1})
    skills = ReachLimitedSkills(world)
    survival = SurvivalPlacement(world, skills, post_place_delay_seconds=0, stabilize_delay_seconds=0)

    assert asyncio.run(survival.place("stone", BlockPos(10, 64, 0), {}))
    assert [call[0] for call in skills.calls] == ["place_block", "go_to", "place_block"]
    assert skills.calls[1] == ("go_to", BlockPos(10, 64, 2))
    assert world.inventory["stone"] == 0


def test_survival_does_not_move_when_target_is_visible() -> None:
    world = FakeWorld(position=Vec3(0.5, 64.0, 0.5))
    skills = FakeSkills(world)
    survival = SurvivalPlacement(world, skills, post_place_delay_seconds=0, stabilize_delay_seconds=0)

    # no stone in the inventory, so the skill refuses
    assert asyncio.run(survival.place("stone", BlockPos(2, 64, 1), {})) is False
    assert skills.count("go_to") == 0


def test_best_placement_position_skips_occupied_spots() -> None:
    world = FakeWorld()
    target = BlockPos(10, 64, 0)
    world.blocks[BlockPos(10, 64, 2)] = "stone"
    survival = SurvivalPlacement(world, FakeSkills(world))

    assert survival.find_best_placement_position(target) == BlockPos(10, 64, -2)


def test_wall_torch_normalizes_to_torch() -> None:
    assert normalize_block_name("minecraft:wall_torch[facing=east]") == "torch"
    assert normalize_block_name("minecraft:oak_planks") == "oak_planks"
