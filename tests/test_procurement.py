from __future__ import annotations

import asyncio

from fakes import FakeSkills, FakeWorld, RecordingChannel

from mc_builder.building.materials import MaterialClassifier
from mc_builder.building.procurement import MaterialProcurer, is_non_critical, should_keep
from mc_builder.geometry import BlockPos, Vec3


class HollowCraftSkills(FakeSkills):
    """Reports crafting as done without producing anything."""

    async def craft(self, material: str, count: int) -> bool:
        self.calls.append(("craft", material, count))
        return True


def _procurer(world: FakeWorld, skills: FakeSkills, retries: dict[str, int] | None = None):
    channel = RecordingChannel()
    procurer = MaterialProcurer(
        world,
        skills,
        classifier=MaterialClassifier(),
        retries=retries if retries is not None else {},
        notifier=channel,
    )
    return procurer, channel


def test_storage_covers_the_shortfall_without_gathering() -> None:
    world = FakeWorld(inventory={"oak_planks": 6})
    skills = FakeSkills(world, storage={"1,64,1": {"oak_planks": 4}})
    procurer, channel = _procurer(world, skills)

    result = asyncio.run(procurer.procure({"oak_planks": 4}))

    assert result.success
    assert world.inventory["oak_planks"] == 10
    assert ("withdraw", "1,64,1", "oak_planks", 4) in skills.calls
    assert skills.count("withdraw") == 1
    assert skills.count("collect") == 0
    assert skills.count("craft") == 0
    assert channel.messages == []


def test_withdraw_spans_containers_and_stops_when_enough() -> None:
    world = FakeWorld()
    storage = {"0,64,0": {"stone": 3}, "2,64,0": {"stone": 10}, "4,64,0": {"stone": 10}}
    skills = FakeSkills(world, storage=storage)
    procurer, _ = _procurer(world, skills)

    asyncio.run(procurer.procure({"stone": 8}))

    withdrawals = [call for call in skills.calls if call[0] == "withdraw"]
    assert withdrawals == [("withdraw", "0,64,0", "stone", 3), ("withdraw", "2,64,0", "stone", 5)]
    assert world.inventory["stone"] == 8


def test_declutter_keeps_tools_food_and_build_materials() -> None:
    world = FakeWorld(
        inventory={"dirt": 20, "iron_pickaxe": 1, "bread": 3, "cooked_beef": 2, "stone": 1, "barrel": 1}
    )
    skills = FakeSkills(world, collectable={"stone"})
    procurer, _ = _procurer(world, skills)

    asyncio.run(procurer.procure({"stone": 2, "chest": 1}))

    assert ("store", {"dirt": 20}) in skills.calls
    assert world.inventory["iron_pickaxe"] == 1
    assert world.inventory["barrel"] == 1


def test_substitute_and_skip() -> None:
    world = FakeWorld(inventory={"barrel": 2})
    skills = FakeSkills(world)
    procurer, channel = _procurer(world, skills)

    result = asyncio.run(procurer.procure({"chest": 2, "glass": 4}))

    assert result.success
    assert result.substituted == {"chest": "barrel"}
    assert result.skipped == ["glass"]
    assert skills.count("collect") == 0
    assert skills.count("craft") == 0
    assert channel.messages == []


def test_collects_base_material_then_returns_to_site() -> None:
    world = FakeWorld(position=Vec3(50.0, 64.0, 50.0))
    skills = FakeSkills(world, collectable={"cobblestone"})
    retries: dict[str, int] = {}
    procurer, _ = _procurer(world, skills, retries)

    result = asyncio.run(procurer.procure({"cobblestone": 12}, return_to=BlockPos(0, 64, 0)))

    assert result.success
    assert ("collect", "cobblestone", 12) in skills.calls
    assert skills.calls[-1] == ("go_to", BlockPos(0, 64, 0))
    assert retries == {"cobblestone": 0}


def test_stays_put_when_close_to_site() -> None:
    world = FakeWorld(position=Vec3(1.0, 64.0, 1.0))
    skills = FakeSkills(world, collectable={"dirt"})
    procurer, _ = _procurer(world, skills)

    asyncio.run(procurer.procure({"dirt": 1}, return_to=BlockPos(0, 64, 0)))

    assert skills.count("go_to") == 0


def test_repeated_failure_escalates_exactly_once() -> None:
    world = FakeWorld()
    skills = FakeSkills(world)
    retries: dict[str, int] = {}
    procurer, channel = _procurer(world, skills, retries)

    result = asyncio.run(procurer.procure({"oak_stairs": 2}))

    assert not result.success
    assert result.needs_help
    assert result.material == "oak_stairs"
    assert result.attempts == 3
    assert skills.count("craft") == 3
    assert skills.count("collect") == 0
    assert retries == {"oak_stairs": 3}
    assert len(channel.messages) == 1
    assert "Cannot gather 2x oak_stairs" in channel.messages[0]
    assert channel.messages[0].endswith("They can use !resume-build when materials are ready.")


def test_difficult_material_escalates_without_attempts() -> None:
    world = FakeWorld()
    skills = FakeSkills(world)
    procurer, channel = _procurer(world, skills)

    result = asyncio.run(procurer.procure({"string": 5}))

    assert result.needs_help
    assert result.attempts == 0
    assert skills.count("collect") == 0
    assert skills.count("craft") == 0
    assert "Hunt spiders OR craft from wool" in channel.messages[0]
    assert result.message == "Need help gathering 5x string (Hunt spiders OR craft from wool)"


def test_other_material_success_does_not_reset_counter() -> None:
    world = FakeWorld()
    skills = FakeSkills(world, collectable={"dirt"})
    retries = {"stone": 2}
    procurer, channel = _procurer(world, skills, retries)

    result = asyncio.run(procurer.procure({"dirt": 1, "stone": 1}))

    assert result.material == "stone"
    assert result.needs_help
    assert retries == {"dirt": 0, "stone": 3}
    assert skills.count("collect") == 2
    assert len(channel.messages) == 1


def test_counter_already_at_limit_escalates_immediately() -> None:
    world = FakeWorld()
    skills = FakeSkills(world, collectable={"stone"})
    procurer, _ = _procurer(world, skills, {"stone": 3})

    result = asyncio.run(procurer.procure({"stone": 1}))

    assert result.needs_help
    assert skills.count("collect") == 0


def test_verification_shortfall_is_not_a_help_request() -> None:
    world = FakeWorld()
    skills = HollowCraftSkills(world)
    procurer, channel = _procurer(world, skills)

    result = asyncio.run(procurer.procure({"oak_stairs": 2}))

    assert not result.success
    assert not result.needs_help
    assert result.material == "oak_stairs"
    assert result.message == "Still missing 2x oak_stairs after gathering"
    assert channel.messages == []


def test_keep_and_critical_tables() -> None:
    assert should_keep("diamond_sword")
    assert should_keep("cooked_chicken")
    assert should_keep("bread")
    assert not should_keep("cobblestone")
    assert is_non_critical("oak_door")
    assert not is_non_critical("stone")


def test_non_critical_matches_whole_names() -> None:
    assert is_non_critical("red_bed")
    assert is_non_critical("glass")
    assert not is_non_critical("bedrock")
    assert not is_non_critical("red_stained_glass")
    assert not is_non_critical("oak_trapdoor")
    assert not is_non_critical("trapped_chest")
