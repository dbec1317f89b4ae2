from __future__ import annotations

import asyncio
import json
from pathlib import Path

from fakes import FakeSkills, FakeWorld, RecordingChannel, SetblockAdapter, sponge_v2, write_schematic

from mc_builder.building.coordinator import SurvivalBuildCoordinator
from mc_builder.building.orientation import OrientationHandler
from mc_builder.building.placer import BlockPlacer, CreativePlacement, SurvivalPlacement
from mc_builder.building.state import BuildState, BuildStateStore, BuildStatus, PauseReason
from mc_builder.geometry import BlockPos
from mc_builder.models import BuildOutcome
from mc_builder.schematics.registry import SchematicRegistry

ORIGIN = BlockPos(2, 64, 2)


class RecordingTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def emit(self, event_name: str, payload: dict) -> None:
        self.events.append((event_name, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class Harness:
    def __init__(self, tmp_path: Path, *, inventory=None, max_layer_errors: int = 30, **skill_options) -> None:
        self.world = FakeWorld(inventory=inventory)
        self.skills = FakeSkills(self.world, **skill_options)
        orientation = OrientationHandler(self.world, self.skills, settle_delay_seconds=0)
        placer = BlockPlacer(
            self.world,
            orientation,
            creative=CreativePlacement(self.world, SetblockAdapter(self.world), settle_delay_seconds=0),
            survival=SurvivalPlacement(self.world, self.skills, post_place_delay_seconds=0, stabilize_delay_seconds=0),
        )
        self.store = BuildStateStore(tmp_path / "state", "builder")
        self.channel = RecordingChannel()
        self.telemetry = RecordingTelemetry()
        self.coordinator = SurvivalBuildCoordinator(
            self.world,
            placer,
            self.skills,
            self.store,
            notifier=self.channel,
            telemetry=self.telemetry,
            block_place_delay_seconds=0,
            layer_delay_seconds=0,
            max_layer_errors=max_layer_errors,
        )
        self.registry = SchematicRegistry(tmp_path / "schematics")

    def add_schematic(self, name: str, payload: bytes):
        write_schematic(self.registry.root / "houses" / f"{name}.schem", payload)
        self.registry.scan()
        descriptor = self.registry.find(name)
        return descriptor, self.registry.load_data(descriptor)

    def build(self, descriptor, grid):
        return asyncio.run(self.coordinator.build(descriptor, grid, ORIGIN))

    def placements(self) -> list[BlockPos]:
        return [call[2] for call in self.skills.calls if call[0] == "place_block"]


def _hut() -> bytes:
    palette = {"minecraft:air": 0, "minecraft:stone": 1, "minecraft:oak_planks": 2}
    return sponge_v2(3, 2, 3, palette, [1] * 9 + [2] * 9)


def test_build_with_enough_materials_skips_procurement(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9, "oak_planks": 9})
    descriptor, grid = harness.add_schematic("hut", _hut())

    result = harness.build(descriptor, grid)

    assert result.outcome == BuildOutcome.completed
    assert result.blocks_placed == 18
    assert result.message.startswith("Build complete! 18 blocks in ")
    assert harness.skills.count("scan_storage") == 0
    assert harness.skills.count("collect") == 0
    assert harness.skills.count("craft") == 0
    assert harness.world.blocks[BlockPos(4, 65, 4)] == "oak_planks"
    assert not harness.store.exists()
    assert harness.coordinator.state is None
    assert harness.telemetry.names() == ["build_started", "layer_completed", "layer_completed", "build_completed"]


def test_layer_deficit_is_procured_before_placing(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"oak_planks": 9}, storage={"9,64,9": {"stone": 20}})
    descriptor, grid = harness.add_schematic("hut", _hut())

    result = harness.build(descriptor, grid)

    assert result.outcome == BuildOutcome.completed
    assert ("withdraw", "9,64,9", "stone", 9) in harness.skills.calls
    first_placement = next(i for i, call in enumerate(harness.skills.calls) if call[0] == "place_block")
    assert harness.skills.calls.index(("withdraw", "9,64,9", "stone", 9)) < first_placement


def test_low_health_at_layer_start_pauses_before_placing(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9, "oak_planks": 9})
    harness.world.health = 4.0
    descriptor, grid = harness.add_schematic("hut", _hut())

    result = harness.build(descriptor, grid)

    assert result.outcome == BuildOutcome.paused
    assert result.pause_reason == "low_health"
    assert result.can_resume
    assert result.message == "Paused due to low health. Use !resume-build to continue."
    assert harness.placements() == []
    saved = harness.store.load()
    assert saved.status == BuildStatus.PAUSED
    assert saved.pause_reason == PauseReason.LOW_HEALTH


def test_pause_mid_layer_then_resume_without_replacing(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9, "oak_planks": 9})
    descriptor, grid = harness.add_schematic("hut", _hut())

    def hurt_after_fourth(pos: BlockPos) -> None:
        if len(harness.placements()) == 4:
            harness.world.health = 4.0
            harness.coordinator.pause(PauseReason.LOW_HEALTH)

    harness.skills.after_place = hurt_after_fourth
    paused = harness.build(descriptor, grid)

    assert paused.outcome == BuildOutcome.paused
    assert paused.pause_reason == "low_health"
    saved = harness.store.load()
    assert saved.pause_reason == PauseReason.LOW_HEALTH
    assert saved.placed_count == 9
    assert saved.current_layer == 64
    first_run = harness.placements()

    harness.skills.after_place = None
    harness.world.health = 20.0
    harness.coordinator.state = None
    resumed = asyncio.run(harness.coordinator.resume(harness.registry))

    assert resumed.outcome == BuildOutcome.completed
    assert resumed.blocks_placed == 9
    second_run = harness.placements()[len(first_run):]
    assert not set(first_run) & set(second_run)
    assert {pos.y for pos in second_run} == {65}
    assert not harness.store.exists()


def test_external_pause_reason_is_kept(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9, "oak_planks": 9})
    descriptor, grid = harness.add_schematic("hut", _hut())
    harness.skills.after_place = lambda pos: harness.coordinator.pause(PauseReason.COMBAT)

    result = harness.build(descriptor, grid)

    assert result.pause_reason == "combat"
    assert result.message == "Paused because I am under attack. Use !resume-build to continue."
    assert harness.store.load().pause_reason == PauseReason.COMBAT
    assert harness.telemetry.names().count("build_paused") == 1


def test_persisted_snapshot_format(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9})
    descriptor, grid = harness.add_schematic("hut", _hut())
    harness.skills.after_place = lambda pos: harness.coordinator.pause(PauseReason.DEATH)

    harness.build(descriptor, grid)
    payload = json.loads(harness.store.path.read_text(encoding="utf-8"))

    assert payload["schematic_name"] == "hut"
    assert payload["position"] == {"x": 2, "y": 64, "z": 2}
    assert payload["total_blocks"] == 18
    assert payload["status"] == "paused"
    assert payload["pause_reason"] == "death"
    assert payload["placed_blocks"] == sorted(payload["placed_blocks"])
    assert len(payload["placed_blocks"]) == 9
    assert "2,64,2" in payload["placed_blocks"]
    assert harness.store.path == tmp_path / "state" / "builder" / "build_state.json"


def test_cancel_between_blocks_discards_state(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9, "oak_planks": 9})
    descriptor, grid = harness.add_schematic("hut", _hut())

    def cancel_after_second(pos: BlockPos) -> None:
        if len(harness.placements()) == 2:
            harness.coordinator.cancel()

    harness.skills.after_place = cancel_after_second
    result = harness.build(descriptor, grid)

    assert result.outcome == BuildOutcome.cancelled
    assert result.message == "Cancelled build: hut"
    assert len(harness.placements()) == 2
    assert not harness.store.exists()
    assert harness.coordinator.state is None
    assert not harness.coordinator.has_active_build()


def test_too_many_layer_errors_pauses(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 9, "oak_planks": 9}, max_layer_errors=3)
    descriptor, grid = harness.add_schematic("hut", _hut())
    harness.skills.failing = {ORIGIN.offset(pos.x, pos.y, pos.z) for pos, _ in grid}

    result = harness.build(descriptor, grid)

    assert result.outcome == BuildOutcome.paused
    assert result.pause_reason == "too_many_errors"
    assert result.errors == 4
    assert result.success_rate == 0.0
    saved = harness.store.load()
    assert saved.error_recovery["consecutive_errors"] == 4
    assert saved.error_recovery["last_error_position"] == "2,64,3"


def test_unobtainable_material_waits_for_help(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    palette = {"minecraft:air": 0, "minecraft:oak_stairs": 1}
    descriptor, grid = harness.add_schematic("steps", sponge_v2(2, 1, 1, palette, [1, 1]))

    result = harness.build(descriptor, grid)

    assert result.outcome == BuildOutcome.paused
    assert result.pause_reason == "waiting_for_help"
    assert result.needs_help
    assert result.material == "oak_stairs"
    assert len(harness.channel.messages) == 1
    saved = harness.store.load()
    assert saved.error_recovery["gathering_retries"] == {"oak_stairs": 3}

    # the player hands the stairs over and the build is resumed
    harness.world.inventory["oak_stairs"] = 2
    resumed = asyncio.run(harness.coordinator.resume(harness.registry))

    assert resumed.outcome == BuildOutcome.completed
    assert len(harness.channel.messages) == 1


def test_resume_rejections(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    assert asyncio.run(harness.coordinator.resume(harness.registry)).message == "No build state to resume."

    harness.store.save(BuildState(schematic_name="ghost", position=ORIGIN, total_blocks=4))
    running = asyncio.run(harness.coordinator.resume(harness.registry))
    assert running.outcome == BuildOutcome.rejected


def test_resume_of_vanished_structure_is_terminal(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    harness.store.save(
        BuildState(
            schematic_name="ghost",
            position=ORIGIN,
            total_blocks=4,
            status=BuildStatus.PAUSED,
            pause_reason=PauseReason.DEATH,
        )
    )

    result = asyncio.run(harness.coordinator.resume(harness.registry))

    assert result.outcome == BuildOutcome.failed
    assert not result.can_resume
    assert harness.store.load().status == BuildStatus.ERROR
    assert harness.store.load().error_recovery["last_error"] == "Unknown structure: ghost"
    assert not harness.coordinator.has_active_build()


def test_preview_counts_storage_without_changing_anything(tmp_path: Path) -> None:
    harness = Harness(tmp_path, inventory={"stone": 4}, storage={"0,64,5": {"stone": 3, "oak_planks": 9}})
    descriptor, grid = harness.add_schematic("hut", _hut())

    analysis = asyncio.run(harness.coordinator.preview(grid))

    assert analysis.in_inventory == {"stone": 4}
    assert analysis.in_storage == {"stone": 3, "oak_planks": 9}
    assert analysis.missing == {"stone": 2}
    assert harness.skills.count("withdraw") == 0
    assert harness.coordinator.state is None
