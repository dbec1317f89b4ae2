"""Survival builds: per-layer procurement, persisted progress, pause and resume."""

from __future__ import annotations

import asyncio
import logging
import time

from mc_builder.adapters.agent_channel import AgentChannel, LoggingAgentChannel
from mc_builder.adapters.skills import SkillLibrary
from mc_builder.adapters.world import AgentWorld
from mc_builder.building.executor import PlacementTask, organize_by_layer, success_rate
from mc_builder.building.materials import MaterialAnalysis, MaterialClassifier, analyze_materials, block_histogram, deficit
from mc_builder.building.placer import BlockPlacer
from mc_builder.building.procurement import MaterialProcurer
from mc_builder.building.state import BuildState, BuildStateStore, BuildStatus, PauseReason
from mc_builder.errors import BuildingError, UnknownStructureError
from mc_builder.geometry import BlockPos
from mc_builder.models import BuildOutcome, BuildResult
from mc_builder.schematics.loader import VoxelGrid
from mc_builder.schematics.registry import SchematicRegistry, StructureDescriptor, material_histogram
from mc_builder.telemetry import LoggingTelemetry, Telemetry

HEALTH_THRESHOLD = 6.0
MAX_LAYER_ERRORS = 30
SNAPSHOT_EVERY = 10

RESUME_HINT = "Use !resume-build to continue."

PAUSE_MESSAGES = {
    PauseReason.LOW_HEALTH: "Paused due to low health.",
    PauseReason.DEATH: "Paused because I died.",
    PauseReason.COMBAT: "Paused because I am under attack.",
    PauseReason.TOO_MANY_ERRORS: "Too many placement errors, build paused.",
}

Layers = dict[int, list[PlacementTask]]

logger = logging.getLogger("mc_builder.building.coordinator")


class SurvivalBuildCoordinator:
    """Owns the single :class:`BuildState` of an agent.

    World-event handlers call :meth:`pause`; the running loop notices the pause
    at its per-layer and post-procurement checkpoints and stops without
    touching the recorded reason. :meth:`cancel` drops the state; the loop
    notices between blocks and exits without saving.
    """

    def __init__(
        self,
        world: AgentWorld,
        placer: BlockPlacer,
        skills: SkillLibrary,
        store: BuildStateStore,
        *,
        classifier: MaterialClassifier | None = None,
        notifier: AgentChannel | None = None,
        telemetry: Telemetry | None = None,
        block_place_delay_seconds: float = 0.8,
        layer_delay_seconds: float = 1.0,
        health_threshold: float = HEALTH_THRESHOLD,
        max_layer_errors: int = MAX_LAYER_ERRORS,
        snapshot_every: int = SNAPSHOT_EVERY,
    ) -> None:
        self._world = world
        self._placer = placer
        self._skills = skills
        self._store = store
        self._classifier = classifier or MaterialClassifier()
        self._notifier = notifier or LoggingAgentChannel()
        self._telemetry = telemetry or LoggingTelemetry()
        self._block_place_delay_seconds = block_place_delay_seconds
        self._layer_delay_seconds = layer_delay_seconds
        self._health_threshold = health_threshold
        self._max_layer_errors = max_layer_errors
        self._snapshot_every = snapshot_every
        self._running = False
        self.state: BuildState | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def classifier(self) -> MaterialClassifier:
        return self._classifier

    def load_state(self) -> BuildState | None:
        """In-memory state, falling back to the persisted snapshot."""
        if self.state is None:
            self.state = self._store.load()
        return self.state

    def has_active_build(self) -> bool:
        state = self.load_state()
        return state is not None and state.status in (BuildStatus.BUILDING, BuildStatus.PAUSED)

    async def build(self, descriptor: StructureDescriptor, grid: VoxelGrid, origin: BlockPos) -> BuildResult:
        layers = organize_by_layer(grid, origin)
        state = BuildState(
            schematic_name=descriptor.name,
            position=origin,
            total_blocks=sum(len(tasks) for tasks in layers.values()),
        )
        self.state = state
        self._store.save(state)
        self._telemetry.emit(
            "build_started",
            {"schematic": state.schematic_name, "origin": origin.key(), "total": state.total_blocks, "layers": len(layers)},
        )
        return await self._run(state, layers)

    async def resume(self, registry: SchematicRegistry) -> BuildResult:
        state = self.load_state()
        if state is None:
            return BuildResult(outcome=BuildOutcome.failed, message="No build state to resume.")
        if state.status != BuildStatus.PAUSED:
            return BuildResult(
                outcome=BuildOutcome.rejected,
                message=f"Build {state.schematic_name} is not paused (status: {state.status.value}).",
            )

        try:
            descriptor = registry.require(state.schematic_name)
        except UnknownStructureError as exc:
            logger.error("resume_structure_missing", extra={"schematic": state.schematic_name})
            state.status = BuildStatus.ERROR
            state.error_recovery["last_error"] = str(exc)
            self._store.save(state)
            return BuildResult(
                outcome=BuildOutcome.failed,
                message=f"Cannot resume: schematic {state.schematic_name} no longer exists.",
            )

        try:
            grid = registry.load_data(descriptor)
        except BuildingError as exc:
            return BuildResult(outcome=BuildOutcome.failed, message=f"Cannot resume {state.schematic_name}: {exc}")

        state.status = BuildStatus.BUILDING
        state.pause_reason = None
        self._store.save(state)
        logger.info(
            "build_resumed",
            extra={"schematic": state.schematic_name, "count": state.placed_count, "layer": state.current_layer},
        )
        return await self._run(state, organize_by_layer(grid, state.position))

    def pause(self, reason: PauseReason, detail: str | None = None) -> bool:
        """Pause the running build and persist at once; returns ``False`` if nothing was building."""
        state = self.state
        if state is None or state.status != BuildStatus.BUILDING:
            return False

        state.status = BuildStatus.PAUSED
        state.pause_reason = reason
        if detail:
            state.error_recovery["last_error"] = detail
        self._store.save(state)
        self._telemetry.emit(
            "build_paused",
            {"schematic": state.schematic_name, "reason": reason.value, "placed": state.placed_count},
        )
        return True

    def cancel(self) -> str | None:
        state = self.load_state()
        self.state = None
        self._store.delete()
        if state is None:
            return None
        logger.info("build_cancelled", extra={"schematic": state.schematic_name})
        return state.schematic_name

    async def preview(self, grid: VoxelGrid) -> MaterialAnalysis:
        """Material split against inventory and nearby storage; changes nothing."""
        try:
            storage = await self._skills.scan_storage()
        except Exception as exc:  # noqa: BLE001
            logger.warning("storage_scan_failed", extra={"error": str(exc)})
            storage = {}
        return analyze_materials(material_histogram(grid), self._world.inventory_counts(), storage)

    async def _run(self, state: BuildState, layers: Layers) -> BuildResult:
        self._running = True
        placed = 0
        errors = 0
        procurer = MaterialProcurer(
            self._world,
            self._skills,
            classifier=self._classifier,
            retries=state.gathering_retries(),
            notifier=self._notifier,
        )
        try:
            pending = self._pending_layers(state, layers)
            build_materials = {task.block for _, tasks in pending for task in tasks}
            logger.info("build_loop_started", extra={"schematic": state.schematic_name, "layers": len(pending)})
            for index, (layer_y, tasks) in enumerate(pending):
                if self._stopped(state):
                    return self._stopped_result(state, placed, errors)

                unplaced = [task for task in tasks if not state.is_placed(task.pos)]
                missing = deficit(block_histogram(task.block for task in unplaced), self._world.inventory_counts())
                if missing:
                    procurement = await procurer.procure(missing, return_to=state.position, keep=build_materials)
                    if self._stopped(state):
                        return self._stopped_result(state, placed, errors)
                    if not procurement.success:
                        reason = (
                            PauseReason.WAITING_FOR_HELP if procurement.needs_help else PauseReason.MATERIAL_GATHERING_FAILED
                        )
                        self.pause(reason, procurement.message)
                        if procurement.needs_help:
                            message = f"Waiting for help: {procurement.material}. {procurement.message}. {RESUME_HINT}"
                        else:
                            message = f"Material gathering failed: {procurement.material}. {RESUME_HINT}"
                        result = self._paused_result(state, reason, message, placed, errors)
                        result.needs_help = procurement.needs_help
                        result.material = procurement.material
                        return result
                    self._save(state)

                if self._world.health < self._health_threshold:
                    return self._pause_with(state, PauseReason.LOW_HEALTH, placed, errors)

                layer_errors = 0
                for task in unplaced:
                    if self.state is not state:
                        return self._stopped_result(state, placed, errors)

                    if await self._placer.place(task.block, task.pos, task.properties):
                        placed += 1
                        state.mark_placed(task.pos)
                        state.error_recovery["consecutive_errors"] = 0
                        if placed % self._snapshot_every == 0:
                            self._save(state)
                    else:
                        errors += 1
                        layer_errors += 1
                        state.error_recovery["consecutive_errors"] = state.error_recovery.get("consecutive_errors", 0) + 1
                        state.error_recovery["last_error_position"] = task.pos.key()

                    await asyncio.sleep(self._block_place_delay_seconds)

                    if layer_errors > self._max_layer_errors:
                        self._save(state)
                        return self._pause_with(state, PauseReason.TOO_MANY_ERRORS, placed, errors)

                state.finish_layer(layer_y)
                self._save(state)
                self._telemetry.emit(
                    "layer_completed",
                    {"schematic": state.schematic_name, "layer": layer_y, "percentage": state.percentage},
                )
                if index < len(pending) - 1:
                    await asyncio.sleep(self._layer_delay_seconds)

            if self._stopped(state):
                return self._stopped_result(state, placed, errors)
            return self._complete(state, placed, errors)
        except Exception as exc:  # noqa: BLE001 - any failure becomes a resumable pause.
            logger.exception("build_loop_failed", extra={"schematic": state.schematic_name})
            if not self.pause(PauseReason.ERROR, str(exc)):
                return self._stopped_result(state, placed, errors)
            return self._paused_result(state, PauseReason.ERROR, f"Build error: {exc}. {RESUME_HINT}", placed, errors)
        finally:
            self._running = False

    @staticmethod
    def _pending_layers(state: BuildState, layers: Layers) -> list[tuple[int, list[PlacementTask]]]:
        """Layers from the first one that still has an unplaced cell."""
        ordered = list(layers.items())
        for index, (_, tasks) in enumerate(ordered):
            if any(not state.is_placed(task.pos) for task in tasks):
                return ordered[index:]
        return []

    def _stopped(self, state: BuildState) -> bool:
        return self.state is not state or state.status != BuildStatus.BUILDING

    def _stopped_result(self, state: BuildState, placed: int, errors: int) -> BuildResult:
        if self.state is not state:
            return BuildResult(
                outcome=BuildOutcome.cancelled,
                message=f"Cancelled build: {state.schematic_name}",
                blocks_placed=placed,
                errors=errors,
            )
        reason = state.pause_reason or PauseReason.ERROR
        logger.info("build_loop_interrupted", extra={"schematic": state.schematic_name, "reason": reason.value})
        message = f"{PAUSE_MESSAGES.get(reason, f'Build paused ({reason.value}).')} {RESUME_HINT}"
        return self._paused_result(state, reason, message, placed, errors)

    def _pause_with(self, state: BuildState, reason: PauseReason, placed: int, errors: int) -> BuildResult:
        if not self.pause(reason):
            return self._stopped_result(state, placed, errors)
        return self._paused_result(state, reason, f"{PAUSE_MESSAGES[reason]} {RESUME_HINT}", placed, errors)

    def _paused_result(
        self, state: BuildState, reason: PauseReason, message: str, placed: int, errors: int
    ) -> BuildResult:
        logger.warning("build_paused", extra={"schematic": state.schematic_name, "reason": reason.value})
        return BuildResult(
            outcome=BuildOutcome.paused,
            message=message,
            blocks_placed=placed,
            errors=errors,
            duration_seconds=time.time() - state.start_time,
            success_rate=success_rate(placed, errors),
            pause_reason=reason.value,
            can_resume=True,
        )

    def _complete(self, state: BuildState, placed: int, errors: int) -> BuildResult:
        state.status = BuildStatus.COMPLETED
        self._store.delete()
        self.state = None

        duration = time.time() - state.start_time
        rate = success_rate(placed, errors)
        self._telemetry.emit(
            "build_completed",
            {"schematic": state.schematic_name, "placed": placed, "errors": errors, "duration": round(duration, 1)},
        )
        return BuildResult(
            outcome=BuildOutcome.completed,
            message=f"Build complete! {placed} blocks in {duration:.1f}s ({round(rate * 100)}%)",
            blocks_placed=placed,
            errors=errors,
            duration_seconds=duration,
            success_rate=rate,
        )

    def _save(self, state: BuildState) -> None:
        if self.state is state:
            self._store.save(state)
