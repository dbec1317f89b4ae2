"""Agent-facing façade over the building system."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict

from mc_builder.adapters.agent_channel import AgentChannel, LoggingAgentChannel
from mc_builder.adapters.game_command import GameCommandAdapter
from mc_builder.adapters.skills import SkillLibrary
from mc_builder.adapters.world import AgentWorld, WorldEvent
from mc_builder.building.coordinator import SurvivalBuildCoordinator
from mc_builder.building.executor import BuildExecutor
from mc_builder.building.locator import PlayerLocator
from mc_builder.building.orientation import OrientationHandler
from mc_builder.building.placer import BlockPlacer, CreativePlacement, SurvivalPlacement
from mc_builder.building.state import BuildStateStore, PauseReason
from mc_builder.errors import BuildingError, PositionUnreachable, UnknownStructureError
from mc_builder.geometry import BlockPos
from mc_builder.models import BuildOutcome, BuildResult, CommandResult, CommandStatus
from mc_builder.schematics.loader import VoxelGrid
from mc_builder.schematics.registry import SchematicRegistry, StructureDescriptor
from mc_builder.telemetry import Telemetry

LOW_HEALTH = 6.0
COMBAT_HEALTH = 10.0
APPROACH_DISTANCE = 4.0
APPROACH_RANGE = 3.0

FOOD_KEYWORDS = ("bread", "apple", "meat", "steak", "porkchop", "chicken", "fish", "salmon", "carrot", "potato")

logger = logging.getLogger("mc_builder.building.manager")


def _error(message: str) -> CommandResult:
    return CommandResult(status=CommandStatus.error, message=message)


def _from_build(result: BuildResult) -> CommandResult:
    if result.outcome == BuildOutcome.completed:
        status = CommandStatus.ok
    elif result.outcome == BuildOutcome.paused:
        status = CommandStatus.paused
    else:
        status = CommandStatus.error
    return CommandResult(status=status, message=result.message, data=asdict(result))


class BuildingManager:
    """One registry for the process; one session's worth of components once attached."""

    def __init__(
        self,
        registry: SchematicRegistry,
        *,
        notifier: AgentChannel | None = None,
        telemetry: Telemetry | None = None,
    ) -> None:
        self.registry = registry
        self.autonomous_mode = False
        self._notifier = notifier or LoggingAgentChannel()
        self._telemetry = telemetry
        self._world: AgentWorld | None = None
        self.locator: PlayerLocator | None = None
        self.orientation: OrientationHandler | None = None
        self.placer: BlockPlacer | None = None
        self.executor: BuildExecutor | None = None
        self.coordinator: SurvivalBuildCoordinator | None = None
        self._approach_delay_seconds = 1.0
        self._busy = False

    @property
    def attached(self) -> bool:
        return self._world is not None

    def attach(
        self,
        world: AgentWorld,
        skills: SkillLibrary,
        commands: GameCommandAdapter,
        store: BuildStateStore,
        *,
        block_place_delay_seconds: float = 0.8,
        layer_delay_seconds: float = 1.0,
        settle_delay_seconds: float = 0.3,
        verify_delay_seconds: float = 0.1,
        cooldown_seconds: float = 2.0,
        approach_delay_seconds: float = 1.0,
    ) -> None:
        """Wire the per-session components and subscribe to world events."""
        self._world = world
        self._approach_delay_seconds = approach_delay_seconds
        self.locator = PlayerLocator(world, skills)
        self.orientation = OrientationHandler(world, skills, settle_delay_seconds=settle_delay_seconds)
        self.placer = BlockPlacer(
            world,
            self.orientation,
            creative=CreativePlacement(
                world,
                commands,
                settle_delay_seconds=settle_delay_seconds,
                verify_delay_seconds=verify_delay_seconds,
            ),
            survival=SurvivalPlacement(
                world,
                skills,
                post_place_delay_seconds=verify_delay_seconds,
                stabilize_delay_seconds=settle_delay_seconds,
            ),
        )
        self.executor = BuildExecutor(
            self.placer,
            block_place_delay_seconds=block_place_delay_seconds,
            layer_delay_seconds=layer_delay_seconds,
            cooldown_seconds=cooldown_seconds,
        )
        self.coordinator = SurvivalBuildCoordinator(
            world,
            self.placer,
            skills,
            store,
            notifier=self._notifier,
            telemetry=self._telemetry,
            block_place_delay_seconds=block_place_delay_seconds,
            layer_delay_seconds=layer_delay_seconds,
        )

        world.on(WorldEvent.HEALTH, self._on_health)
        world.on(WorldEvent.DEATH, self._on_death)
        world.on(WorldEvent.HURT, self._on_hurt)

        state = self.coordinator.load_state()
        if state is not None:
            logger.info(
                "build_state_restored",
                extra={"schematic": state.schematic_name, "status": state.status.value, "count": state.placed_count},
            )
        logger.info("building_manager_attached", extra={"agent": world.username})

    # World events

    def _on_health(self) -> None:
        if self._world is None or self.coordinator is None or self._world.health >= LOW_HEALTH:
            return
        if not self.coordinator.pause(PauseReason.LOW_HEALTH):
            return

        food = [item for item in self._world.inventory_counts() if any(word in item for word in FOOD_KEYWORDS)]
        if food:
            self._notifier.notify(
                f"Health is low ({self._world.health / 2:.1f} hearts). "
                f"Build paused. You have {len(food)} food items. Eat immediately, then use !resume-build."
            )
        else:
            self._notifier.notify(
                "URGENT: Health is very low (below 3 hearts) and NO food in inventory! "
                "Build has been paused. You MUST immediately collect or craft food before continuing. "
                "After eating, use !resume-build to continue the build."
            )

    def _on_death(self) -> None:
        if self.coordinator is None or not self.coordinator.pause(PauseReason.DEATH):
            return
        self._notifier.notify(
            "You died during the build! Build state has been saved. "
            "After respawning, make sure to: 1) Get food and tools, 2) Return to build location, "
            "3) Use !resume-build to continue where you left off."
        )

    def _on_hurt(self) -> None:
        if self._world is None or self.coordinator is None or self._world.health >= COMBAT_HEALTH:
            return
        if not self.coordinator.pause(PauseReason.COMBAT):
            return
        self._notifier.notify(
            "Under attack! Build has been paused for safety. Defend yourself or flee to a safe location. "
            "Once safe and healed, use !resume-build to continue building."
        )

    # Catalog

    def list_structures(self) -> CommandResult:
        by_category = self.registry.list_by_category()
        if not by_category:
            return CommandResult(status=CommandStatus.ok, message="No structures available.", data={"structures": []})

        lines = ["Available structures:"]
        for category, descriptors in by_category.items():
            lines.append(f"{category}: {', '.join(descriptor.name for descriptor in descriptors)}")
        return CommandResult(
            status=CommandStatus.ok,
            message="\n".join(lines),
            data={"structures": self.registry.list()},
        )

    def describe_structure(self, name: str) -> CommandResult:
        descriptor = self.registry.find(name)
        if descriptor is None:
            return _error(f'Schematic "{name}" not found.')
        try:
            self.registry.load_data(descriptor)
        except BuildingError as exc:
            return _error(f"Could not read {descriptor.name}: {exc}")

        lines = [
            descriptor.display_name,
            f"Category: {descriptor.category}",
            f"File size: {descriptor.file_size / 1024:.1f} KB",
        ]
        if descriptor.size:
            lines.append(f"Dimensions: {descriptor.size.x}x{descriptor.size.y}x{descriptor.size.z}")
        if descriptor.materials:
            top = sorted(descriptor.materials.items(), key=lambda item: item[1], reverse=True)[:5]
            lines.append("Materials: " + ", ".join(f"{count}x {item}" for item, count in top))
        return CommandResult(
            status=CommandStatus.ok,
            message="\n".join(lines),
            data={"name": descriptor.name, "materials": dict(descriptor.materials or {})},
        )

    # Builds

    async def build(self, name: str, origin: BlockPos | None = None) -> CommandResult:
        """Non-persistent build through the executor."""
        return await self._reserved_build(name, origin, survival=False)

    async def build_survival(self, name: str, origin: BlockPos | None = None) -> CommandResult:
        return await self._reserved_build(name, origin, survival=True)

    async def _reserved_build(self, name: str, origin: BlockPos | None, *, survival: bool) -> CommandResult:
        if not self.attached:
            return _error("Building system is not attached to a game session.")
        if self._busy or self.executor.is_building or self.coordinator.is_running:
            return _error("Already building. Use !cancel-build to stop.")
        if self.coordinator.has_active_build():
            return _error("Build already in progress. Use !resume-build or !cancel-build.")

        # held from here so a request arriving while this one walks to the player is refused
        self._busy = True
        try:
            prepared = await self._prepare(name, origin)
            if isinstance(prepared, CommandResult):
                return prepared
            descriptor, grid, target = prepared

            runner = self.coordinator.build if survival else self.executor.run
            result = await runner(descriptor, grid, target)
        finally:
            self._busy = False
        if result.success:
            result.message = f"Built {descriptor.display_name}! {result.message}"
        return _from_build(result)

    async def build_autonomous(self, name: str, origin: BlockPos | None = None) -> CommandResult:
        """Survival build during which the decision layer is told to stay out of the way."""
        self.autonomous_mode = True
        self._notifier.notify(
            f"AUTONOMOUS BUILD MODE ACTIVE: Building {name}. Bot will handle everything automatically. "
            "DO NOT send build commands. Only provide status updates when asked. "
            "The build will complete or pause automatically."
        )
        try:
            result = await self.build_survival(name, origin)
            self._notifier.notify(f"AUTONOMOUS BUILD FINISHED: {result.message}")
            return result
        finally:
            self.autonomous_mode = False

    async def preview_materials(self, name: str) -> CommandResult:
        if not self.attached:
            return _error("Building system is not attached to a game session.")
        descriptor = self.registry.find(name)
        if descriptor is None:
            return _error(f'Schematic "{name}" not found.')
        try:
            grid = self.registry.load_data(descriptor)
        except BuildingError as exc:
            return _error(f"Could not read {descriptor.name}: {exc}")

        analysis = await self.coordinator.preview(grid)
        lines = [f"Materials for {descriptor.display_name}:"]
        for item, count in analysis.required.items():
            missing = analysis.missing.get(item, 0)
            line = (
                f"{'MISSING' if missing else 'OK'} {count}x {item} "
                f"(inventory: {analysis.in_inventory.get(item, 0)}, storage: {analysis.in_storage.get(item, 0)}"
            )
            if missing:
                line += f", missing: {missing}"
            lines.append(line + ")")
        lines.append("All materials available!" if analysis.complete else "Missing materials must be gathered.")
        return CommandResult(status=CommandStatus.ok, message="\n".join(lines), data=asdict(analysis))

    async def resume_build(self) -> CommandResult:
        if not self.attached:
            return _error("Building system is not attached to a game session.")
        if self._busy or self.coordinator.is_running or self.executor.is_building:
            return _error("A build is already running.")
        if self.coordinator.load_state() is None:
            return _error("No saved build state found. Use !build-survival to start a new build.")
        self._busy = True
        try:
            return _from_build(await self.coordinator.resume(self.registry))
        finally:
            self._busy = False

    def build_state_info(self) -> CommandResult:
        if not self.attached:
            return _error("Building system is not attached to a game session.")
        state = self.coordinator.load_state()
        if state is None:
            return _error("No active build state. Use !build-survival to start a build.")

        lines = [
            "Build State:",
            f"Schematic: {state.schematic_name}",
            f"Status: {state.status.value.upper()}",
            f"Progress: {state.placed_count}/{state.total_blocks} blocks ({state.percentage}%)",
            f"Current Layer: {state.current_layer}",
            f"Elapsed Time: {time.time() - state.start_time:.1f}s",
        ]
        if state.pause_reason:
            lines.append(f"Pause Reason: {state.pause_reason.value}")
        if state.is_paused:
            lines.append("Use !resume-build to continue building")
        return CommandResult(status=CommandStatus.ok, message="\n".join(lines), data=state.to_dict())

    def build_status(self) -> CommandResult:
        if not self.attached:
            return _error("Building system is not attached to a game session.")
        progress = self.executor.status()
        if progress is not None:
            return CommandResult(status=CommandStatus.ok, message=progress.describe())

        state = self.coordinator.state
        if state is not None:
            message = (
                f"Survival build {state.schematic_name} ({state.status.value}): "
                f"{state.placed_count}/{state.total_blocks} ({state.percentage}%)"
            )
            return CommandResult(status=CommandStatus.ok, message=message)
        return CommandResult(status=CommandStatus.ok, message="No build in progress.")

    def cancel_build(self) -> CommandResult:
        if not self.attached:
            return _error("Building system is not attached to a game session.")
        cancelled = [name for name in (self.executor.cancel(), self.coordinator.cancel()) if name]
        if not cancelled:
            return CommandResult(status=CommandStatus.ok, message="No build in progress to cancel.")
        return CommandResult(status=CommandStatus.ok, message=f"Cancelled build: {', '.join(cancelled)}")

    # Targeting

    async def _prepare(
        self, name: str, origin: BlockPos | None
    ) -> tuple[StructureDescriptor, VoxelGrid, BlockPos] | CommandResult:
        try:
            descriptor = self.registry.require(name)
        except UnknownStructureError:
            return _error(f'Unknown structure "{name}". Use !list-structures to see available.')
        try:
            grid = self.registry.load_data(descriptor)
        except BuildingError as exc:
            return _error(f"Could not read {descriptor.name}: {exc}")

        if origin is None:
            located = await self._origin_near_player(descriptor)
            if isinstance(located, CommandResult):
                return located
            origin = located
        logger.info("build_origin_resolved", extra={"schematic": descriptor.name, "origin": origin.key()})
        return descriptor, grid, origin

    async def _origin_near_player(self, descriptor: StructureDescriptor) -> BlockPos | CommandResult:
        username = self.locator.find_nearest()
        if username is None:
            return _error("No player found nearby")

        player = self.locator.player(username)
        if player.position is None:
            return _error(f"Player {username} has no known position")
        if self._world.position().distance_to(player.position) > APPROACH_DISTANCE:
            try:
                await self.locator.go_to_player(username, APPROACH_RANGE)
            except PositionUnreachable:
                return _error(f"Could not reach player {username}")
            await asyncio.sleep(self._approach_delay_seconds)
            refreshed = self.locator.player(username)
            if refreshed is not None and refreshed.position is not None:
                player = refreshed

        return self.locator.calculate_build_position(player.position, player.yaw, descriptor.size)
