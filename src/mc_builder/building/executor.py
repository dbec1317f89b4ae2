"""Layer-by-layer placement of a whole structure without persistence."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from mc_builder.building.placer import BlockPlacer, normalize_block_name
from mc_builder.errors import TooManyErrors
from mc_builder.geometry import BlockPos
from mc_builder.models import BuildOutcome, BuildResult
from mc_builder.schematics.loader import VoxelGrid
from mc_builder.schematics.registry import StructureDescriptor

SOFT_ERROR_CEILING = 50
HARD_ERROR_CEILING = 75
PROGRESS_BEFORE_FORGIVING = 5

logger = logging.getLogger("mc_builder.building.executor")


@dataclass(slots=True)
class PlacementTask:
    pos: BlockPos
    block: str
    properties: dict[str, str] = field(default_factory=dict)
    local_pos: BlockPos | None = None


def organize_by_layer(grid: VoxelGrid, origin: BlockPos, *, normalize: bool = False) -> dict[int, list[PlacementTask]]:
    """Non-air cells keyed by world Y, ascending, each layer in grid storage order."""
    layers: dict[int, list[PlacementTask]] = {}
    for local, block in grid:
        if block.is_air:
            continue
        world_pos = origin.offset(local.x, local.y, local.z)
        name = normalize_block_name(block.name) if normalize else block.name
        layers.setdefault(world_pos.y, []).append(
            PlacementTask(pos=world_pos, block=name, properties=dict(block.properties), local_pos=local)
        )
    return {y: layers[y] for y in sorted(layers)}


def success_rate(placed: int, errors: int) -> float:
    attempts = placed + errors
    if attempts == 0:
        return 1.0
    return placed / attempts


@dataclass(slots=True)
class BuildProgress:
    name: str
    placed: int
    total: int
    started_at: float

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 100
        return round(self.placed / self.total * 100)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def describe(self) -> str:
        return f"Building {self.name}: {self.placed}/{self.total} ({self.percentage}%) - {self.elapsed_seconds:.1f}s"


class BuildExecutor:
    """Places a structure in one pass. Used for creative builds."""

    def __init__(
        self,
        placer: BlockPlacer,
        *,
        block_place_delay_seconds: float = 0.8,
        layer_delay_seconds: float = 1.0,
        cooldown_seconds: float = 2.0,
    ) -> None:
        self._placer = placer
        self._block_place_delay_seconds = block_place_delay_seconds
        self._layer_delay_seconds = layer_delay_seconds
        self._cooldown_seconds = cooldown_seconds
        self._progress: BuildProgress | None = None
        self._cancel_requested = False

    @property
    def is_building(self) -> bool:
        return self._progress is not None

    def status(self) -> BuildProgress | None:
        return self._progress

    def cancel(self) -> str | None:
        """Request a stop between blocks; returns the name of the interrupted build."""
        if self._progress is None:
            return None
        self._cancel_requested = True
        return self._progress.name

    async def run(self, descriptor: StructureDescriptor, grid: VoxelGrid, origin: BlockPos) -> BuildResult:
        layers = organize_by_layer(grid, origin, normalize=True)
        total = sum(len(tasks) for tasks in layers.values())
        progress = BuildProgress(name=descriptor.name, placed=0, total=total, started_at=time.monotonic())
        self._progress = progress
        self._cancel_requested = False
        logger.info("build_started", extra={"schematic": descriptor.name, "count": total, "layers": len(layers)})

        placed = 0
        errors = 0
        placed_at_last_ceiling = 0
        try:
            last_layer = next(reversed(layers), None)
            for layer_y, tasks in layers.items():
                logger.info("layer_started", extra={"layer": layer_y, "count": len(tasks)})
                for task in tasks:
                    if self._cancel_requested:
                        logger.info("build_cancelled", extra={"schematic": descriptor.name, "count": placed})
                        message = f"Cancelled build: {descriptor.name}"
                        return self._result(progress, BuildOutcome.cancelled, message, placed, errors)

                    if await self._placer.place(task.block, task.pos, task.properties):
                        placed += 1
                    else:
                        errors += 1
                    progress.placed = placed
                    await asyncio.sleep(self._block_place_delay_seconds)

                    if errors > SOFT_ERROR_CEILING:
                        errors, placed_at_last_ceiling = await self._recover(errors, placed, placed_at_last_ceiling)
                        if errors > HARD_ERROR_CEILING:
                            raise TooManyErrors(f"{errors} placement errors")

                if layer_y != last_layer:
                    await asyncio.sleep(self._layer_delay_seconds)
        except TooManyErrors as exc:
            logger.warning("build_error_ceiling", extra={"schematic": descriptor.name, "error": str(exc)})
            result = self._result(
                progress,
                BuildOutcome.failed,
                "Pausing for error recovery. The build can be started again to continue.",
                placed,
                errors,
            )
            result.can_resume = True
            return result
        finally:
            self._progress = None
            self._cancel_requested = False

        result = self._result(progress, BuildOutcome.completed, "", placed, errors)
        result.message = (
            f"Build complete! {placed} blocks in {result.duration_seconds:.1f}s "
            f"({round((result.success_rate or 0) * 100)}%)"
        )
        logger.info("build_completed", extra={"schematic": descriptor.name, "count": placed, "errors": errors})
        return result

    async def _recover(self, errors: int, placed: int, placed_at_last_ceiling: int) -> tuple[int, int]:
        logger.warning("build_error_recovery", extra={"errors": errors})
        await asyncio.sleep(self._cooldown_seconds)
        if placed >= placed_at_last_ceiling + PROGRESS_BEFORE_FORGIVING:
            return errors // 2, placed
        return errors, placed_at_last_ceiling

    @staticmethod
    def _result(progress: BuildProgress, outcome: BuildOutcome, message: str, placed: int, errors: int) -> BuildResult:
        return BuildResult(
            outcome=outcome,
            message=message,
            blocks_placed=placed,
            errors=errors,
            duration_seconds=progress.elapsed_seconds,
            success_rate=success_rate(placed, errors),
        )
