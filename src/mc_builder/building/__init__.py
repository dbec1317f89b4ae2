"""Placement, sequencing and survival procurement for schematic builds."""

from .coordinator import SurvivalBuildCoordinator
from .executor import BuildExecutor, BuildProgress, PlacementTask, organize_by_layer
from .locator import PlayerLocator
from .manager import BuildingManager
from .materials import MaterialAnalysis, MaterialCategory, MaterialClassifier, analyze_materials
from .orientation import OrientationHandler
from .placer import BlockPlacer, CreativePlacement, SurvivalPlacement, normalize_block_name
from .procurement import MaterialProcurer, ProcurementResult
from .state import BuildState, BuildStateStore, BuildStatus, PauseReason

__all__ = [
    "BlockPlacer",
    "BuildExecutor",
    "BuildProgress",
    "BuildState",
    "BuildStateStore",
    "BuildStatus",
    "BuildingManager",
    "CreativePlacement",
    "MaterialAnalysis",
    "MaterialCategory",
    "MaterialClassifier",
    "MaterialProcurer",
    "OrientationHandler",
    "PauseReason",
    "PlacementTask",
    "PlayerLocator",
    "ProcurementResult",
    "SurvivalBuildCoordinator",
    "SurvivalPlacement",
    "analyze_materials",
    "normalize_block_name",
    "organize_by_layer",
]
