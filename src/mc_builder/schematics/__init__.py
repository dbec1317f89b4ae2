"""Structure file parsing and the schematic catalog."""

from .blockstate import BlockState, format_block_state, parse_block_state
from .loader import GridSize, SchematicLoader, VoxelGrid
from .registry import SchematicRegistry, StructureDescriptor, material_histogram

__all__ = [
    "BlockState",
    "GridSize",
    "SchematicLoader",
    "SchematicRegistry",
    "StructureDescriptor",
    "VoxelGrid",
    "format_block_state",
    "material_histogram",
    "parse_block_state",
]
