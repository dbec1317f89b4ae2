"""Catalog of schematic files on disk with lazy parsing."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from mc_builder.errors import UnknownStructureError
from mc_builder.geometry import BlockPos
from mc_builder.schematics.blockstate import BlockState
from mc_builder.schematics.loader import GridSize, SchematicLoader, VoxelGrid

DEFAULT_CATEGORIES = ("houses", "utility", "decorative")
SCHEMATIC_SUFFIXES = (".schem", ".schematic")

logger = logging.getLogger("mc_builder.schematics.registry")


@dataclass(slots=True)
class StructureDescriptor:
    """Registry entry; filled in place the first time the schematic is loaded."""

    name: str
    display_name: str
    category: str
    path: Path
    file_size: int
    size: GridSize | None = None
    materials: dict[str, int] | None = None
    loaded: bool = False
    grid: VoxelGrid | None = None


def material_histogram(cells: Iterable[tuple[BlockPos, BlockState]]) -> dict[str, int]:
    """Count non-air base block names."""
    counts: Counter[str] = Counter(block.name for _, block in cells if not block.is_air)
    return dict(counts)


class SchematicRegistry:
    def __init__(
        self,
        schematics_path: str | Path,
        *,
        loader: SchematicLoader | None = None,
        categories: tuple[str, ...] = DEFAULT_CATEGORIES,
    ) -> None:
        self._root = Path(schematics_path)
        self._loader = loader or SchematicLoader()
        self._categories = categories
        self._schematics: dict[str, StructureDescriptor] = {}

    @property
    def root(self) -> Path:
        return self._root

    def scan(self) -> int:
        """Register every schematic under the category folders without parsing them."""
        registered = 0
        for category in self._categories:
            category_path = self._root / category
            if not category_path.is_dir():
                continue

            for file in sorted(category_path.iterdir()):
                if not file.is_file() or file.suffix.lower() not in SCHEMATIC_SUFFIXES:
                    continue
                self._schematics[file.stem.lower()] = StructureDescriptor(
                    name=file.stem,
                    display_name=file.stem.replace("_", " "),
                    category=category,
                    path=file,
                    file_size=file.stat().st_size,
                )
                registered += 1

        logger.info("schematic_registry_scanned", extra={"root": str(self._root), "count": registered})
        return registered

    def find(self, name: str) -> StructureDescriptor | None:
        """Exact key match first, then the first registered key overlapping the query.

        Spaces in the query match underscores in file names.
        """
        query = name.strip().lower().replace(" ", "_")
        if not query:
            return None
        if query in self._schematics:
            return self._schematics[query]

        for key, descriptor in self._schematics.items():
            if key in query or query in key:
                return descriptor
        return None

    def require(self, name: str) -> StructureDescriptor:
        descriptor = self.find(name)
        if descriptor is None:
            raise UnknownStructureError(name)
        return descriptor

    def list(self) -> list[str]:
        return list(self._schematics)

    def list_by_category(self) -> dict[str, list[StructureDescriptor]]:
        by_category: dict[str, list[StructureDescriptor]] = {}
        for descriptor in self._schematics.values():
            by_category.setdefault(descriptor.category, []).append(descriptor)
        return by_category

    def load_data(self, descriptor: StructureDescriptor) -> VoxelGrid:
        """Parse on first use and cache the grid, size and material histogram on the descriptor."""
        if descriptor.loaded and descriptor.grid is not None:
            return descriptor.grid

        grid = self._loader.load(descriptor.path)
        descriptor.size = grid.size
        descriptor.materials = material_histogram(grid)
        descriptor.grid = grid
        descriptor.loaded = True
        logger.info(
            "schematic_loaded",
            extra={"schematic": descriptor.name, "size": tuple(grid.size), "materials": len(descriptor.materials)},
        )
        return grid
