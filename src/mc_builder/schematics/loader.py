"""Reading Sponge schematic files into voxel grids."""

from __future__ import annotations

import gzip
import io
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import NamedTuple

import nbtlib

from mc_builder.errors import FormatError
from mc_builder.geometry import BlockPos
from mc_builder.schematics.blockstate import AIR, BlockState, parse_block_state
from mc_builder.schematics.nbt import read_root

GZIP_MAGIC = b"\x1f\x8b"

logger = logging.getLogger("mc_builder.schematics.loader")


class GridSize(NamedTuple):
    x: int
    y: int
    z: int


class VoxelGrid:
    """Immutable parsed structure.

    Iterating yields ``(local BlockPos, BlockState)`` for every cell, y outermost,
    then z, then x. Cells beyond the stored data are air.
    """

    __slots__ = ("width", "height", "length", "_palette", "_data")

    def __init__(self, width: int, height: int, length: int, palette: Mapping[int, BlockState], data: Iterable[int]):
        if width < 0 or height < 0 or length < 0:
            raise FormatError(f"Negative schematic dimensions: {width}x{height}x{length}")
        self.width = width
        self.height = height
        self.length = length
        self._palette = dict(palette)
        self._data = tuple(data)

    @property
    def size(self) -> GridSize:
        return GridSize(self.width, self.height, self.length)

    @property
    def volume(self) -> int:
        return self.width * self.height * self.length

    def block_at(self, x: int, y: int, z: int) -> BlockState:
        index = y * self.width * self.length + z * self.width + x
        if index >= len(self._data):
            return AIR
        return self._palette.get(self._data[index], AIR)

    def __iter__(self) -> Iterator[tuple[BlockPos, BlockState]]:
        for y in range(self.height):
            for z in range(self.length):
                for x in range(self.width):
                    yield BlockPos(x, y, z), self.block_at(x, y, z)

    def __repr__(self) -> str:
        return f"VoxelGrid({self.width}x{self.height}x{self.length}, palette={len(self._palette)})"


def decode_varints(values: Iterable[int]) -> list[int]:
    """Decode Sponge ``BlockData``: unsigned LEB128 varints packed into a byte array."""
    decoded: list[int] = []
    current = 0
    shift = 0
    for raw in values:
        byte = int(raw) & 0xFF
        current |= (byte & 0x7F) << shift
        if byte & 0x80:
            shift += 7
            if shift > 28:
                raise FormatError("Block data varint is too long")
            continue
        decoded.append(current)
        current = 0
        shift = 0
    if shift:
        raise FormatError("Block data ends inside a varint")
    return decoded


def _unwrap_schematic(root: Mapping) -> Mapping:
    nested = root.get("Schematic")
    if isinstance(nested, Mapping):
        return nested
    return root


def _palette_from(raw_palette: Mapping) -> dict[int, BlockState]:
    return {int(index): parse_block_state(str(state)) for state, index in raw_palette.items()}


class SchematicLoader:
    """Loads ``.schem``/``.schematic`` files, optionally gzip-compressed."""

    def load(self, path: str | Path) -> VoxelGrid:
        target = Path(path)
        logger.info("schematic_loading", extra={"path": str(target)})
        raw = target.read_bytes()
        if raw[:2] == GZIP_MAGIC:
            try:
                raw = gzip.decompress(raw)
            except (OSError, EOFError) as exc:
                raise FormatError(f"Corrupt gzip payload in {target}: {exc}") from exc
        return self.parse(raw, source=str(target))

    def parse(self, raw: bytes, *, source: str = "<bytes>") -> VoxelGrid:
        try:
            return self._parse_structured(raw)
        except Exception as exc:  # noqa: BLE001 - any failure hands over to the manual reader.
            logger.info("schematic_structured_parse_failed", extra={"source": source, "error": repr(exc)})

        try:
            return self._parse_manual(raw)
        except FormatError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise FormatError(f"Unsupported schematic format in {source}: {exc}") from exc

    @staticmethod
    def _parse_structured(raw: bytes) -> VoxelGrid:
        document = nbtlib.File.from_fileobj(io.BytesIO(raw))
        root = _unwrap_schematic(document)
        return VoxelGrid(
            width=int(root["Width"]),
            height=int(root["Height"]),
            length=int(root["Length"]),
            palette=_palette_from(root["Palette"]),
            data=decode_varints(root["BlockData"]),
        )

    @staticmethod
    def _parse_manual(raw: bytes) -> VoxelGrid:
        _, document = read_root(raw)
        root = _unwrap_schematic(document)

        blocks = root.get("Blocks")
        if isinstance(blocks, Mapping):
            raw_palette = blocks.get("Palette")
            raw_data = blocks.get("Data")
        else:
            raw_palette = root.get("Palette")
            raw_data = root.get("BlockData")

        if not isinstance(raw_palette, Mapping) or raw_data is None:
            raise FormatError("Schematic has no block palette or block data")

        return VoxelGrid(
            width=int(root.get("Width", 0)),
            height=int(root.get("Height", 0)),
            length=int(root.get("Length", 0)),
            palette=_palette_from(raw_palette),
            data=decode_varints(raw_data),
        )
