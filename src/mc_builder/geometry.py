"""Small vector types shared by the building system."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Vec3:
    """A continuous world position (entity positions, eye positions, ray directions)."""

    x: float
    y: float
    z: float

    def offset(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> Vec3:
        return Vec3(self.x + dx, self.y + dy, self.z + dz)

    def minus(self, other: Vec3 | BlockPos) -> Vec3:
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scaled(self, factor: float) -> Vec3:
        return Vec3(self.x * factor, self.y * factor, self.z * factor)

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalized(self) -> Vec3:
        length = self.length()
        if length == 0:
            return Vec3(0.0, 0.0, 0.0)
        return self.scaled(1.0 / length)

    def distance_to(self, other: Vec3 | BlockPos) -> float:
        return math.dist((self.x, self.y, self.z), (other.x, other.y, other.z))

    def floored(self) -> BlockPos:
        return BlockPos(math.floor(self.x), math.floor(self.y), math.floor(self.z))


@dataclass(frozen=True, slots=True)
class BlockPos:
    """An integer block coordinate; ``key()`` is the persisted ``"x,y,z"`` form."""

    x: int
    y: int
    z: int

    def offset(self, dx: int = 0, dy: int = 0, dz: int = 0) -> BlockPos:
        return BlockPos(self.x + dx, self.y + dy, self.z + dz)

    def center(self) -> Vec3:
        return Vec3(self.x + 0.5, self.y + 0.5, self.z + 0.5)

    def distance_to(self, other: Vec3 | BlockPos) -> float:
        return math.dist((self.x, self.y, self.z), (other.x, other.y, other.z))

    def key(self) -> str:
        return f"{self.x},{self.y},{self.z}"

    def as_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @classmethod
    def from_key(cls, key: str) -> BlockPos:
        x, y, z = (int(part) for part in key.split(","))
        return cls(x, y, z)

    @classmethod
    def from_dict(cls, payload: dict) -> BlockPos:
        return cls(int(payload["x"]), int(payload["y"]), int(payload["z"]))
