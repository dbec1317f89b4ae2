"""Exceptions raised by the building system."""


class BuildingError(Exception):
    """Base class for building-system failures."""


class FormatError(BuildingError):
    """Raised when a structure file cannot be parsed by any supported path."""


class PositionUnreachable(BuildingError):
    """Raised when navigation to a player or standing position fails."""


class UnknownStructureError(BuildingError, KeyError):
    """Raised when a structure name does not match any registered schematic."""

    def __str__(self) -> str:
        return f"Unknown structure: {self.args[0]}" if self.args else "Unknown structure"


class MaterialUnavailable(BuildingError):
    """Raised when a material could not be brought into the inventory."""

    def __init__(self, material: str, needed: int, *, needs_help: bool = False) -> None:
        super().__init__(f"Could not obtain {needed}x {material}")
        self.material = material
        self.needed = needed
        self.needs_help = needs_help


class PlacementFailed(BuildingError):
    """Raised when a single block could not be placed."""


class TooManyErrors(BuildingError):
    """Raised when a build exceeds its error ceiling."""
