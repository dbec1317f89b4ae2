"""Boundary for game command transport integrations."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class GameCommand:
    """Canonical privileged command (e.g. ``/setblock``) sent to the running game."""

    command: str


class GameCommandAdapter(Protocol):
    """Interface to send server commands to Minecraft."""

    def send(self, payload: GameCommand) -> str | None:
        """Dispatch a command payload to the running game instance."""
