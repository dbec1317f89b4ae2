"""Transports for privileged game commands.

Creative placement only needs one thing from the game: a way to run
``/setblock``. A bot can issue it through its own chat, a client can issue it
through minescript, and offline runs just echo it.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import Callable

from mc_builder.adapters.game_command import GameCommand

MINESCRIPT_ENTRYPOINTS = ("execute", "run", "command", "chat_command")

logger = logging.getLogger("mc_builder.adapters.live_minecraft")


class MinescriptUnavailableError(RuntimeError):
    """Raised when minescript is not installed or has no supported command API."""


def _with_prefix(command: str, prefix: str) -> str:
    if prefix and not command.startswith(prefix):
        return f"{prefix}{command}"
    return command


@dataclass(slots=True)
class MinescriptGameCommandAdapter:
    """Runs commands through a locally imported ``minescript`` module."""

    command_prefix: str = "/"
    _run: Callable[[str], object] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._run = self._locate_entrypoint()

    def send(self, payload: GameCommand) -> str:
        command = _with_prefix(payload.command, self.command_prefix)
        logger.debug("minescript_command", extra={"command": command})
        result = self._run(command)
        return "" if result is None else str(result)

    @staticmethod
    def _locate_entrypoint() -> Callable[[str], object]:
        try:
            module = importlib.import_module("minescript")
        except Exception as exc:  # noqa: BLE001
            raise MinescriptUnavailableError(
                "Unable to import minescript. Install it and ensure Minecraft + the mod are running."
            ) from exc

        for attr in MINESCRIPT_ENTRYPOINTS:
            entrypoint = getattr(module, attr, None)
            if callable(entrypoint):
                return entrypoint

        raise MinescriptUnavailableError(
            f"Imported minescript but found none of {', '.join(MINESCRIPT_ENTRYPOINTS)}."
        )


@dataclass(slots=True)
class ChatGameCommandAdapter:
    """Issues commands by saying them in chat as the bot (needs operator rights)."""

    chat: Callable[[str], object]

    def send(self, payload: GameCommand) -> str:
        command = _with_prefix(payload.command, "/")
        logger.debug("chat_command", extra={"command": command})
        self.chat(command)
        return ""


@dataclass(slots=True)
class EchoGameCommandAdapter:
    """Offline adapter: keeps what it was asked to run."""

    sent: list[str] = field(default_factory=list)

    def send(self, payload: GameCommand) -> str:
        self.sent.append(payload.command)
        return f"executed: {payload.command}"
