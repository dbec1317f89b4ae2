"""Boundaries to the game session, skill library, decision layer and command transport."""

from .agent_channel import AgentChannel, LoggingAgentChannel
from .game_command import GameCommand, GameCommandAdapter
from .live_minecraft import (
    ChatGameCommandAdapter,
    EchoGameCommandAdapter,
    MinescriptGameCommandAdapter,
    MinescriptUnavailableError,
)
from .skills import SkillLibrary, StorageMap
from .world import AgentWorld, PlayerInfo, WorldEvent

__all__ = [
    "AgentChannel",
    "AgentWorld",
    "ChatGameCommandAdapter",
    "EchoGameCommandAdapter",
    "GameCommand",
    "GameCommandAdapter",
    "LoggingAgentChannel",
    "MinescriptGameCommandAdapter",
    "MinescriptUnavailableError",
    "PlayerInfo",
    "SkillLibrary",
    "StorageMap",
    "WorldEvent",
]
