"""Boundary towards the surrounding decision layer (LLM conversation history)."""

from __future__ import annotations

import logging
from typing import Protocol


class AgentChannel(Protocol):
    """Receives human-readable notices the decision layer should relay or act on."""

    def notify(self, message: str) -> None:
        """Append a system notice for the decision layer."""


class LoggingAgentChannel:
    """Channel used when no decision layer is attached; notices only reach the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("mc_builder.agent_channel")

    def notify(self, message: str) -> None:
        self._logger.info("agent_notice", extra={"notice": message})
