"""Schematic building agent for Minecraft bots."""

__version__ = "0.1.0"
