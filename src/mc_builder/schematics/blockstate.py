"""Block-state grammar: ``[namespace:]name[prop=value,...]``."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

AIR_BLOCKS = frozenset({"air", "cave_air", "void_air"})

_STATE_RE = re.compile(r"^(?:[a-z0-9_.-]+:)?([^\[\]]+)(?:\[(.*)\])?$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class BlockState:
    name: str
    properties: dict[str, str] = field(default_factory=dict)

    @property
    def is_air(self) -> bool:
        return self.name in AIR_BLOCKS

    def state_string(self, namespace: str | None = "minecraft") -> str:
        return format_block_state(self.name, self.properties, namespace=namespace)


AIR = BlockState("air")


def parse_block_state(text: str) -> BlockState:
    """Split a block-state string into its base name and property mapping.

    The namespace prefix is dropped. Malformed property pairs (no ``=``) are
    ignored rather than rejected.
    """
    cleaned = text.strip()
    match = _STATE_RE.match(cleaned)
    if not match:
        return BlockState(name=cleaned)

    name = match.group(1).strip()
    properties: dict[str, str] = {}
    if match.group(2):
        for pair in match.group(2).split(","):
            key, sep, value = pair.partition("=")
            if sep and key.strip() and value.strip():
                properties[key.strip()] = value.strip()
    return BlockState(name=name, properties=properties)


def base_name(text: str) -> str:
    return parse_block_state(text).name


def format_block_state(name: str, properties: dict[str, str] | None = None, *, namespace: str | None = "minecraft") -> str:
    """Re-emit a block state with properties sorted by key."""
    prefix = f"{namespace}:" if namespace else ""
    if not properties:
        return f"{prefix}{name}"
    props = ",".join(f"{key}={properties[key]}" for key in sorted(properties))
    return f"{prefix}{name}[{props}]"
