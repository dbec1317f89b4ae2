"""CLI entrypoint for MC Builder operators."""

from __future__ import annotations

import asyncio

import typer
from rich import print

from mc_builder.adapters import (
    AgentChannel,
    AgentWorld,
    EchoGameCommandAdapter,
    GameCommand,
    GameCommandAdapter,
    MinescriptGameCommandAdapter,
    MinescriptUnavailableError,
    SkillLibrary,
)
from mc_builder.building.manager import BuildingManager
from mc_builder.building.materials import MaterialClassifier
from mc_builder.building.placer import CreativePlacement
from mc_builder.building.state import BuildStateStore
from mc_builder.command_runtime import BuildCommandRuntime, InMemoryHistoryStore, JsonlHistoryStore
from mc_builder.config import settings
from mc_builder.errors import BuildingError
from mc_builder.geometry import BlockPos
from mc_builder.schematics import SchematicRegistry, parse_block_state
from mc_builder.telemetry import Telemetry, configure_logging

app = typer.Typer(help="MC Builder operator tools")


@app.callback()
def main() -> None:
    configure_logging(settings.log_level)


def _build_game_adapter():
    backend = settings.minecraft_adapter.lower()
    if backend == "minescript":
        try:
            return MinescriptGameCommandAdapter(command_prefix=settings.minescript_command_prefix)
        except MinescriptUnavailableError:
            return EchoGameCommandAdapter()
    return EchoGameCommandAdapter()


def _build_registry() -> SchematicRegistry:
    registry = SchematicRegistry(settings.schematics_path)
    registry.scan()
    return registry


def _build_store(agent: str | None) -> BuildStateStore:
    return BuildStateStore(settings.state_dir, agent or settings.agent_name)


def create_runtime(
    world: AgentWorld,
    skills: SkillLibrary,
    commands: GameCommandAdapter | None = None,
    *,
    notifier: AgentChannel | None = None,
    telemetry: Telemetry | None = None,
) -> BuildCommandRuntime:
    """Wire a live bot session into an agent command runtime using the configured settings."""
    manager = BuildingManager(_build_registry(), notifier=notifier, telemetry=telemetry)
    manager.attach(
        world,
        skills,
        commands or _build_game_adapter(),
        _build_store(world.username),
        block_place_delay_seconds=settings.block_place_delay,
        layer_delay_seconds=settings.layer_delay,
    )
    if settings.command_history_path:
        history = JsonlHistoryStore(settings.command_history_path)
    else:
        history = InMemoryHistoryStore()
    return BuildCommandRuntime(manager, history_store=history)


@app.command()
def start() -> None:
    """Show runtime backend configuration."""
    print(
        {
            "app_name": settings.app_name,
            "agent_name": settings.agent_name,
            "schematics_path": settings.schematics_path,
            "state_dir": settings.state_dir,
            "minecraft_adapter": settings.minecraft_adapter,
            "block_place_delay": settings.block_place_delay,
            "layer_delay": settings.layer_delay,
            "command_history_path": settings.command_history_path,
        }
    )


@app.command("list-structures")
def list_structures() -> None:
    registry = _build_registry()
    print({category: [d.name for d in descriptors] for category, descriptors in registry.list_by_category().items()})


@app.command("describe-structure")
def describe_structure(name: str) -> None:
    """Load a schematic and show its size and most used blocks."""
    registry = _build_registry()
    descriptor = registry.find(name)
    if descriptor is None:
        print({"error": f"Schematic not found: {name}"})
        raise typer.Exit(code=1)

    try:
        registry.load_data(descriptor)
    except BuildingError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)

    materials = sorted((descriptor.materials or {}).items(), key=lambda item: item[1], reverse=True)
    print(
        {
            "name": descriptor.name,
            "category": descriptor.category,
            "size": tuple(descriptor.size) if descriptor.size else None,
            "file_size": descriptor.file_size,
            "top_materials": dict(materials[:5]),
        }
    )


@app.command("preview-materials")
def preview_materials(name: str) -> None:
    """Offline block histogram with the gathering category of each material."""
    registry = _build_registry()
    descriptor = registry.find(name)
    if descriptor is None:
        print({"error": f"Schematic not found: {name}"})
        raise typer.Exit(code=1)

    try:
        registry.load_data(descriptor)
    except BuildingError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)

    classifier = MaterialClassifier()
    print(
        {
            material: {"count": count, "category": classifier.classify(material).value}
            for material, count in sorted((descriptor.materials or {}).items())
        }
    )


@app.command("build-state")
def build_state(agent: str = typer.Option(None, help="Agent name; defaults to MC_BUILDER_AGENT_NAME")) -> None:
    """Show the persisted survival build snapshot."""
    state = _build_store(agent).load()
    if state is None:
        print({"build_state": None})
        return
    payload = state.to_dict()
    payload["placed_blocks"] = len(state.placed_blocks)
    print({"build_state": payload})


@app.command("cancel-build")
def cancel_build(agent: str = typer.Option(None, help="Agent name; defaults to MC_BUILDER_AGENT_NAME")) -> None:
    """Delete the persisted survival build snapshot."""
    store = _build_store(agent)
    existed = store.exists()
    store.delete()
    print({"cancelled": existed, "path": str(store.path)})


@app.command("place-block")
def place_block(block: str, x: int, y: int, z: int) -> None:
    """Send one creative /setblock through the configured command adapter."""
    state = parse_block_state(block)
    command = CreativePlacement.setblock_command(state.name, BlockPos(x, y, z), state.properties)
    adapter = _build_game_adapter()
    output = asyncio.run(asyncio.to_thread(adapter.send, GameCommand(command=command)))
    print({"command": command, "result": output})


if __name__ == "__main__":
    app()
