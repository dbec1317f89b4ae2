from __future__ import annotations

import asyncio
import importlib
import json
from pathlib import Path

import pytest
from fakes import FakeSkills, FakeWorld, SetblockAdapter, floor_schematic, write_schematic
from typer.testing import CliRunner

from mc_builder.building.state import BuildState, BuildStateStore, BuildStatus
from mc_builder.command_runtime import JsonlHistoryStore
from mc_builder.geometry import BlockPos


def _cli(monkeypatch, tmp_path: Path):
    module = importlib.import_module("mc_builder.main")
    write_schematic(tmp_path / "schematics" / "houses" / "hut.schem", floor_schematic("minecraft:cobblestone"))
    monkeypatch.setattr(module.settings, "schematics_path", str(tmp_path / "schematics"))
    monkeypatch.setattr(module.settings, "state_dir", str(tmp_path / "bots"))
    monkeypatch.setattr(module.settings, "agent_name", "builder")
    monkeypatch.setattr(module.settings, "minecraft_adapter", "echo")
    monkeypatch.setattr(module.settings, "command_history_path", None)
    return module


def test_console_entrypoint_exposes_app() -> None:
    pytest.importorskip("typer")

    module = importlib.import_module("mc_builder.main")

    assert hasattr(module, "app")
    assert module.app is not None


def test_describe_and_preview_commands(monkeypatch, tmp_path: Path) -> None:
    module = _cli(monkeypatch, tmp_path)
    runner = CliRunner()

    described = runner.invoke(module.app, ["describe-structure", "hut"])
    preview = runner.invoke(module.app, ["preview-materials", "hut"])
    missing = runner.invoke(module.app, ["describe-structure", "castle"])

    assert described.exit_code == 0
    assert "cobblestone" in described.output
    assert preview.exit_code == 0
    assert "base" in preview.output
    assert missing.exit_code == 1


def test_build_state_and_cancel(monkeypatch, tmp_path: Path) -> None:
    module = _cli(monkeypatch, tmp_path)
    store = BuildStateStore(tmp_path / "bots", "builder")
    store.save(BuildState(schematic_name="hut", position=BlockPos(0, 64, 0), total_blocks=9, status=BuildStatus.PAUSED))
    runner = CliRunner()

    shown = runner.invoke(module.app, ["build-state"])
    cancelled = runner.invoke(module.app, ["cancel-build"])

    assert shown.exit_code == 0
    assert "hut" in shown.output
    assert cancelled.exit_code == 0
    assert not store.exists()


def test_place_block_goes_through_echo_adapter(monkeypatch, tmp_path: Path) -> None:
    module = _cli(monkeypatch, tmp_path)

    result = CliRunner().invoke(module.app, ["place-block", "minecraft:oak_log[axis=y]", "1", "64", "2"])

    assert result.exit_code == 0
    assert "/setblock 1 64 2 minecraft:oak_log[axis=y]" in result.output


def test_create_runtime_uses_configured_paths(monkeypatch, tmp_path: Path) -> None:
    module = _cli(monkeypatch, tmp_path)
    history_path = tmp_path / "history.jsonl"
    monkeypatch.setattr(module.settings, "command_history_path", str(history_path))
    monkeypatch.setattr(module.settings, "block_place_delay", 0.0)
    monkeypatch.setattr(module.settings, "layer_delay", 0.0)
    world = FakeWorld(game_mode="creative")

    runtime = module.create_runtime(world, FakeSkills(world), SetblockAdapter(world))
    output = asyncio.run(runtime.execute("!list-structures"))

    assert output == "Available structures:\nhouses: hut"
    persisted = JsonlHistoryStore(history_path).list_recent(limit=1)
    assert persisted[0].command == "!list-structures"
    assert json.loads(history_path.read_text(encoding="utf-8").splitlines()[0])["status"] == "succeeded"
