"""Material categories, gathering hints and requirement accounting."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from mc_builder.adapters.skills import StorageMap

BASE_MATERIALS = frozenset(
    {
        "stone", "cobblestone", "granite", "diorite", "andesite",
        "dirt", "grass_block", "sand", "gravel", "clay",
        "oak_log", "spruce_log", "birch_log", "jungle_log", "acacia_log", "dark_oak_log",
        "oak_leaves", "spruce_leaves", "birch_leaves",
        "iron_ore", "coal_ore", "gold_ore", "diamond_ore", "emerald_ore",
        "redstone_ore", "lapis_ore", "copper_ore",
        "iron_ingot", "gold_ingot", "diamond", "emerald", "coal", "redstone", "lapis_lazuli",
        "glass", "obsidian", "netherrack", "soul_sand", "glowstone",
        "wool", "white_wool", "red_wool", "blue_wool",
        "leather", "feather", "bone",
    }
)

SIMPLE_CRAFTS = frozenset(
    {
        "oak_planks", "spruce_planks", "birch_planks", "jungle_planks", "acacia_planks", "dark_oak_planks",
        "stick", "torch", "crafting_table", "chest", "barrel", "ladder",
        "wooden_pickaxe", "wooden_axe", "wooden_shovel",
        "stone_pickaxe", "stone_axe", "stone_shovel",
    }
)

DIFFICULT_MATERIALS = frozenset(
    {
        "string", "slime_ball", "ender_pearl", "blaze_rod", "ghast_tear",
        "gunpowder", "spider_eye", "rotten_flesh", "dragon_egg", "elytra",
        "shulker_shell", "nether_star", "heart_of_the_sea",
    }
)

GATHERING_SUGGESTIONS = {
    "string": "Hunt spiders OR craft from wool",
    "wool": "Shear sheep (with shears) OR craft from 4x string",
    "white_wool": "Shear sheep OR craft from string",
    "leather": "Hunt cows/horses",
    "feather": "Hunt chickens",
    "bone": "Hunt skeletons",
    "gunpowder": "Hunt creepers",
    "slime_ball": "Hunt slimes in swamp",
    "ender_pearl": "Hunt endermen",
    "blaze_rod": "Hunt blazes in Nether",
}
DEFAULT_SUGGESTION = "I need help gathering this"


class MaterialCategory(str, Enum):
    BASE = "base"
    SIMPLE_CRAFT = "simple_craft"
    COMPLEX_CRAFT = "complex_craft"
    DIFFICULT = "difficult"


class MaterialClassifier:
    """Static lookup of how a material is expected to be obtained."""

    def classify(self, material: str) -> MaterialCategory:
        if material in BASE_MATERIALS:
            return MaterialCategory.BASE
        if material in SIMPLE_CRAFTS:
            return MaterialCategory.SIMPLE_CRAFT
        if material in DIFFICULT_MATERIALS:
            return MaterialCategory.DIFFICULT
        return MaterialCategory.COMPLEX_CRAFT

    def should_use_direct_collection(self, material: str) -> bool:
        return self.classify(material) in (MaterialCategory.BASE, MaterialCategory.SIMPLE_CRAFT)

    def should_craft(self, material: str) -> bool:
        return self.classify(material) in (MaterialCategory.SIMPLE_CRAFT, MaterialCategory.COMPLEX_CRAFT)

    def is_difficult(self, material: str) -> bool:
        return self.classify(material) == MaterialCategory.DIFFICULT

    def suggestion_for(self, material: str) -> str:
        return GATHERING_SUGGESTIONS.get(material, DEFAULT_SUGGESTION)


@dataclass(slots=True)
class MaterialAnalysis:
    """Per-material split of what a build needs.

    For every material, ``required == in_inventory + in_storage + missing``.
    """

    required: dict[str, int] = field(default_factory=dict)
    in_inventory: dict[str, int] = field(default_factory=dict)
    in_storage: dict[str, int] = field(default_factory=dict)
    missing: dict[str, int] = field(default_factory=dict)

    @property
    def total_required(self) -> int:
        return sum(self.required.values())

    @property
    def total_missing(self) -> int:
        return sum(self.missing.values())

    @property
    def complete(self) -> bool:
        return not self.missing


def storage_totals(storage: StorageMap) -> dict[str, int]:
    totals: Counter[str] = Counter()
    for contents in storage.values():
        totals.update(contents)
    return dict(totals)


def analyze_materials(
    required: Mapping[str, int],
    inventory: Mapping[str, int],
    storage: StorageMap | None = None,
) -> MaterialAnalysis:
    stored = storage_totals(storage or {})
    analysis = MaterialAnalysis(required=dict(required))
    for material, needed in required.items():
        from_inventory = min(needed, inventory.get(material, 0))
        from_storage = min(needed - from_inventory, stored.get(material, 0))
        missing = needed - from_inventory - from_storage
        if from_inventory:
            analysis.in_inventory[material] = from_inventory
        if from_storage:
            analysis.in_storage[material] = from_storage
        if missing:
            analysis.missing[material] = missing
    return analysis


def deficit(required: Mapping[str, int], inventory: Mapping[str, int]) -> dict[str, int]:
    """Amount of each required material not covered by ``inventory``."""
    missing: dict[str, int] = {}
    for material, needed in required.items():
        short = needed - inventory.get(material, 0)
        if short > 0:
            missing[material] = short
    return missing


def block_histogram(names: Iterable[str]) -> dict[str, int]:
    return dict(Counter(names))
