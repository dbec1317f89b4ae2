"""Bringing missing survival materials into the inventory.

The pipeline runs in a fixed order: declutter the inventory, withdraw from
nearby storage, accept substitutes or skip optional blocks, then collect or
craft what is left. A material that keeps failing (or is known to be hard to
get) is escalated to the player instead of retried forever.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from mc_builder.adapters.agent_channel import AgentChannel
from mc_builder.adapters.skills import SkillLibrary, StorageMap
from mc_builder.adapters.world import AgentWorld
from mc_builder.building.materials import MaterialClassifier, deficit
from mc_builder.errors import MaterialUnavailable
from mc_builder.geometry import BlockPos

MAX_GATHERING_RETRIES = 3
RETURN_DISTANCE = 5.0
RETURN_RANGE = 3.0

SUBSTITUTIONS = {
    "white_bed": ("bed", "red_bed", "blue_bed", "black_bed", "brown_bed", "green_bed"),
    "chest": ("barrel",),
    "glass": ("glass_pane",),
    "cobblestone_stairs": ("stone_stairs", "stone_brick_stairs"),
}

NON_CRITICAL = frozenset({"glass", "glass_pane", "chest", "bed", "painting", "item_frame"})
NON_CRITICAL_SUFFIXES = ("_bed", "_door")

KEEP_KINDS = ("sword", "axe", "pickaxe", "shovel", "hoe", "shears", "food", "arrow", "bow", "shield")
KEEP_FOOD = ("bread", "steak")

logger = logging.getLogger("mc_builder.building.procurement")


@dataclass(slots=True)
class ProcurementResult:
    success: bool
    material: str | None = None
    needs_help: bool = False
    attempts: int = 0
    message: str = ""
    skipped: list[str] = field(default_factory=list)
    substituted: dict[str, str] = field(default_factory=dict)


def is_non_critical(material: str) -> bool:
    return material in NON_CRITICAL or material.endswith(NON_CRITICAL_SUFFIXES)


def should_keep(item: str) -> bool:
    """Tools, weapons, ammunition and food stay in the inventory while decluttering."""
    return any(kind in item for kind in KEEP_KINDS) or item.startswith("cooked") or item in KEEP_FOOD


class MaterialProcurer:
    def __init__(
        self,
        world: AgentWorld,
        skills: SkillLibrary,
        *,
        classifier: MaterialClassifier,
        retries: dict[str, int],
        notifier: AgentChannel,
        max_retries: int = MAX_GATHERING_RETRIES,
    ) -> None:
        self._world = world
        self._skills = skills
        self._classifier = classifier
        self._retries = retries
        self._notifier = notifier
        self._max_retries = max_retries

    async def procure(
        self,
        missing: dict[str, int],
        return_to: BlockPos | None = None,
        *,
        keep: Iterable[str] = (),
    ) -> ProcurementResult:
        """Obtain ``missing`` (a deficit histogram) on top of the current inventory.

        Items named in ``keep`` survive decluttering along with the missing
        materials and their substitutes.
        """
        start_inventory = self._world.inventory_counts()
        targets = {material: start_inventory.get(material, 0) + count for material, count in missing.items()}
        logger.info("procurement_started", extra={"materials": dict(missing)})

        protected = set(missing) | set(keep)
        for material in missing:
            protected.update(SUBSTITUTIONS.get(material, ()))
        await self.declutter(keep=protected)
        await self.withdraw_from_storage(targets)

        result = ProcurementResult(success=True)
        still_missing = deficit(targets, self._world.inventory_counts())
        self._apply_substitutions(still_missing, result)

        for material in list(still_missing):
            try:
                await self._obtain(material, targets[material])
            except MaterialUnavailable as exc:
                return self._escalate(exc, result)

        await self.return_to_site(return_to)

        shortfall = deficit({m: targets[m] for m in still_missing}, self._world.inventory_counts())
        if shortfall:
            material, count = next(iter(shortfall.items()))
            logger.warning("procurement_verification_failed", extra={"materials": shortfall})
            result.success = False
            result.material = material
            result.message = f"Still missing {count}x {material} after gathering"
            return result

        logger.info("procurement_completed", extra={"skipped": result.skipped, "substituted": result.substituted})
        return result

    async def declutter(self, keep: set[str]) -> None:
        to_store = {
            item: count
            for item, count in self._world.inventory_counts().items()
            if item not in keep and not should_keep(item)
        }
        if not to_store:
            return
        logger.info("inventory_declutter", extra={"count": len(to_store)})
        try:
            stored = await self._skills.store(to_store)
        except Exception as exc:  # noqa: BLE001
            logger.warning("inventory_declutter_failed", extra={"error": str(exc)})
            return
        if not stored:
            logger.info("inventory_declutter_skipped")

    async def withdraw_from_storage(self, targets: dict[str, int]) -> None:
        try:
            storage: StorageMap = await self._skills.scan_storage()
        except Exception as exc:  # noqa: BLE001
            logger.warning("storage_scan_failed", extra={"error": str(exc)})
            return

        for material, target in targets.items():
            still_needed = target - self._world.inventory_counts().get(material, 0)
            withdrawn = 0
            for location, contents in storage.items():
                if withdrawn >= still_needed:
                    break
                available = contents.get(material, 0)
                if available <= 0:
                    continue
                amount = min(still_needed - withdrawn, available)
                try:
                    withdrawn += await self._skills.withdraw(BlockPos.from_key(location), material, amount)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("storage_withdraw_failed", extra={"container": location, "error": str(exc)})

            if withdrawn:
                logger.info("storage_withdrawn", extra={"material": material, "count": withdrawn})

    def _apply_substitutions(self, still_missing: dict[str, int], result: ProcurementResult) -> None:
        inventory = self._world.inventory_counts()
        for material, count in list(still_missing.items()):
            substitute = next(
                (sub for sub in SUBSTITUTIONS.get(material, ()) if inventory.get(sub, 0) >= count),
                None,
            )
            if substitute:
                logger.info("material_substituted", extra={"material": material, "substitute": substitute})
                result.substituted[material] = substitute
                del still_missing[material]
            elif is_non_critical(material):
                logger.info("material_skipped", extra={"material": material})
                result.skipped.append(material)
                del still_missing[material]

    async def _obtain(self, material: str, target: int) -> None:
        """Attempt until the material is in stock; raise once it has to be escalated."""
        while True:
            needed = target - self._world.inventory_counts().get(material, 0)
            if needed <= 0:
                return
            if self._classifier.is_difficult(material) or self._retries.get(material, 0) >= self._max_retries:
                raise MaterialUnavailable(material, needed, needs_help=True)

            if await self._attempt(material, needed):
                self._retries[material] = 0
                return

            self._retries[material] = self._retries.get(material, 0) + 1
            logger.info(
                "material_attempt_failed",
                extra={"material": material, "attempt": self._retries[material], "max_attempts": self._max_retries},
            )

    async def _attempt(self, material: str, count: int) -> bool:
        """One pass over every applicable strategy."""
        logger.info("material_attempt", extra={"material": material, "category": self._classifier.classify(material).value})
        if self._classifier.should_use_direct_collection(material):
            try:
                if await self._skills.collect(material, count):
                    return True
            except Exception as exc:  # noqa: BLE001
                logger.warning("material_collect_failed", extra={"material": material, "error": str(exc)})

        if self._classifier.should_craft(material):
            try:
                if await self._skills.craft(material, count):
                    return True
            except Exception as exc:  # noqa: BLE001
                logger.warning("material_craft_failed", extra={"material": material, "error": str(exc)})

        return False

    def _escalate(self, exc: MaterialUnavailable, result: ProcurementResult) -> ProcurementResult:
        attempts = self._retries.get(exc.material, 0)
        suggestion = self._classifier.suggestion_for(exc.material)
        logger.warning("procurement_needs_help", extra={"material": exc.material, "needed": exc.needed, "attempt": attempts})
        self._notifier.notify(
            f"Build paused after {attempts} attempts: Cannot gather {exc.needed}x {exc.material}. "
            f"Need help from player. Suggestions: {suggestion}. "
            "Respond to player and ask them for help getting this material. "
            "They can use !resume-build when materials are ready."
        )
        result.success = False
        result.material = exc.material
        result.needs_help = exc.needs_help
        result.attempts = attempts
        result.message = f"Need help gathering {exc.needed}x {exc.material} ({suggestion})"
        return result

    async def return_to_site(self, site: BlockPos | None) -> None:
        if site is None:
            return
        distance = self._world.position().distance_to(site)
        if distance < RETURN_DISTANCE:
            return
        logger.info("returning_to_site", extra={"target": site.key(), "distance": round(distance, 1)})
        try:
            await self._skills.go_to(site, RETURN_RANGE)
        except Exception as exc:  # noqa: BLE001
            logger.warning("return_to_site_failed", extra={"error": str(exc)})
