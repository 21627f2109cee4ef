# ABOUTME: Inventory projection and application: gold, items and countable resources.
# ABOUTME: preview() is pure and feeds the plan; apply() mutates the character at render time.

from loguru import logger

from agentic_rpg.models.entities import Character, Item
from agentic_rpg.models.tool_results import InventoryResult


class InventoryTool:
    """Gold, item and resource bookkeeping for a character"""

    @staticmethod
    def preview(
        character: Character,
        gold_delta: int = 0,
        items_add: list[str] | None = None,
        items_remove: list[str] | None = None,
        resource_deltas: dict[str, int] | None = None,
    ) -> InventoryResult:
        """
        Project an inventory change without applying it.

        Returns:
            InventoryResult with ok=False and errors when the change would
            drive gold or a resource below zero, or remove a missing item
        """
        items_add = list(items_add or [])
        items_remove = list(items_remove or [])
        resource_deltas = dict(resource_deltas or {})
        errors = []

        gold_after = character.resources.get("gold", 0) + gold_delta
        if gold_after < 0:
            errors.append("Insufficient gold")

        for name in items_remove:
            if not character.has_item(name):
                errors.append(f"Item not in inventory: {name}")

        resources_after = {}
        for resource, delta in resource_deltas.items():
            after = character.resources.get(resource, 0) + delta
            if after < 0:
                errors.append(f"Insufficient {resource}")
            resources_after[resource] = after

        return InventoryResult(
            ok=not errors,
            gold_delta=gold_delta,
            gold_after=gold_after,
            items_added=items_add,
            items_removed=items_remove,
            resource_deltas=resource_deltas,
            resources_after=resources_after,
            errors=errors,
        )

    @staticmethod
    def apply(
        character: Character,
        gold_delta: int = 0,
        items_add: list[str] | None = None,
        items_remove: list[str] | None = None,
        resource_deltas: dict[str, int] | None = None,
    ) -> None:
        """Apply a validated change to the character; resources floor at zero"""
        if gold_delta:
            character.resources["gold"] = max(0, character.resources.get("gold", 0) + gold_delta)

        for name in items_add or []:
            existing = character.find_item(name)
            if existing is not None:
                existing.quantity += 1
            else:
                character.inventory.append(Item(name=name))

        for name in items_remove or []:
            InventoryTool.consume_item(character, name)

        for resource, delta in (resource_deltas or {}).items():
            character.resources[resource] = max(0, character.resources.get(resource, 0) + delta)

        logger.debug(
            f"Inventory applied to {character.id}: gold={character.resources.get('gold', 0)}, "
            f"items={[item.name for item in character.inventory]}"
        )

    @staticmethod
    def consume_item(character: Character, name: str, quantity: int = 1) -> bool:
        """Remove `quantity` of an item; False if there isn't enough"""
        item = character.find_item(name)
        if item is None or item.quantity < quantity:
            return False
        if item.quantity == quantity:
            character.inventory.remove(item)
        else:
            item.quantity -= quantity
        return True

    @staticmethod
    def inventory_value(character: Character) -> int:
        return sum(item.value * item.quantity for item in character.inventory)
