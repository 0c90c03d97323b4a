"""Base items: every enchantable item type and its material variants.

Supplies the display names the optimizer uses for the base-item leaf
("Netherite Sword") and the reverse lookups the bill-of-materials and
catalog code need.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

# Items that have material variants
TOOL_WEAPON_MATERIALS: Tuple[str, ...] = (
    "netherite", "diamond", "iron", "gold", "stone", "wood",
)

ARMOR_MATERIALS: Tuple[str, ...] = (
    "netherite", "diamond", "iron", "gold", "chainmail", "leather",
)

TOOL_WEAPON_TYPES: Tuple[str, ...] = ("sword", "axe", "pickaxe", "shovel", "hoe")

ARMOR_TYPES: Tuple[str, ...] = ("helmet", "chestplate", "leggings", "boots")

# Item types without material variants
SINGLETON_TYPES: Tuple[str, ...] = (
    "bow", "crossbow", "trident", "mace", "fishing_rod",
    "shears", "flint_and_steel", "shield", "elytra",
)

ALL_ITEM_TYPES: Tuple[str, ...] = TOOL_WEAPON_TYPES + ARMOR_TYPES + SINGLETON_TYPES

TYPE_DISPLAY_NAMES: Dict[str, str] = {
    "sword": "Sword",
    "axe": "Axe",
    "pickaxe": "Pickaxe",
    "shovel": "Shovel",
    "hoe": "Hoe",
    "helmet": "Helmet",
    "chestplate": "Chestplate",
    "leggings": "Leggings",
    "boots": "Boots",
    "bow": "Bow",
    "crossbow": "Crossbow",
    "trident": "Trident",
    "mace": "Mace",
    "fishing_rod": "Fishing Rod",
    "shears": "Shears",
    "flint_and_steel": "Flint and Steel",
    "shield": "Shield",
    "elytra": "Elytra",
}

MATERIAL_DISPLAY_NAMES: Dict[str, str] = {
    "netherite": "Netherite",
    "diamond": "Diamond",
    "iron": "Iron",
    "gold": "Golden",
    "stone": "Stone",
    "wood": "Wooden",
    "leather": "Leather",
    "chainmail": "Chainmail",
    "turtle": "Turtle Shell",
}


@dataclass(frozen=True)
class BaseItem:
    """An enchantable item: type, optional material, and in-game name."""
    type: str
    display_name: str
    material: Optional[str] = None

    @property
    def key(self) -> str:
        return make_key(self.type, self.material)


def make_key(item_type: str, material: Optional[str] = None) -> str:
    """Lookup key, e.g. ``netherite_sword`` or ``bow``."""
    return f"{material}_{item_type}" if material else item_type


def generate_display_name(item_type: str, material: Optional[str] = None) -> str:
    """In-game name for an item type/material pair."""
    if not material:
        return TYPE_DISPLAY_NAMES[item_type]
    if material == "turtle" and item_type == "helmet":
        return "Turtle Shell"
    return f"{MATERIAL_DISPLAY_NAMES[material]} {TYPE_DISPLAY_NAMES[item_type]}"


def _generate_all_items() -> List[BaseItem]:
    items: List[BaseItem] = []

    for item_type in TOOL_WEAPON_TYPES:
        for material in TOOL_WEAPON_MATERIALS:
            items.append(BaseItem(item_type, generate_display_name(item_type, material), material))

    for item_type in ARMOR_TYPES:
        for material in ARMOR_MATERIALS:
            items.append(BaseItem(item_type, generate_display_name(item_type, material), material))
        if item_type == "helmet":
            items.append(BaseItem(item_type, generate_display_name(item_type, "turtle"), "turtle"))

    for item_type in SINGLETON_TYPES:
        items.append(BaseItem(item_type, generate_display_name(item_type)))

    return items


# Immutable module data; built once at import
_ALL_ITEMS: Tuple[BaseItem, ...] = tuple(_generate_all_items())
_ITEM_BY_KEY: Dict[str, BaseItem] = {item.key: item for item in _ALL_ITEMS}
_ITEM_BY_DISPLAY_NAME: Dict[str, BaseItem] = {
    item.display_name.lower(): item for item in _ALL_ITEMS
}


def get_base_item(item_type: str, material: Optional[str] = None) -> Optional[BaseItem]:
    """
    Get a base item by type and optional material.

    Singleton items (bow, shield, ...) take no material. Returns None for
    an invalid combination.
    """
    return _ITEM_BY_KEY.get(make_key(item_type, material))


def get_base_item_by_display_name(display_name: str) -> Optional[BaseItem]:
    """Reverse lookup from an in-game name, case-insensitively."""
    return _ITEM_BY_DISPLAY_NAME.get(display_name.lower())


def get_all_base_items() -> List[BaseItem]:
    return list(_ALL_ITEMS)


def get_base_items_by_type(item_type: str) -> List[BaseItem]:
    return [item for item in _ALL_ITEMS if item.type == item_type]


def item_type_requires_material(item_type: str) -> bool:
    return item_type not in SINGLETON_TYPES


def get_valid_materials(item_type: str) -> List[str]:
    """Materials an item type comes in; empty for singleton items."""
    if item_type in TOOL_WEAPON_TYPES:
        return list(TOOL_WEAPON_MATERIALS)
    if item_type in ARMOR_TYPES:
        if item_type == "helmet":
            return list(ARMOR_MATERIALS) + ["turtle"]
        return list(ARMOR_MATERIALS)
    return []


def parse_base_item_string(base_item: str) -> Optional[BaseItem]:
    """
    Resolve a catalog base-item string such as ``netherite_sword``.

    Accepts singleton ids (``bow``, ``fishing_rod``, ``flint_and_steel``),
    ``<material>_<type>`` pairs, and ``turtle_shell`` / ``turtle_helmet``.
    Returns None when the string does not name a known item.
    """
    if base_item in SINGLETON_TYPES:
        return get_base_item(base_item)

    if base_item in ("turtle_shell", "turtle_helmet"):
        return get_base_item("helmet", "turtle")

    material, sep, item_type = base_item.partition("_")
    if not sep:
        return None
    return get_base_item(item_type, material)
