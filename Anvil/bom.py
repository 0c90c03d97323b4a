"""Bill of Materials (BOM) extraction for anvil recipes.

This module provides functionality to:
1. Walk a recipe tree and collect its leaves (books and the base item)
2. Resolve book labels such as "Smite V Book" back to enchantment + level
3. Merge identical materials into quantities, books first then base items
4. Aggregate several BOMs into one shopping list
5. Export a BOM as a pandas DataFrame
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .base_items import BaseItem, get_base_item_by_display_name
from .enchantments import EnchantmentCatalog, default_catalog, parse_roman_numeral
from .solver_logging import SolverLogger
from .tree import TreeNode, iter_leaves

BOOK_SUFFIX = " Book"

BOOK = "book"
BASE_ITEM = "base_item"

# Columns of bom_to_frame, in order
BOM_COLUMNS = ["item", "item_type", "enchantment", "enchantment_level", "quantity"]


@dataclass
class BOMItem:
    """One line of a bill of materials."""
    item: str
    item_type: str  # BOOK or BASE_ITEM
    enchantment: Optional[str] = None
    enchantment_level: Optional[int] = None
    quantity: int = 1

    @property
    def key(self) -> str:
        """Merge key: books by enchantment and level, base items by label."""
        if self.item_type == BOOK and self.enchantment:
            return f"book:{self.enchantment}:{self.enchantment_level}"
        return f"base:{self.item}"


@dataclass
class BillOfMaterials:
    """Materials for one recipe (or an aggregate of several)."""
    items: List[BOMItem] = field(default_factory=list)
    base_item: BaseItem = field(default_factory=lambda: BaseItem("sword", "None"))

    @property
    def book_count(self) -> int:
        return sum(item.quantity for item in self.items if item.item_type == BOOK)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


def parse_book_item(
    label: str,
    catalog: Optional[EnchantmentCatalog] = None,
) -> Optional[Tuple[str, int]]:
    """
    Resolve a book label to ``(enchantment id, level)``.

    "Smite V Book" -> ("smite", 5); "Mending Book" -> ("mending", 1).
    A trailing word that is not a Roman numeral is treated as part of the
    name at level 1. Returns None if the label is not a book or the name is
    not a known enchantment.
    """
    if not label.endswith(BOOK_SUFFIX):
        return None

    catalog = catalog if catalog is not None else default_catalog()
    stem = label[: -len(BOOK_SUFFIX)]

    name, _, last = stem.rpartition(" ")
    level = parse_roman_numeral(last) if name else None
    if level is None:
        name, level = stem, 1

    ench = catalog.get_by_name(name)
    if ench is None:
        return None
    return ench.id, level


def _sort_items(items: Iterable[BOMItem]) -> List[BOMItem]:
    """Books first, then base items; alphabetical by label within each group."""
    return sorted(items, key=lambda i: (i.item_type != BOOK, i.item.lower(), i.item))


def _merge(target: Dict[str, BOMItem], item: BOMItem) -> None:
    existing = target.get(item.key)
    if existing is None:
        target[item.key] = item
    else:
        existing.quantity += item.quantity


def generate_bom(
    tree: TreeNode,
    catalog: Optional[EnchantmentCatalog] = None,
    logger: Optional[SolverLogger] = None,
) -> BillOfMaterials:
    """
    Extract the bill of materials from a recipe tree.

    Parameters
    ----------
    tree : TreeNode
        Recipe tree; leaves ending in " Book" are books, others base items.
    catalog : EnchantmentCatalog, optional
        Used to resolve book names. Defaults to the packaged table.
    logger : SolverLogger, optional
        Receives a warning for every book leaf that cannot be resolved.
        Such leaves are left out of the result.

    Returns
    -------
    BillOfMaterials
    """
    catalog = catalog if catalog is not None else default_catalog()
    merged: Dict[str, BOMItem] = {}
    base_item: Optional[BaseItem] = None
    first_base_label: Optional[str] = None

    for leaf in iter_leaves(tree):
        if not leaf.item:
            continue

        if leaf.item.endswith(BOOK_SUFFIX):
            parsed = parse_book_item(leaf.item, catalog)
            if parsed is None:
                if logger:
                    logger.log_bom_leaf_dropped(leaf.item)
                continue
            ench_id, level = parsed
            _merge(merged, BOMItem(leaf.item, BOOK, ench_id, level))
            continue

        if first_base_label is None:
            first_base_label = leaf.item
        known = get_base_item_by_display_name(leaf.item)
        if known is not None:
            base_item = known
        _merge(merged, BOMItem(leaf.item, BASE_ITEM))

    if base_item is None:
        base_item = BaseItem("sword", first_base_label or "Unknown Item")

    bom = BillOfMaterials(items=_sort_items(merged.values()), base_item=base_item)
    if logger:
        logger.log_bom(bom)
    return bom


def aggregate_boms(boms: Sequence[BillOfMaterials]) -> BillOfMaterials:
    """
    Merge several BOMs into one shopping list.

    The aggregate's ``base_item`` is the first BOM's; a single BOM is
    returned unchanged and an empty sequence gives an empty BOM. Inputs
    are never mutated.
    """
    if not boms:
        return BillOfMaterials()
    if len(boms) == 1:
        return boms[0]

    merged: Dict[str, BOMItem] = {}
    for bom in boms:
        for item in bom.items:
            _merge(merged, replace(item))

    return BillOfMaterials(items=_sort_items(merged.values()), base_item=boms[0].base_item)


def bom_to_frame(bom: BillOfMaterials) -> pd.DataFrame:
    """
    BOM as a DataFrame with columns ``BOM_COLUMNS``, in BOM order.

    ``enchantment`` and ``enchantment_level`` are empty for base items.
    """
    rows = [
        {
            "item": item.item,
            "item_type": item.item_type,
            "enchantment": item.enchantment,
            "enchantment_level": item.enchantment_level,
            "quantity": item.quantity,
        }
        for item in bom.items
    ]
    df = pd.DataFrame(rows, columns=BOM_COLUMNS)
    df["enchantment_level"] = df["enchantment_level"].astype("Int64")
    df["quantity"] = df["quantity"].astype(int)
    return df
