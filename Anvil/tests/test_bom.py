"""Tests for bill of materials extraction.

Validates that:
1. Book labels resolve back to enchantment id and level
2. Leaves are merged into quantities, books first then base items
3. Unresolvable book leaves are dropped with a warning, not an error
4. Aggregation merges quantities without mutating its inputs
5. DataFrame export has the documented columns
"""
from __future__ import annotations

import pytest

from Anvil.base_items import BaseItem
from Anvil.enchantments import EnchantmentCatalog
from Anvil.bom import (
    BASE_ITEM,
    BOM_COLUMNS,
    BOOK,
    BillOfMaterials,
    BOMItem,
    aggregate_boms,
    bom_to_frame,
    generate_bom,
    parse_book_item,
)
from Anvil.optimizer import compute_recipe
from Anvil.solver_logging import LogLevel, create_string_logger
from Anvil.tree import CombineNode, LeafNode


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def sword_bom() -> BillOfMaterials:
    recipe = compute_recipe([{"sharpness": 5}, {"unbreaking": 3}, {"mending": 1}],
                            "Netherite Sword")
    return generate_bom(recipe.tree)


def _combine(node_id, left, right, label="Enchanted Book"):
    return CombineNode(id=node_id, left=left, right=right, level_cost=1, xp_cost=7,
                       resulting_pwp=1, result_label=label)


@pytest.fixture
def messy_tree():
    """Two identical books, one bogus book and an unknown base item."""
    books = _combine(
        "c1",
        _combine("c0", LeafNode("l1", "Smite V Book"), LeafNode("l2", "Smite V Book")),
        LeafNode("l3", "Vorpal III Book"),
    )
    return _combine("c2", LeafNode("l0", "Mystery Blade"), books, label="Mystery Blade")


# ---------------------------------------------------------------------------
# Tests: book label parsing
# ---------------------------------------------------------------------------

class TestParseBookItem:
    @pytest.mark.parametrize("label,expected", [
        ("Smite V Book", ("smite", 5)),
        ("Fire Aspect II Book", ("fire_aspect", 2)),
        ("Mending Book", ("mending", 1)),
        ("Curse of Binding Book", ("curse_of_binding", 1)),
        ("Luck of the Sea III Book", ("luck_of_the_sea", 3)),
        ("Sharpness X Book", ("sharpness", 10)),
        ("sharpness v Book", None),
        ("smite V Book", ("smite", 5)),
    ])
    def test_labels(self, label, expected):
        assert parse_book_item(label) == expected

    def test_not_a_book(self):
        assert parse_book_item("Netherite Sword") is None
        assert parse_book_item("Enchanted Book ") is None

    def test_unknown_enchantment(self):
        assert parse_book_item("Vorpal III Book") is None
        assert parse_book_item("Enchanted Book") is None


# ---------------------------------------------------------------------------
# Tests: generate_bom
# ---------------------------------------------------------------------------

class TestGenerateBom:
    def test_items_sorted_books_first(self, sword_bom):
        labels = [item.item for item in sword_bom.items]
        assert labels == [
            "Mending Book",
            "Sharpness V Book",
            "Unbreaking III Book",
            "Netherite Sword",
        ]

    def test_book_details(self, sword_bom):
        first = sword_bom.items[0]
        assert first.item_type == BOOK
        assert first.enchantment == "mending"
        assert first.enchantment_level == 1
        assert first.quantity == 1

    def test_base_item_resolved(self, sword_bom):
        assert sword_bom.base_item == BaseItem("sword", "Netherite Sword", "netherite")
        assert sword_bom.items[-1].item_type == BASE_ITEM
        assert sword_bom.book_count == 3
        assert sword_bom.total_quantity == 4

    def test_bare_leaf(self):
        bom = generate_bom(LeafNode("node_1", "Bow"))
        assert [item.item for item in bom.items] == ["Bow"]
        assert bom.base_item.type == "bow"

    def test_duplicates_merged(self, messy_tree):
        bom = generate_bom(messy_tree)
        smite = bom.items[0]
        assert smite.item == "Smite V Book"
        assert smite.quantity == 2

    def test_unresolvable_book_dropped(self, messy_tree):
        logger, buffer = create_string_logger(LogLevel.MINIMAL)
        bom = generate_bom(messy_tree, logger=logger)
        assert "Vorpal III Book" not in [item.item for item in bom.items]
        assert len(bom.items) == 2
        assert "Could not resolve book 'Vorpal III Book'" in buffer.getvalue()

    def test_explicit_empty_catalog_drops_books(self):
        recipe = compute_recipe([{"sharpness": 5}, {"unbreaking": 3}], "Netherite Sword")
        bom = generate_bom(recipe.tree, EnchantmentCatalog([]))
        assert [item.item for item in bom.items] == ["Netherite Sword"]
        assert parse_book_item("Sharpness V Book", EnchantmentCatalog([])) is None

    def test_unknown_base_item_fallback(self, messy_tree):
        bom = generate_bom(messy_tree)
        assert bom.base_item == BaseItem("sword", "Mystery Blade")
        assert bom.items[-1].item == "Mystery Blade"

    def test_no_base_leaf_fallback(self):
        bom = generate_bom(LeafNode("node_1", "Mending Book"))
        assert bom.base_item.display_name == "Unknown Item"


# ---------------------------------------------------------------------------
# Tests: aggregate_boms
# ---------------------------------------------------------------------------

class TestAggregate:
    def test_empty(self):
        bom = aggregate_boms([])
        assert bom.items == []
        assert bom.base_item == BaseItem("sword", "None")

    def test_single_is_identity(self, sword_bom):
        assert aggregate_boms([sword_bom]) is sword_bom

    def test_quantities_summed(self, sword_bom):
        boots = generate_bom(compute_recipe([{"unbreaking": 3}, {"feather_falling": 4}],
                                            "Diamond Boots").tree)
        combined = aggregate_boms([sword_bom, boots])

        by_label = {item.item: item.quantity for item in combined.items}
        assert by_label["Unbreaking III Book"] == 2
        assert by_label["Feather Falling IV Book"] == 1
        assert by_label["Netherite Sword"] == 1
        assert by_label["Diamond Boots"] == 1
        assert combined.base_item == sword_bom.base_item

    def test_order_books_then_base_items(self, sword_bom):
        other = BillOfMaterials(items=[BOMItem("Bow", BASE_ITEM),
                                       BOMItem("Power V Book", BOOK, "power", 5)])
        combined = aggregate_boms([sword_bom, other])
        types = [item.item_type for item in combined.items]
        assert types == sorted(types, key=lambda t: t != BOOK)
        assert [item.item for item in combined.items][-2:] == ["Bow", "Netherite Sword"]

    def test_inputs_not_mutated(self, sword_bom):
        before = [(item.item, item.quantity) for item in sword_bom.items]
        aggregate_boms([sword_bom, sword_bom])
        assert [(item.item, item.quantity) for item in sword_bom.items] == before

    def test_same_book_different_levels_kept_apart(self):
        a = BillOfMaterials(items=[BOMItem("Sharpness IV Book", BOOK, "sharpness", 4)])
        b = BillOfMaterials(items=[BOMItem("Sharpness V Book", BOOK, "sharpness", 5)])
        assert len(aggregate_boms([a, b]).items) == 2


# ---------------------------------------------------------------------------
# Tests: DataFrame export
# ---------------------------------------------------------------------------

class TestBomFrame:
    def test_columns_and_rows(self, sword_bom):
        df = bom_to_frame(sword_bom)
        assert list(df.columns) == BOM_COLUMNS
        assert len(df) == 4
        assert df["quantity"].sum() == 4
        assert df.loc[0, "enchantment"] == "mending"
        assert df.loc[0, "enchantment_level"] == 1

    def test_base_item_level_is_missing(self, sword_bom):
        df = bom_to_frame(sword_bom)
        assert df["enchantment_level"].isna().tolist() == [False, False, False, True]

    def test_empty(self):
        df = bom_to_frame(BillOfMaterials())
        assert list(df.columns) == BOM_COLUMNS
        assert df.empty
