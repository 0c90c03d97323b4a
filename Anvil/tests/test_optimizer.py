"""Tests for the anvil combination optimizer.

Validates that:
1. The per-operation cost formula (PWP + book/item multipliers) is applied
2. Zero / one / many enchantment requests produce the expected tree shapes
3. The cheapest ordering is found, and results are deterministic
4. Survival cap violations yield an infeasible (not raising) result
5. Cost modifier rules change book multipliers; input guards raise early
"""
from __future__ import annotations

import math
from itertools import permutations

import pytest

from Anvil.enchantments import EnchantmentCatalog, EnchantmentData, UnknownEnchantmentError
from Anvil.optimizer import (
    ENCHANTED_BOOK_LABEL,
    SURVIVAL_CAP,
    AnvilOptimizer,
    TooManyEnchantmentsError,
    WorkItem,
    calculate_combine_cost,
    compute_optimal_tree,
    compute_recipe,
    is_recipe_valid,
    parse_enchantment_specs,
    pwp_cost,
    try_linear_order,
)
from Anvil.rules import CostModifier, CostModifierRule, RulesEngine
from Anvil.solver_logging import LogLevel, create_string_logger
from Anvil.tree import (
    CombineNode,
    LeafNode,
    count_combine_nodes,
    iter_leaves,
    iter_steps,
    tree_to_dict,
)
from Anvil.xp_calc import level_to_xp

SWORD = "Netherite Sword"

GOD_SWORD = [
    {"sharpness": 5},
    {"looting": 3},
    {"fire_aspect": 2},
    {"unbreaking": 3},
    {"mending": 1},
    {"smite": 5},
    {"efficiency": 5},
]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def god_sword_recipe():
    return compute_recipe(GOD_SWORD, SWORD)


@pytest.fixture(scope="module")
def heavy_catalog() -> EnchantmentCatalog:
    """Synthetic table where every ordering of both books breaks the cap."""
    return EnchantmentCatalog([
        EnchantmentData("heavy_a", "Heavy A", 5, 4, 8),
        EnchantmentData("heavy_b", "Heavy B", 5, 4, 8),
        EnchantmentData("anvil_breaker", "Anvil Breaker", 5, 10, 20),
    ])


def _book(ench_id: str, level: int, pwp: int = 0) -> WorkItem:
    leaf = LeafNode(id="n", item=f"{ench_id} Book", enchantment=(ench_id, level))
    return WorkItem(((ench_id, level),), pwp, False, leaf.item, leaf)


# ---------------------------------------------------------------------------
# Tests: cost model
# ---------------------------------------------------------------------------

class TestCostModel:
    @pytest.mark.parametrize("count,cost", [(0, 0), (1, 1), (2, 3), (3, 7), (4, 15), (5, 31)])
    def test_pwp_cost(self, count, cost):
        assert pwp_cost(count) == cost

    def test_book_sacrifice_uses_book_multiplier(self):
        base = WorkItem((), 0, True, SWORD, LeafNode(id="b", item=SWORD))
        # mending: book 2
        assert calculate_combine_cost(base, _book("mending", 1)) == 2

    def test_pwp_of_both_sides_added(self):
        target = _book("sharpness", 5, pwp=2)
        sacrifice = _book("unbreaking", 3, pwp=1)
        assert calculate_combine_cost(target, sacrifice) == 3 + 1 + 3

    def test_item_sacrifice_uses_item_multiplier(self):
        target = WorkItem((), 0, True, SWORD, LeafNode(id="a", item=SWORD))
        sacrifice = WorkItem((("smite", 5),), 0, True, SWORD, LeafNode(id="b", item=SWORD))
        # smite: item 2
        assert calculate_combine_cost(target, sacrifice) == 10

    def test_unknown_enchantment_contributes_nothing(self):
        base = WorkItem((), 1, True, SWORD, LeafNode(id="b", item=SWORD))
        assert calculate_combine_cost(base, _book("not_real", 5)) == 1

    def test_rule_modifier_floors_contribution(self):
        rules = RulesEngine([CostModifierRule(
            id="x", enchantments=("unbreaking",), modifier=CostModifier(0, 1.5))])
        base = WorkItem((), 0, True, SWORD, LeafNode(id="b", item=SWORD))
        # 3 * 1.5 = 4.5 -> 4
        assert calculate_combine_cost(base, _book("unbreaking", 3), rules=rules) == 4

    def test_parse_specs(self):
        pairs = parse_enchantment_specs([{"smite": 5}, ("looting", 3),
                                         {"unbreaking": 3, "mending": 1}])
        assert pairs == [("smite", 5), ("looting", 3), ("unbreaking", 3), ("mending", 1)]


# ---------------------------------------------------------------------------
# Tests: small requests
# ---------------------------------------------------------------------------

class TestSmallRequests:
    def test_no_enchantments(self):
        recipe = compute_recipe([], SWORD)
        assert isinstance(recipe.tree, LeafNode)
        assert recipe.tree.item == SWORD
        assert recipe.tree.id == "node_1"
        assert recipe.total_level_cost == 0
        assert recipe.total_xp_cost == 0
        assert recipe.total_xp_cost_bulk == 0
        assert recipe.step_count == 0
        assert recipe.is_valid

    def test_single_sharpness(self):
        recipe = compute_recipe([{"sharpness": 5}], SWORD)
        assert count_combine_nodes(recipe.tree) == 1
        assert recipe.step_count == 1
        assert recipe.total_level_cost == 5
        assert recipe.total_xp_cost == level_to_xp(5) == 55
        assert recipe.total_xp_cost_bulk == 55

        root = recipe.tree
        assert isinstance(root, CombineNode)
        assert root.left.label == SWORD
        assert root.right.label == "Sharpness V Book"
        assert root.result_label == SWORD
        assert root.enchantments == ("Sharpness V",)

    def test_single_level_enchantment_has_no_numeral(self):
        recipe = compute_recipe([{"mending": 1}], SWORD)
        root = recipe.tree
        assert root.right.label == "Mending Book"
        assert root.level_cost == 2
        assert root.resulting_pwp == 1
        assert root.result_label == SWORD

    def test_two_books_cheapest_order(self):
        # unbreaking first: 5 + 9 = 14; sharpness first: 3 + 9 = 12
        recipe = compute_recipe([{"unbreaking": 3}, {"sharpness": 5}], SWORD)
        assert recipe.total_level_cost == 12
        assert recipe.step_costs == [3, 9]
        assert recipe.total_xp_cost == level_to_xp(3) + level_to_xp(9) == 162
        assert recipe.total_xp_cost_bulk == level_to_xp(9) == 135

    def test_two_books_tree_layout(self):
        tree = compute_recipe([{"sharpness": 5}, {"unbreaking": 3}], SWORD).tree
        assert tree.id == "node_5"
        assert tree.left.id == "node_3" and tree.left.label == SWORD
        merged = tree.right
        assert merged.id == "node_4"
        assert merged.result_label == ENCHANTED_BOOK_LABEL
        assert merged.left.id == "node_1" and merged.left.label == "Sharpness V Book"
        assert merged.right.id == "node_2" and merged.right.label == "Unbreaking III Book"
        assert tree.enchantments == ("Sharpness V", "Unbreaking III")
        assert merged.resulting_pwp == 1 and tree.resulting_pwp == 2

    def test_multi_key_spec(self):
        split = compute_recipe([{"sharpness": 5}, {"unbreaking": 3}], SWORD)
        joined = compute_recipe([{"sharpness": 5, "unbreaking": 3}], SWORD)
        assert joined.to_dict() == split.to_dict()

    def test_compute_optimal_tree_matches_recipe(self):
        specs = [{"sharpness": 5}, {"unbreaking": 3}]
        assert compute_optimal_tree(specs, SWORD) == compute_recipe(specs, SWORD).tree


# ---------------------------------------------------------------------------
# Tests: full search
# ---------------------------------------------------------------------------

class TestGodSword:
    """Seven books: feasible only because the merged book is applied last."""

    def test_feasible(self, god_sword_recipe):
        assert god_sword_recipe.is_valid
        assert is_recipe_valid(GOD_SWORD, SWORD)

    def test_step_count(self, god_sword_recipe):
        assert god_sword_recipe.step_count == 7
        assert count_combine_nodes(god_sword_recipe.tree) == 7

    def test_final_step_cost(self, god_sword_recipe):
        # book values 5+6+4+3+2+5+5 = 30, merged book PWP 3 -> 7
        root = god_sword_recipe.tree
        assert root.level_cost == 37
        assert root.result_label == SWORD
        assert god_sword_recipe.step_costs[-1] == 37

    def test_every_step_within_cap(self, god_sword_recipe):
        assert all(step.level_cost <= SURVIVAL_CAP for step in iter_steps(god_sword_recipe.tree))
        assert god_sword_recipe.max_step_cost == 37

    def test_totals_consistent(self, god_sword_recipe):
        steps = [step.level_cost for step in iter_steps(god_sword_recipe.tree)]
        assert steps == god_sword_recipe.step_costs
        assert sum(steps) == god_sword_recipe.total_level_cost
        assert god_sword_recipe.total_xp_cost == sum(level_to_xp(c) for c in steps)
        assert god_sword_recipe.total_xp_cost_bulk == level_to_xp(37)

    def test_leaves_are_seven_books_and_sword(self, god_sword_recipe):
        leaves = list(iter_leaves(god_sword_recipe.tree))
        assert len(leaves) == 8
        assert sum(1 for leaf in leaves if leaf.is_book) == 7
        assert [leaf.item for leaf in leaves if not leaf.is_book] == [SWORD]

    def test_node_ids_unique(self, god_sword_recipe):
        ids = [leaf.id for leaf in iter_leaves(god_sword_recipe.tree)]
        ids += [step.id for step in iter_steps(god_sword_recipe.tree)]
        assert len(ids) == len(set(ids)) == 15

    def test_best_is_no_worse_than_any_single_order(self, god_sword_recipe):
        linear = try_linear_order(GOD_SWORD, SWORD)
        assert linear.is_valid
        assert god_sword_recipe.total_level_cost <= linear.total_level_cost

    def test_deterministic(self, god_sword_recipe):
        again = compute_recipe(GOD_SWORD, SWORD)
        assert again.to_dict() == god_sword_recipe.to_dict()


# ---------------------------------------------------------------------------
# Tests: search order
# ---------------------------------------------------------------------------

COMPATIBLE_SWORD = [
    {"sharpness": 5},
    {"looting": 3},
    {"fire_aspect": 2},
    {"unbreaking": 3},
    {"mending": 1},
    {"knockback": 2},
    {"sweeping_edge": 3},
]


def _one_at_a_time_costs(pairs, base_item_name: str = SWORD):
    """Step costs of applying each book straight onto the item, in order."""
    item = WorkItem((), 0, True, base_item_name, LeafNode(id="base", item=base_item_name))
    costs = []
    for ench_id, level in pairs:
        costs.append(calculate_combine_cost(item, _book(ench_id, level)))
        item = WorkItem(item.enchantments + ((ench_id, level),), item.pwp + 1, True,
                        base_item_name, item.node)
    return costs


def _unpruned_best(optimizer: AnvilOptimizer, specs, base_item_name: str = SWORD):
    pairs = optimizer._sorted(parse_enchantment_specs(specs))
    best = None
    for order in permutations(pairs):
        attempt = optimizer._evaluate(order, base_item_name)
        if attempt.valid and (best is None or attempt.total_cost < best.total_cost):
            best = attempt
    return best


class TestSearchOrder:
    def test_feasible_where_one_at_a_time_breaks_cap(self):
        pairs = parse_enchantment_specs(COMPATIBLE_SWORD)
        # 7th book onto an item with 6 prior works: 63 + 6
        assert max(_one_at_a_time_costs(pairs)) > SURVIVAL_CAP

        recipe = compute_recipe(COMPATIBLE_SWORD, SWORD)
        assert recipe.is_valid
        assert recipe.step_count == 7
        assert max(recipe.step_costs) <= SURVIVAL_CAP
        # 7 for three prior works plus 28 enchantment levels
        assert recipe.step_costs[-1] == 35

    @pytest.fixture(scope="class")
    def tie_catalog(self) -> EnchantmentCatalog:
        # Both books weigh 2 (1 x 2 and 2 x 1), so every order costs 2 + 5
        return EnchantmentCatalog([
            EnchantmentData("tie_a", "Tie A", 1, 2, 4),
            EnchantmentData("tie_b", "Tie B", 2, 1, 2),
        ])

    @pytest.mark.parametrize("specs,first", [
        ([{"tie_a": 1}, {"tie_b": 2}], ("tie_a", 1)),
        ([{"tie_b": 2}, {"tie_a": 1}], ("tie_b", 2)),
    ])
    def test_ties_keep_first_ordering(self, tie_catalog, specs, first):
        recipe = compute_recipe(specs, SWORD, catalog=tie_catalog)
        assert recipe.total_level_cost == 7
        assert recipe.step_costs == [2, 5]
        books = recipe.tree.right
        assert books.left.enchantment == first
        assert books.left.id == "node_1"

    @pytest.mark.parametrize("specs", [
        [{"sharpness": 5}, {"unbreaking": 3}, {"mending": 1}],
        [{"looting": 3}, {"fire_aspect": 2}, {"knockback": 2}, {"mending": 1}],
        [{"smite": 5}, {"sweeping_edge": 3}, {"unbreaking": 3}, {"looting": 3}, {"mending": 1}],
        COMPATIBLE_SWORD[:6],
    ])
    def test_pruning_matches_full_search(self, specs):
        optimizer = AnvilOptimizer()
        expected = _unpruned_best(optimizer, specs)
        recipe = optimizer.compute_recipe(specs, SWORD)
        assert recipe.total_level_cost == expected.total_cost
        assert recipe.step_costs == expected.step_costs
        assert tree_to_dict(recipe.tree) == tree_to_dict(expected.tree)


# ---------------------------------------------------------------------------
# Tests: infeasible requests
# ---------------------------------------------------------------------------

class TestInfeasible:
    def test_every_order_breaks_cap(self, heavy_catalog):
        # book + book = 20, then 1 + 40 = 41 > 39 either way round
        recipe = compute_recipe([{"heavy_a": 5}, {"heavy_b": 5}], SWORD, catalog=heavy_catalog)
        assert not recipe.is_valid
        assert math.isinf(recipe.total_level_cost)
        assert isinstance(recipe.tree, LeafNode)
        assert recipe.tree.item == SWORD
        assert recipe.step_count == 0
        assert recipe.total_xp_cost == 0
        assert recipe.total_xp_cost_bulk == 0

    def test_single_book_over_cap(self, heavy_catalog):
        recipe = compute_recipe([{"anvil_breaker": 5}], SWORD, catalog=heavy_catalog)
        assert not recipe.is_valid
        assert recipe.tree.label == SWORD

    def test_lower_cap(self):
        specs = [{"sharpness": 5}, {"unbreaking": 3}]
        assert is_recipe_valid(specs, SWORD)
        assert not is_recipe_valid(specs, SWORD, survival_cap=8)

    def test_infeasible_to_dict(self, heavy_catalog):
        data = compute_recipe([{"anvil_breaker": 5}], SWORD, catalog=heavy_catalog).to_dict()
        assert data["isValid"] is False
        assert data["totalLevelCost"] is None
        assert data["tree"]["kind"] == "leaf"

    def test_infeasible_is_logged(self, heavy_catalog):
        logger, buffer = create_string_logger(LogLevel.MINIMAL)
        compute_recipe([{"anvil_breaker": 5}], SWORD, catalog=heavy_catalog, logger=logger)
        assert "Too Expensive" in buffer.getvalue()


# ---------------------------------------------------------------------------
# Tests: linear order, rules and guards
# ---------------------------------------------------------------------------

class TestLinearOrder:
    def test_given_order_is_used(self):
        recipe = try_linear_order([("unbreaking", 3), ("sharpness", 5)], SWORD)
        assert recipe.step_costs == [5, 9]
        assert recipe.total_level_cost == 14

    def test_reports_cap_violation(self):
        recipe = try_linear_order([("unbreaking", 3), ("sharpness", 5)], SWORD, survival_cap=8)
        assert not recipe.is_valid
        assert recipe.step_costs == [5]


class TestRulesAndGuards:
    def test_cost_modifier_applied(self):
        rules = RulesEngine([CostModifierRule(
            id="x", enchantments=("sharpness",), modifier=CostModifier(1, 1))])
        recipe = compute_recipe([{"sharpness": 5}], SWORD, rules=rules)
        assert recipe.total_level_cost == 10

    def test_disabled_modifier_ignored(self):
        rules = RulesEngine([CostModifierRule(
            id="x", enchantments=("sharpness",), modifier=CostModifier(1, 1), enabled=False)])
        assert compute_recipe([{"sharpness": 5}], SWORD, rules=rules).total_level_cost == 5

    def test_unknown_enchantment_raises(self):
        with pytest.raises(UnknownEnchantmentError):
            compute_recipe([{"sharpnes": 5}], SWORD)

    def test_unknown_enchantment_is_key_error(self):
        with pytest.raises(KeyError):
            compute_recipe([{"sharpness": 5}, {"vorpal": 3}], SWORD)

    def test_too_many_enchantments(self):
        specs = [{"protection": 4}, {"unbreaking": 3}, {"mending": 1}, {"thorns": 3},
                 {"respiration": 3}, {"aqua_affinity": 1}, {"feather_falling": 4},
                 {"depth_strider": 3}, {"soul_speed": 3}]
        with pytest.raises(TooManyEnchantmentsError):
            compute_recipe(specs, "Diamond Boots")

    def test_explicit_empty_catalog_is_kept(self):
        empty = EnchantmentCatalog([])
        optimizer = AnvilOptimizer(catalog=empty)
        assert optimizer.catalog is empty
        with pytest.raises(UnknownEnchantmentError):
            optimizer.compute_recipe([{"sharpness": 5}], SWORD)
        # Only the prior work penalties remain
        assert calculate_combine_cost(_book("sharpness", 5, pwp=1),
                                      _book("unbreaking", 3, pwp=1), empty) == 2

    def test_configurable_guard(self):
        optimizer = AnvilOptimizer(max_enchantments=1)
        with pytest.raises(TooManyEnchantmentsError):
            optimizer.compute_recipe([{"sharpness": 5}, {"unbreaking": 3}], SWORD)

    def test_search_is_traced(self):
        logger, buffer = create_string_logger(LogLevel.TRACE)
        compute_recipe([{"sharpness": 5}, {"unbreaking": 3}, {"mending": 1}], SWORD, logger=logger)
        output = buffer.getvalue()
        assert "Searching 6 orderings of 3 books" in output
        assert "Evaluated 6 orderings" in output
        assert "Anvil Steps" in output
