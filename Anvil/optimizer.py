"""
Anvil combination optimizer.

Finds the cheapest way to merge a list of enchanted books onto a base item.

Cost of one anvil operation (target in the left slot, sacrifice in the right):

    pwp_cost(target.pwp) + pwp_cost(sacrifice.pwp)
        + sum(level * multiplier for each enchantment on the sacrifice)

where ``pwp_cost(n) = 2**n - 1`` and the multiplier is the enchantment's book
multiplier, or its item multiplier when the sacrifice is the base item. The
result's prior work penalty count is ``max(target.pwp, sacrifice.pwp) + 1``.

Search: books are pre-sorted by ``level * book multiplier`` and every
permutation is tried. Each permutation is reduced as a balanced tournament
(books 0+1, 2+3, ...; an odd book carries forward) and the merged book is
then applied to the base item. Any step above the survival cap rejects the
permutation. The cheapest feasible permutation wins, first-seen on ties.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from itertools import permutations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .enchantments import EnchantmentCatalog, default_catalog
from .rules import RulesEngine
from .solver_logging import LogLevel, SolverLogger, resolve_logger
from .tree import CombineNode, LeafNode, NodeIdSequence, TreeNode, tree_to_dict
from .xp_calc import calculate_bulk_xp, calculate_incremental_xp, level_to_xp

# Survival mode: any single operation above this is "Too Expensive!"
SURVIVAL_CAP = 39

# Permutation search is factorial; 8! = 40320 orderings is the default ceiling
MAX_ENCHANTMENTS = 8

ENCHANTED_BOOK_LABEL = "Enchanted Book"

EnchantmentSpec = Union[Mapping[str, int], Tuple[str, int]]


class TooManyEnchantmentsError(ValueError):
    """Raised when a request has more enchantments than the search allows."""


# ---------------------------------------------------------------------------
# Work items and cost model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkItem:
    """
    An item on the anvil during one optimization attempt.

    Attributes
    ----------
    enchantments : tuple[(str, int), ...]
        (enchantment id, level) pairs currently carried.
    pwp : int
        Prior work penalty *count* (number of earlier anvil operations).
    is_base_item : bool
        True for the item being enchanted, False for a book.
    display_name : str
        "Sharpness V Book", "Enchanted Book" or the base item's name.
    node : TreeNode
        How this item was produced.
    """
    enchantments: Tuple[Tuple[str, int], ...]
    pwp: int
    is_base_item: bool
    display_name: str
    node: TreeNode


def pwp_cost(pwp_count: int) -> int:
    """Level cost of a prior work penalty count: ``2**n - 1``."""
    return 2 ** pwp_count - 1


def calculate_combine_cost(
    target: WorkItem,
    sacrifice: WorkItem,
    catalog: Optional[EnchantmentCatalog] = None,
    rules: Optional[RulesEngine] = None,
) -> int:
    """
    Level cost of putting ``sacrifice`` onto ``target``.

    Enchantments missing from the catalog contribute nothing. With a rules
    engine the book multiplier is adjusted by any cost modifier, and each
    enchantment's contribution is floored to whole levels.
    """
    catalog = catalog if catalog is not None else default_catalog()

    cost = pwp_cost(target.pwp) + pwp_cost(sacrifice.pwp)
    for ench_id, level in sacrifice.enchantments:
        ench = catalog.get(ench_id)
        if ench is None:
            continue
        if sacrifice.is_base_item:
            multiplier: float = ench.item_multiplier
        elif rules is not None:
            multiplier = rules.effective_book_multiplier(ench_id, ench.book_multiplier)
        else:
            multiplier = ench.book_multiplier
        cost += int(math.floor(level * multiplier))
    return cost


def parse_enchantment_specs(specs: Iterable[EnchantmentSpec]) -> List[Tuple[str, int]]:
    """
    Flatten enchantment specs into (id, level) pairs.

    Accepts single-key mappings (``{"smite": 5}``) and ``(id, level)`` pairs;
    a multi-key mapping contributes every pair in insertion order.
    """
    pairs: List[Tuple[str, int]] = []
    for spec in specs:
        if isinstance(spec, Mapping):
            pairs.extend((str(ench_id), int(level)) for ench_id, level in spec.items())
        else:
            ench_id, level = spec
            pairs.append((str(ench_id), int(level)))
    return pairs


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ComputedRecipe:
    """
    Optimal recipe for one base item and enchantment list.

    Infeasible recipes keep the bare base item leaf as ``tree`` and
    ``math.inf`` as ``total_level_cost``; check ``is_valid`` before
    trusting the totals.
    """
    tree: TreeNode
    total_level_cost: float
    total_xp_cost: int
    total_xp_cost_bulk: int
    step_count: int
    step_costs: List[int] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not math.isinf(self.total_level_cost)

    @property
    def max_step_cost(self) -> int:
        return max(self.step_costs, default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tree": tree_to_dict(self.tree),
            "totalLevelCost": self.total_level_cost if self.is_valid else None,
            "totalXpCost": self.total_xp_cost,
            "totalXpCostBulk": self.total_xp_cost_bulk,
            "stepCount": self.step_count,
            "stepCosts": list(self.step_costs),
            "isValid": self.is_valid,
        }


@dataclass
class _Attempt:
    tree: TreeNode
    total_cost: float
    step_costs: List[int]
    valid: bool
    pruned: bool = False


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------

class AnvilOptimizer:
    """
    Permutation-search optimizer bound to one enchantment table.

    Parameters
    ----------
    catalog : EnchantmentCatalog, optional
        Enchantment metadata. Defaults to the packaged table.
    rules : RulesEngine, optional
        Rule overlay; only cost modifiers affect the search.
    survival_cap : int
        Highest allowed level cost of a single operation.
    max_enchantments : int
        Requests with more enchantments raise TooManyEnchantmentsError.
    logger : SolverLogger, optional
        Defaults to a silent logger.
    """

    def __init__(
        self,
        catalog: Optional[EnchantmentCatalog] = None,
        rules: Optional[RulesEngine] = None,
        survival_cap: int = SURVIVAL_CAP,
        max_enchantments: int = MAX_ENCHANTMENTS,
        logger: Optional[SolverLogger] = None,
    ):
        self.catalog = catalog if catalog is not None else default_catalog()
        self.rules = rules
        self.survival_cap = survival_cap
        self.max_enchantments = max_enchantments
        self.logger = resolve_logger(logger)

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def book_multiplier(self, ench_id: str) -> float:
        ench = self.catalog.require(ench_id)
        if self.rules is None:
            return ench.book_multiplier
        return self.rules.effective_book_multiplier(ench_id, ench.book_multiplier)

    def combine_cost(self, target: WorkItem, sacrifice: WorkItem) -> int:
        return calculate_combine_cost(target, sacrifice, self.catalog, self.rules)

    def _book(self, ench_id: str, level: int, ids: NodeIdSequence) -> WorkItem:
        formatted = self.catalog.format(ench_id, level)
        label = f"{formatted} Book"
        leaf = LeafNode(
            id=ids.next_id(),
            item=label,
            enchantments=(formatted,),
            enchantment=(ench_id, level),
        )
        return WorkItem(((ench_id, level),), 0, False, label, leaf)

    def _base(self, base_item_name: str, ids: NodeIdSequence) -> WorkItem:
        leaf = LeafNode(id=ids.next_id(), item=base_item_name)
        return WorkItem((), 0, True, base_item_name, leaf)

    def _combine(self, target: WorkItem, sacrifice: WorkItem,
                 ids: NodeIdSequence) -> Tuple[WorkItem, int]:
        cost = self.combine_cost(target, sacrifice)
        new_pwp = max(target.pwp, sacrifice.pwp) + 1
        merged = target.enchantments + sacrifice.enchantments
        label = target.display_name if target.is_base_item else ENCHANTED_BOOK_LABEL

        node = CombineNode(
            id=ids.next_id(),
            left=target.node,
            right=sacrifice.node,
            level_cost=cost,
            xp_cost=level_to_xp(cost),
            resulting_pwp=new_pwp,
            result_label=label,
            enchantments=tuple(self.catalog.format(e, lvl) for e, lvl in merged),
        )
        return WorkItem(merged, new_pwp, target.is_base_item, label, node), cost

    def _check_request(self, pairs: Sequence[Tuple[str, int]]) -> None:
        for ench_id, _ in pairs:
            self.catalog.require(ench_id)
        if len(pairs) > self.max_enchantments:
            raise TooManyEnchantmentsError(
                f"{len(pairs)} enchantments requested; at most "
                f"{self.max_enchantments} can be searched"
            )

    def _sorted(self, pairs: Sequence[Tuple[str, int]]) -> List[Tuple[str, int]]:
        # Stable: equal keys keep request order
        return sorted(pairs, key=lambda p: p[1] * self.book_multiplier(p[0]))

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def _evaluate(
        self,
        order: Sequence[Tuple[str, int]],
        base_item_name: str,
        bound: float = math.inf,
    ) -> _Attempt:
        """Build the tournament tree for one ordering of books."""
        ids = NodeIdSequence()
        books = [self._book(ench_id, level, ids) for ench_id, level in order]
        base = self._base(base_item_name, ids)

        if not books:
            return _Attempt(base.node, 0, [], True)

        step_costs: List[int] = []
        running = 0

        while len(books) > 1:
            next_round: List[WorkItem] = []
            for i in range(0, len(books), 2):
                if i + 1 >= len(books):
                    next_round.append(books[i])
                    continue
                merged, cost = self._combine(books[i], books[i + 1], ids)
                if cost > self.survival_cap:
                    return _Attempt(base.node, math.inf, step_costs, False)
                step_costs.append(cost)
                running += cost
                if running >= bound:
                    return _Attempt(base.node, math.inf, step_costs, False, pruned=True)
                next_round.append(merged)
            books = next_round

        final, cost = self._combine(base, books[0], ids)
        if cost > self.survival_cap:
            return _Attempt(base.node, math.inf, step_costs, False)
        step_costs.append(cost)
        running += cost
        if running >= bound:
            return _Attempt(base.node, math.inf, step_costs, False, pruned=True)

        return _Attempt(final.node, running, step_costs, True)

    def _search(self, pairs: Sequence[Tuple[str, int]], base_item_name: str) -> _Attempt:
        if len(pairs) <= 1:
            return self._evaluate(pairs, base_item_name)

        num_orderings = math.factorial(len(pairs))
        self.logger.log_search_space(len(pairs), num_orderings)
        start = time.perf_counter()

        best: Optional[_Attempt] = None
        improving = 0
        pruned = 0
        for index, order in enumerate(permutations(pairs)):
            bound = best.total_cost if best is not None else math.inf
            attempt = self._evaluate(order, base_item_name, bound)

            if attempt.pruned:
                pruned += 1
                status = "pruned"
            elif not attempt.valid:
                status = "too_expensive"
            else:
                best = attempt
                improving += 1
                status = "best"

            self.logger.log_permutation_result(
                index, [ench_id for ench_id, _ in order], attempt.total_cost, status)

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.logger.log_search_complete(num_orderings, improving, pruned, elapsed_ms)

        if best is None:
            base = self._base(base_item_name, NodeIdSequence())
            return _Attempt(base.node, math.inf, [], False)
        return best

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def compute_recipe(self, specs: Iterable[EnchantmentSpec],
                       base_item_name: str) -> ComputedRecipe:
        """
        Compute the cheapest recipe for ``specs`` on ``base_item_name``.

        Raises
        ------
        UnknownEnchantmentError
            If any enchantment id is not in the catalog.
        TooManyEnchantmentsError
            If the request exceeds ``max_enchantments``.
        """
        pairs = parse_enchantment_specs(specs)
        self._check_request(pairs)
        self.logger.log_request_start(base_item_name, pairs)

        result = self._search(self._sorted(pairs), base_item_name)
        recipe = self._to_recipe(result)

        if recipe.is_valid:
            self.logger.log_recipe(recipe)
        else:
            self.logger.log_infeasible(base_item_name, self.survival_cap)
        return recipe

    def compute_optimal_tree(self, specs: Iterable[EnchantmentSpec],
                             base_item_name: str) -> TreeNode:
        return self.compute_recipe(specs, base_item_name).tree

    def is_recipe_valid(self, specs: Iterable[EnchantmentSpec],
                        base_item_name: str) -> bool:
        return self.compute_recipe(specs, base_item_name).is_valid

    def try_linear_order(self, specs: Iterable[EnchantmentSpec],
                         base_item_name: str) -> ComputedRecipe:
        """Evaluate exactly the given book order: no sorting, no search."""
        pairs = parse_enchantment_specs(specs)
        self._check_request(pairs)
        result = self._evaluate(pairs, base_item_name)
        if not result.valid:
            self.logger._log(LogLevel.DEBUG, "SEARCH",
                             f"Order exceeds cap {self.survival_cap} "
                             f"after {len(result.step_costs)} step(s)")
        return self._to_recipe(result)

    @staticmethod
    def _to_recipe(result: _Attempt) -> ComputedRecipe:
        if not result.valid:
            return ComputedRecipe(result.tree, math.inf, 0, 0, 0, list(result.step_costs))
        return ComputedRecipe(
            tree=result.tree,
            total_level_cost=result.total_cost,
            total_xp_cost=calculate_incremental_xp(result.step_costs),
            total_xp_cost_bulk=calculate_bulk_xp(result.step_costs),
            step_count=len(result.step_costs),
            step_costs=list(result.step_costs),
        )


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------

def _optimizer(
    catalog: Optional[EnchantmentCatalog],
    rules: Optional[RulesEngine],
    survival_cap: int,
    max_enchantments: int,
    logger: Optional[SolverLogger],
    log_level: Union[LogLevel, str, int, None],
) -> AnvilOptimizer:
    return AnvilOptimizer(
        catalog=catalog,
        rules=rules,
        survival_cap=survival_cap,
        max_enchantments=max_enchantments,
        logger=resolve_logger(logger, log_level),
    )


def compute_recipe(
    specs: Iterable[EnchantmentSpec],
    base_item_name: str,
    catalog: Optional[EnchantmentCatalog] = None,
    rules: Optional[RulesEngine] = None,
    survival_cap: int = SURVIVAL_CAP,
    max_enchantments: int = MAX_ENCHANTMENTS,
    logger: Optional[SolverLogger] = None,
    log_level: Union[LogLevel, str, int, None] = None,
) -> ComputedRecipe:
    """
    Compute the optimal anvil recipe.

    Parameters
    ----------
    specs : iterable
        Enchantments to apply, e.g. ``[{"smite": 5}, {"looting": 3}]``.
    base_item_name : str
        Display name of the base item, e.g. ``"Netherite Sword"``.
    catalog, rules, survival_cap, max_enchantments
        See :class:`AnvilOptimizer`.
    logger : SolverLogger, optional
        Pre-configured logger. If None, one is created based on log_level.
    log_level : LogLevel | str | int, optional
        Logging verbosity. Only used if logger is None.

    Returns
    -------
    ComputedRecipe
    """
    optimizer = _optimizer(catalog, rules, survival_cap, max_enchantments, logger, log_level)
    return optimizer.compute_recipe(specs, base_item_name)


def compute_optimal_tree(
    specs: Iterable[EnchantmentSpec],
    base_item_name: str,
    catalog: Optional[EnchantmentCatalog] = None,
    rules: Optional[RulesEngine] = None,
    survival_cap: int = SURVIVAL_CAP,
    max_enchantments: int = MAX_ENCHANTMENTS,
    logger: Optional[SolverLogger] = None,
    log_level: Union[LogLevel, str, int, None] = None,
) -> TreeNode:
    optimizer = _optimizer(catalog, rules, survival_cap, max_enchantments, logger, log_level)
    return optimizer.compute_optimal_tree(specs, base_item_name)


def is_recipe_valid(
    specs: Iterable[EnchantmentSpec],
    base_item_name: str,
    catalog: Optional[EnchantmentCatalog] = None,
    rules: Optional[RulesEngine] = None,
    survival_cap: int = SURVIVAL_CAP,
    max_enchantments: int = MAX_ENCHANTMENTS,
) -> bool:
    """True when every step of the optimal recipe is within the survival cap."""
    optimizer = _optimizer(catalog, rules, survival_cap, max_enchantments, None, None)
    return optimizer.is_recipe_valid(specs, base_item_name)


def try_linear_order(
    specs: Iterable[EnchantmentSpec],
    base_item_name: str,
    catalog: Optional[EnchantmentCatalog] = None,
    rules: Optional[RulesEngine] = None,
    survival_cap: int = SURVIVAL_CAP,
) -> ComputedRecipe:
    """Cost of one specific book order, for diagnosing cap violations."""
    pairs = parse_enchantment_specs(specs)
    optimizer = AnvilOptimizer(catalog=catalog, rules=rules, survival_cap=survival_cap,
                               max_enchantments=max(len(pairs), 1))
    return optimizer.try_linear_order(pairs, base_item_name)
