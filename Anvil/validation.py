"""Recipe request validation.

Checks a base item type and an enchantment list against the enchantment
table and the rule overlay, and reports every problem found instead of
stopping at the first one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterable, List, Optional, Set

from .base_items import get_base_items_by_type
from .enchantments import EnchantmentCatalog, default_catalog
from .optimizer import (
    MAX_ENCHANTMENTS, SURVIVAL_CAP, AnvilOptimizer, EnchantmentSpec, parse_enchantment_specs,
)
from .rules import RulesEngine, ValidatorRegistry
from .solver_logging import SolverLogger

# Issue codes
UNKNOWN_ENCHANTMENT = "unknown_enchantment"
DUPLICATE_ENCHANTMENT = "duplicate_enchantment"
INVALID_LEVEL = "invalid_level"
NOT_APPLICABLE = "not_applicable"
CONFLICT = "conflict"
CUSTOM_VALIDATION = "custom_validation"
TOO_MANY_ENCHANTMENTS = "too_many_enchantments"
TOO_EXPENSIVE = "too_expensive"


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    enchantment: Optional[str] = None


@dataclass
class ValidationResult:
    """All issues found for one request; valid when there are none."""
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def codes(self) -> Set[str]:
        return {issue.code for issue in self.issues}

    def add(self, code: str, message: str, enchantment: Optional[str] = None) -> None:
        self.issues.append(ValidationIssue(code, message, enchantment))


def validate_recipe_request(
    base_item_type: str,
    specs: Iterable[EnchantmentSpec],
    catalog: Optional[EnchantmentCatalog] = None,
    rules: Optional[RulesEngine] = None,
    registry: Optional[ValidatorRegistry] = None,
    survival_cap: int = SURVIVAL_CAP,
    max_enchantments: int = MAX_ENCHANTMENTS,
    check_cost: bool = True,
    logger: Optional[SolverLogger] = None,
) -> ValidationResult:
    """
    Validate an enchanting request without raising.

    Parameters
    ----------
    base_item_type : str
        Item type such as ``"sword"`` or ``"boots"``.
    specs : iterable
        Requested enchantments, in optimizer input shape.
    catalog : EnchantmentCatalog, optional
        Defaults to the packaged table.
    rules : RulesEngine, optional
        Supplies conditional conflicts, level overrides, item restrictions
        and custom validation rules. Defaults to no rules.
    registry : ValidatorRegistry, optional
        Handlers for custom validation rules. A rule whose validator is not
        registered passes, with a notice logged.
    check_cost : bool
        Also run the optimizer and report a request no ordering can keep
        within ``survival_cap``. Only done when every other check passed.

    Returns
    -------
    ValidationResult
    """
    catalog = catalog if catalog is not None else default_catalog()
    rules = rules or RulesEngine()
    registry = registry or ValidatorRegistry()
    result = ValidationResult()

    pairs = parse_enchantment_specs(specs)
    known = []
    seen: Set[str] = set()

    for ench_id, level in pairs:
        ench = catalog.get(ench_id)
        if ench is None:
            result.add(UNKNOWN_ENCHANTMENT, f"Unknown enchantment '{ench_id}'", ench_id)
            continue

        if ench_id in seen:
            result.add(DUPLICATE_ENCHANTMENT, f"{ench.name} is requested more than once", ench_id)
            continue
        seen.add(ench_id)
        known.append((ench, level))

        max_level = rules.get_max_level(ench_id, ench.max_level)
        if not 1 <= level <= max_level:
            result.add(INVALID_LEVEL,
                       f"{ench.name} level {level} is outside 1..{max_level}", ench_id)

        if ench.applicable_to and base_item_type not in ench.applicable_to:
            result.add(NOT_APPLICABLE,
                       f"{ench.name} cannot be applied to {base_item_type}", ench_id)
        elif not rules.can_apply_to(ench_id, base_item_type):
            result.add(NOT_APPLICABLE,
                       f"{ench.name} is restricted on {base_item_type}", ench_id)

    for (ench_a, _), (ench_b, _) in combinations(known, 2):
        if (rules.has_conflict(ench_a.id, ench_b.id, base_item_type, ench_a.conflicts)
                or rules.has_conflict(ench_b.id, ench_a.id, base_item_type, ench_b.conflicts)):
            result.add(CONFLICT, f"{ench_a.name} conflicts with {ench_b.name}", ench_a.id)

    known_pairs = [(ench.id, level) for ench, level in known]
    for rule in rules.custom_validation_rules:
        handler = registry.get(rule.validator)
        if handler is None:
            if logger:
                logger.log_custom_validator_missing(rule.id, rule.validator)
            continue
        message = handler(base_item_type, known_pairs, rule.params)
        if message:
            result.add(CUSTOM_VALIDATION, f"{rule.id}: {message}")

    if len(pairs) > max_enchantments:
        result.add(TOO_MANY_ENCHANTMENTS,
                   f"{len(pairs)} enchantments requested; at most {max_enchantments} supported")

    if check_cost and result.is_valid and known_pairs:
        items = get_base_items_by_type(base_item_type)
        base_name = items[0].display_name if items else base_item_type
        optimizer = AnvilOptimizer(catalog=catalog, rules=rules, survival_cap=survival_cap,
                                   max_enchantments=max_enchantments)
        if not optimizer.is_recipe_valid(known_pairs, base_name):
            result.add(TOO_EXPENSIVE,
                       f"Every combination order exceeds {survival_cap} levels on one step")

    if logger:
        logger.log_validation(result)
    return result
