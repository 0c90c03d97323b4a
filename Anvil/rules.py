"""Rules engine: declarative patches layered over the enchantment table.

Rules come from ``data/patches.yaml`` and are compiled once into lookup
tables:

    conditional_conflict  ->  (a, b, item_type) conflict index, both orders
    max_level_override    ->  enchantment -> max level
    cost_modifier         ->  enchantment -> book multiplier adjustment
    item_restriction      ->  enchantment -> allow / block lists
    custom_validation     ->  kept as-is; only a caller-supplied
                              ValidatorRegistry can interpret it

A missing or broken patch file never blocks computation: it yields an
empty rule list and a logged warning.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union,
)

import yaml

from .resources import get_resource_path
from .solver_logging import SolverLogger

PATCHES_PATH = get_resource_path("data/patches.yaml")


class RuleType(str, Enum):
    CONDITIONAL_CONFLICT = "conditional_conflict"
    MAX_LEVEL_OVERRIDE = "max_level_override"
    COST_MODIFIER = "cost_modifier"
    ITEM_RESTRICTION = "item_restriction"
    CUSTOM_VALIDATION = "custom_validation"


class RuleParseError(ValueError):
    """Raised for a rule record that cannot be turned into a Rule."""


# ---------------------------------------------------------------------------
# Rule variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuleCondition:
    """When a rule applies. Only ``item_types`` is consulted by the engine."""
    item_types: Tuple[str, ...] = ()
    edition: Optional[str] = None
    min_version: Optional[str] = None
    max_version: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class BaseRule:
    id: str
    description: str = ""
    condition: RuleCondition = field(default_factory=RuleCondition)
    enabled: bool = True


@dataclass(frozen=True, kw_only=True)
class ConditionalConflictRule(BaseRule):
    """Two enchantments conflict, but only on the listed item types."""
    enchantments: Tuple[str, str]

    @property
    def type(self) -> RuleType:
        return RuleType.CONDITIONAL_CONFLICT


@dataclass(frozen=True, kw_only=True)
class MaxLevelOverrideRule(BaseRule):
    enchantment: str
    max_level: int

    @property
    def type(self) -> RuleType:
        return RuleType.MAX_LEVEL_OVERRIDE


@dataclass(frozen=True)
class CostModifier:
    """Adjustment to a book multiplier: ``(base + add) * mult``."""
    book_multiplier_add: float = 0.0
    book_multiplier_mult: float = 1.0

    def apply(self, book_multiplier: float) -> float:
        return (book_multiplier + self.book_multiplier_add) * self.book_multiplier_mult


IDENTITY_COST_MODIFIER = CostModifier()


@dataclass(frozen=True, kw_only=True)
class CostModifierRule(BaseRule):
    enchantments: Tuple[str, ...]
    modifier: CostModifier

    @property
    def type(self) -> RuleType:
        return RuleType.COST_MODIFIER


@dataclass(frozen=True, kw_only=True)
class ItemRestrictionRule(BaseRule):
    """Allow-list and/or block-list of item types for one enchantment."""
    enchantment: str
    allowed_items: Optional[FrozenSet[str]] = None
    blocked_items: Optional[FrozenSet[str]] = None

    @property
    def type(self) -> RuleType:
        return RuleType.ITEM_RESTRICTION


@dataclass(frozen=True, kw_only=True)
class CustomValidationRule(BaseRule):
    """Escape hatch naming an externally registered validator."""
    validator: str
    params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> RuleType:
        return RuleType.CUSTOM_VALIDATION


Rule = Union[
    ConditionalConflictRule,
    MaxLevelOverrideRule,
    CostModifierRule,
    ItemRestrictionRule,
    CustomValidationRule,
]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _str_tuple(value: Any, field_name: str) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise RuleParseError(f"'{field_name}' must be a list")
    return tuple(str(v) for v in value)


def _optional_set(value: Any, field_name: str) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    return frozenset(_str_tuple(value, field_name))


def _parse_condition(raw: Any) -> RuleCondition:
    if raw is None:
        return RuleCondition()
    if not isinstance(raw, dict):
        raise RuleParseError("'condition' must be a mapping")
    return RuleCondition(
        item_types=_str_tuple(raw.get("item_types") or [], "item_types"),
        edition=raw.get("edition"),
        min_version=raw.get("min_version"),
        max_version=raw.get("max_version"),
    )


def parse_rule(raw: Mapping[str, Any]) -> Rule:
    """
    Convert one patch-file record into a Rule.

    Raises
    ------
    RuleParseError
        For unknown rule types, missing fields or wrongly typed fields.
    """
    if not isinstance(raw, Mapping):
        raise RuleParseError("rule must be a mapping")

    rule_id = raw.get("id")
    if not rule_id:
        raise RuleParseError("rule has no 'id'")

    try:
        rule_type = RuleType(raw.get("type"))
    except ValueError:
        raise RuleParseError(f"unknown rule type {raw.get('type')!r}") from None

    common = dict(
        id=str(rule_id),
        description=str(raw.get("description", "")),
        condition=_parse_condition(raw.get("condition")),
        enabled=raw.get("enabled", True) is not False,
    )

    try:
        if rule_type is RuleType.CONDITIONAL_CONFLICT:
            pair = _str_tuple(raw["enchantments"], "enchantments")
            if len(pair) != 2:
                raise RuleParseError("'enchantments' must name exactly two enchantments")
            return ConditionalConflictRule(enchantments=(pair[0], pair[1]), **common)

        if rule_type is RuleType.MAX_LEVEL_OVERRIDE:
            return MaxLevelOverrideRule(
                enchantment=str(raw["enchantment"]),
                max_level=int(raw["max_level"]),
                **common,
            )

        if rule_type is RuleType.COST_MODIFIER:
            modifier_raw = raw.get("modifier") or {}
            if not isinstance(modifier_raw, dict):
                raise RuleParseError("'modifier' must be a mapping")
            modifier = CostModifier(
                book_multiplier_add=float(modifier_raw.get("book_multiplier_add", 0)),
                book_multiplier_mult=float(modifier_raw.get("book_multiplier_mult", 1)),
            )
            return CostModifierRule(
                enchantments=_str_tuple(raw["enchantments"], "enchantments"),
                modifier=modifier,
                **common,
            )

        if rule_type is RuleType.ITEM_RESTRICTION:
            return ItemRestrictionRule(
                enchantment=str(raw["enchantment"]),
                allowed_items=_optional_set(raw.get("allowed_items"), "allowed_items"),
                blocked_items=_optional_set(raw.get("blocked_items"), "blocked_items"),
                **common,
            )

        params = raw.get("params") or {}
        if not isinstance(params, dict):
            raise RuleParseError("'params' must be a mapping")
        return CustomValidationRule(validator=str(raw["validator"]), params=params, **common)

    except KeyError as exc:
        raise RuleParseError(f"missing field {exc.args[0]!r}") from None
    except (TypeError, ValueError) as exc:
        if isinstance(exc, RuleParseError):
            raise
        raise RuleParseError(str(exc)) from None


def parse_rules(
    records: Iterable[Any],
    logger: Optional[SolverLogger] = None,
) -> List[Rule]:
    """Parse many records, skipping (and logging) the malformed ones."""
    rules: List[Rule] = []
    for index, record in enumerate(records):
        try:
            rules.append(parse_rule(record))
        except RuleParseError as exc:
            rule_id = record.get("id", f"#{index}") if isinstance(record, Mapping) else f"#{index}"
            if logger:
                logger.log_rule_skipped(str(rule_id), str(exc))
    return rules


def load_rules(
    path: Optional[Path] = None,
    logger: Optional[SolverLogger] = None,
) -> List[Rule]:
    """
    Load rules from a YAML patch file.

    Never raises for bad data: an unreadable or malformed file gives an
    empty list, and malformed individual rules are skipped. Both cases are
    reported through ``logger``.
    """
    patch_path = path or PATCHES_PATH
    try:
        with patch_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        if logger:
            logger.warning("RULES", f"Could not load rules from {patch_path}: {exc}")
        return []

    if not isinstance(raw, dict) or not isinstance(raw.get("rules", []), list):
        if logger:
            logger.warning("RULES", f"Malformed patch file {patch_path}; no rules loaded")
        return []

    rules = parse_rules(raw.get("rules") or [], logger=logger)
    if logger:
        counts: Dict[str, int] = {}
        for rule in rules:
            counts[rule.type.value] = counts.get(rule.type.value, 0) + 1
        logger.log_rules_loaded(len(rules), str(patch_path), counts)
    return rules


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class RulesEngine:
    """
    Compiled, read-only view over a rule list.

    Disabled rules are dropped before indexing. For max-level overrides and
    cost modifiers the last rule naming an enchantment wins.
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: List[Rule] = [r for r in rules if r.enabled]
        self._conflicts: Set[Tuple[str, str, str]] = set()
        self._max_level_overrides: Dict[str, int] = {}
        self._cost_modifiers: Dict[str, CostModifier] = {}
        self._item_restrictions: Dict[str, ItemRestrictionRule] = {}
        self._custom_rules: List[CustomValidationRule] = []

        self._build_index()

    def _build_index(self) -> None:
        for rule in self._rules:
            if isinstance(rule, ConditionalConflictRule):
                ench_a, ench_b = rule.enchantments
                for item_type in rule.condition.item_types:
                    self._conflicts.add((ench_a, ench_b, item_type))
                    self._conflicts.add((ench_b, ench_a, item_type))
            elif isinstance(rule, MaxLevelOverrideRule):
                self._max_level_overrides[rule.enchantment] = rule.max_level
            elif isinstance(rule, CostModifierRule):
                for ench_id in rule.enchantments:
                    self._cost_modifiers[ench_id] = rule.modifier
            elif isinstance(rule, ItemRestrictionRule):
                self._item_restrictions[rule.enchantment] = rule
            elif isinstance(rule, CustomValidationRule):
                self._custom_rules.append(rule)

    @classmethod
    def from_file(cls, path: Optional[Path] = None,
                  logger: Optional[SolverLogger] = None) -> "RulesEngine":
        return cls(load_rules(path, logger=logger))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def has_conflict(
        self,
        ench_a: str,
        ench_b: str,
        item_type: str,
        base_conflicts: Iterable[str] = (),
    ) -> bool:
        """
        Whether two enchantments conflict on ``item_type``.

        Static conflicts (``base_conflicts``, from ench_a's definition)
        always apply. Otherwise only conditional conflict rules count.
        An enchantment never conflicts with itself.
        """
        if ench_a == ench_b:
            return False
        if ench_b in base_conflicts:
            return True
        return (ench_a, ench_b, item_type) in self._conflicts

    def get_max_level(self, ench_id: str, base_max_level: int) -> int:
        return self._max_level_overrides.get(ench_id, base_max_level)

    def get_cost_modifier(self, ench_id: str) -> CostModifier:
        """Book multiplier adjustment; identity (add 0, mult 1) when none."""
        return self._cost_modifiers.get(ench_id, IDENTITY_COST_MODIFIER)

    def effective_book_multiplier(self, ench_id: str, base_multiplier: float) -> float:
        return self.get_cost_modifier(ench_id).apply(base_multiplier)

    def can_apply_to(self, ench_id: str, item_type: str) -> bool:
        """
        Item restriction check. Block list first, then allow list; no rule
        (or a rule with neither list) allows everything.
        """
        restriction = self._item_restrictions.get(ench_id)
        if restriction is None:
            return True
        if restriction.blocked_items is not None and item_type in restriction.blocked_items:
            return False
        if restriction.allowed_items is not None:
            return item_type in restriction.allowed_items
        return True

    @property
    def custom_validation_rules(self) -> List[CustomValidationRule]:
        return list(self._custom_rules)

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules)

    @property
    def rule_count(self) -> int:
        return len(self._rules)


# ---------------------------------------------------------------------------
# Custom validator registry
# ---------------------------------------------------------------------------

# handler(item_type, enchantments, params) -> error message, or None when it passes
ValidatorHandler = Callable[[str, Sequence[Tuple[str, int]], Mapping[str, Any]], Optional[str]]


class ValidatorRegistry:
    """Named handlers for ``custom_validation`` rules, supplied by callers."""

    def __init__(self, handlers: Optional[Mapping[str, ValidatorHandler]] = None):
        self._handlers: Dict[str, ValidatorHandler] = dict(handlers or {})

    def register(self, name: str, handler: Optional[ValidatorHandler] = None):
        """Register ``handler`` under ``name``; usable as a decorator."""
        if handler is not None:
            self._handlers[name] = handler
            return handler

        def decorator(fn: ValidatorHandler) -> ValidatorHandler:
            self._handlers[name] = fn
            return fn
        return decorator

    def get(self, name: str) -> Optional[ValidatorHandler]:
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers
