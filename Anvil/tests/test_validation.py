"""Tests for recipe request validation."""
from __future__ import annotations

import pytest

from Anvil.enchantments import EnchantmentCatalog
from Anvil.rules import (
    CustomValidationRule,
    ItemRestrictionRule,
    MaxLevelOverrideRule,
    RulesEngine,
    ValidatorRegistry,
    load_rules,
)
from Anvil.solver_logging import LogLevel, create_string_logger
from Anvil.validation import (
    CONFLICT,
    CUSTOM_VALIDATION,
    DUPLICATE_ENCHANTMENT,
    INVALID_LEVEL,
    NOT_APPLICABLE,
    TOO_EXPENSIVE,
    TOO_MANY_ENCHANTMENTS,
    UNKNOWN_ENCHANTMENT,
    validate_recipe_request,
)


@pytest.fixture(scope="module")
def rules() -> RulesEngine:
    return RulesEngine(load_rules())


# ---------------------------------------------------------------------------
# Tests: enchantment checks
# ---------------------------------------------------------------------------

class TestEnchantmentChecks:
    def test_valid_request(self, rules):
        result = validate_recipe_request(
            "sword", [{"sharpness": 5}, {"unbreaking": 3}, {"mending": 1}], rules=rules)
        assert result.is_valid
        assert result.issues == []

    def test_empty_request_is_valid(self):
        assert validate_recipe_request("sword", []).is_valid

    def test_unknown_enchantment(self):
        result = validate_recipe_request("sword", [{"vorpal": 3}])
        assert result.codes() == {UNKNOWN_ENCHANTMENT}
        assert result.issues[0].enchantment == "vorpal"

    def test_explicit_empty_catalog(self):
        result = validate_recipe_request(
            "sword", [{"sharpness": 5}], catalog=EnchantmentCatalog([]), check_cost=False)
        assert result.codes() == {UNKNOWN_ENCHANTMENT}

    def test_duplicate(self):
        result = validate_recipe_request("sword", [{"sharpness": 5}, {"sharpness": 4}])
        assert DUPLICATE_ENCHANTMENT in result.codes()

    @pytest.mark.parametrize("level", [0, 6, -1])
    def test_level_out_of_range(self, level):
        result = validate_recipe_request("sword", [{"sharpness": level}])
        assert INVALID_LEVEL in result.codes()

    def test_max_level_override_honoured(self):
        rules = RulesEngine([MaxLevelOverrideRule(id="x", enchantment="sharpness", max_level=6)])
        result = validate_recipe_request("sword", [{"sharpness": 6}], rules=rules)
        assert INVALID_LEVEL not in result.codes()

    def test_not_applicable_static(self):
        result = validate_recipe_request("sword", [{"power": 5}])
        assert result.codes() == {NOT_APPLICABLE}

    def test_not_applicable_rule(self):
        rules = RulesEngine([ItemRestrictionRule(
            id="x", enchantment="unbreaking", blocked_items=frozenset({"sword"}))])
        result = validate_recipe_request("sword", [{"unbreaking": 3}], rules=rules)
        assert result.codes() == {NOT_APPLICABLE}


# ---------------------------------------------------------------------------
# Tests: conflicts
# ---------------------------------------------------------------------------

class TestConflicts:
    def test_static_conflict(self):
        result = validate_recipe_request("sword", [{"sharpness": 5}, {"smite": 5}])
        assert result.codes() == {CONFLICT}
        assert len(result.issues) == 1

    def test_conditional_conflict_on_bow(self, rules):
        result = validate_recipe_request("bow", [{"mending": 1}, {"infinity": 1}], rules=rules)
        assert result.codes() == {CONFLICT}

    def test_conditional_conflict_needs_rules(self):
        result = validate_recipe_request("bow", [{"mending": 1}, {"infinity": 1}])
        assert result.is_valid


# ---------------------------------------------------------------------------
# Tests: custom validators
# ---------------------------------------------------------------------------

class TestCustomValidation:
    @pytest.fixture
    def custom_rules(self) -> RulesEngine:
        return RulesEngine([CustomValidationRule(
            id="no-curses", validator="no_curses", params={"prefix": "curse_"})])

    def test_missing_handler_passes_with_notice(self, custom_rules):
        logger, buffer = create_string_logger(LogLevel.MINIMAL)
        result = validate_recipe_request(
            "sword", [{"curse_of_vanishing": 1}], rules=custom_rules, logger=logger)
        assert result.is_valid
        assert "no handler registered for validator 'no_curses'" in buffer.getvalue()

    def test_registered_handler(self, custom_rules):
        registry = ValidatorRegistry()

        @registry.register("no_curses")
        def no_curses(item_type, enchantments, params):
            cursed = [e for e, _ in enchantments if e.startswith(params["prefix"])]
            return f"cursed: {', '.join(cursed)}" if cursed else None

        bad = validate_recipe_request("sword", [{"curse_of_vanishing": 1}],
                                      rules=custom_rules, registry=registry)
        assert bad.codes() == {CUSTOM_VALIDATION}
        assert "curse_of_vanishing" in bad.issues[0].message

        good = validate_recipe_request("sword", [{"mending": 1}],
                                       rules=custom_rules, registry=registry)
        assert good.is_valid


# ---------------------------------------------------------------------------
# Tests: cost checks
# ---------------------------------------------------------------------------

class TestCostChecks:
    def test_too_expensive(self):
        result = validate_recipe_request(
            "sword", [{"sharpness": 5}, {"unbreaking": 3}], survival_cap=8)
        assert result.codes() == {TOO_EXPENSIVE}

    def test_cost_check_can_be_skipped(self):
        result = validate_recipe_request(
            "sword", [{"sharpness": 5}, {"unbreaking": 3}], survival_cap=8, check_cost=False)
        assert result.is_valid

    def test_too_many(self):
        specs = [{"protection": 4}, {"unbreaking": 3}, {"mending": 1}, {"thorns": 3},
                 {"feather_falling": 4}, {"depth_strider": 3}, {"soul_speed": 3}]
        result = validate_recipe_request("boots", specs, max_enchantments=6)
        assert result.codes() == {TOO_MANY_ENCHANTMENTS}

    def test_logged(self):
        logger, buffer = create_string_logger(LogLevel.MINIMAL)
        validate_recipe_request("sword", [{"power": 5}], logger=logger)
        assert "[not_applicable]" in buffer.getvalue()
