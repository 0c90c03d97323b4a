"""Anvil package for Minecraft enchanting order optimization."""
from .config import load_config, save_config, UserConfig
from .enchantments import (
    EnchantmentCatalog,
    EnchantmentData,
    UnknownEnchantmentError,
    default_catalog,
    load_enchantments,
)
from .rules import RulesEngine, ValidatorRegistry, load_rules
from .optimizer import (
    AnvilOptimizer,
    ComputedRecipe,
    TooManyEnchantmentsError,
    compute_optimal_tree,
    compute_recipe,
    is_recipe_valid,
)
from .bom import BillOfMaterials, BOMItem, aggregate_boms, bom_to_frame, generate_bom
from .validation import ValidationResult, validate_recipe_request
from .recipes import RecipeData, RecipeSpec, compute_catalog, recipes_to_frame
from .xp_calc import calculate_bulk_xp, calculate_incremental_xp, level_to_xp, xp_to_level
from .solver_logging import LogLevel, SolverLogger, create_logger, create_string_logger

__all__ = [
    "load_config",
    "save_config",
    "UserConfig",
    "EnchantmentCatalog",
    "EnchantmentData",
    "UnknownEnchantmentError",
    "default_catalog",
    "load_enchantments",
    "RulesEngine",
    "ValidatorRegistry",
    "load_rules",
    "AnvilOptimizer",
    "ComputedRecipe",
    "TooManyEnchantmentsError",
    "compute_optimal_tree",
    "compute_recipe",
    "is_recipe_valid",
    "BillOfMaterials",
    "BOMItem",
    "aggregate_boms",
    "bom_to_frame",
    "generate_bom",
    "ValidationResult",
    "validate_recipe_request",
    "RecipeData",
    "RecipeSpec",
    "compute_catalog",
    "recipes_to_frame",
    # XP conversion
    "calculate_bulk_xp",
    "calculate_incremental_xp",
    "level_to_xp",
    "xp_to_level",
    "LogLevel",
    "SolverLogger",
    "create_logger",
    "create_string_logger",
]
