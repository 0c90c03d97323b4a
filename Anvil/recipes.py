"""Catalog recipes: named enchanting targets computed in bulk.

A catalog entry names a base item (``netherite_sword``) and the
enchantments to put on it. Computing an entry resolves the base item's
display name, runs the optimizer and extracts the bill of materials.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .base_items import parse_base_item_string
from .bom import BillOfMaterials, generate_bom
from .enchantments import EnchantmentCatalog, UnknownEnchantmentError, default_catalog
from .optimizer import AnvilOptimizer, ComputedRecipe, EnchantmentSpec, TooManyEnchantmentsError
from .solver_logging import LogLevel, SolverLogger, resolve_logger

# Columns of recipes_to_frame, in order
RECIPE_COLUMNS = [
    "id", "name", "category", "base_item", "enchantments", "is_valid",
    "step_count", "total_level_cost", "max_step_cost", "total_xp_cost",
    "total_xp_cost_bulk", "book_count",
]


@dataclass(frozen=True)
class RecipeSpec:
    """One catalog entry, as authored."""
    id: str
    name: str
    base_item: str
    enchantments: Tuple[EnchantmentSpec, ...]
    category: Optional[str] = None
    tags: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RecipeSpec":
        """Build from a YAML-style record (``baseItem`` key, list of specs)."""
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            base_item=str(raw.get("baseItem", raw.get("base_item"))),
            enchantments=tuple(raw.get("enchantments") or ()),
            category=raw.get("category"),
            tags=tuple(raw.get("tags") or ()),
        )


@dataclass
class RecipeData:
    """A catalog entry together with its computed recipe and materials."""
    spec: RecipeSpec
    base_item_name: str
    recipe: ComputedRecipe
    bom: BillOfMaterials = field(default_factory=BillOfMaterials)

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def is_valid(self) -> bool:
        return self.recipe.is_valid


def compute_catalog_recipe(
    spec: RecipeSpec,
    optimizer: Optional[AnvilOptimizer] = None,
    catalog: Optional[EnchantmentCatalog] = None,
) -> Optional[RecipeData]:
    """
    Compute one catalog entry.

    Returns None when ``spec.base_item`` does not name a known base item.
    Infeasible entries are returned with ``is_valid`` False.
    """
    base = parse_base_item_string(spec.base_item)
    if base is None:
        return None

    optimizer = optimizer or AnvilOptimizer(catalog=catalog)
    recipe = optimizer.compute_recipe(spec.enchantments, base.display_name)
    bom = generate_bom(recipe.tree, optimizer.catalog, logger=optimizer.logger)
    return RecipeData(spec=spec, base_item_name=base.display_name, recipe=recipe, bom=bom)


def compute_catalog(
    specs: Iterable[RecipeSpec],
    optimizer: Optional[AnvilOptimizer] = None,
    logger: Optional[SolverLogger] = None,
    log_level: Optional[LogLevel] = None,
) -> List[RecipeData]:
    """
    Compute every catalog entry, in input order.

    Entries with an unknown base item, an unknown enchantment id or too
    many enchantments are skipped with a warning.

    Parameters
    ----------
    specs : iterable of RecipeSpec
    optimizer : AnvilOptimizer, optional
        Shared optimizer (catalog, rules, cap). Defaults to the packaged
        table without rules.
    logger : SolverLogger, optional
        Pre-configured logger. If None, one is created based on log_level.
    log_level : LogLevel, optional
        Logging verbosity. Only used if logger is None.
    """
    logger = resolve_logger(logger, log_level)
    optimizer = optimizer or AnvilOptimizer(catalog=default_catalog(), logger=logger)

    results: List[RecipeData] = []
    total = 0
    for spec in specs:
        total += 1
        try:
            data = compute_catalog_recipe(spec, optimizer)
        except (UnknownEnchantmentError, TooManyEnchantmentsError) as exc:
            logger.warning("CATALOG", f"Skipping recipe '{spec.id}': {exc}")
            continue
        if data is None:
            logger.warning("CATALOG",
                           f"Skipping recipe '{spec.id}': unknown base item '{spec.base_item}'")
            continue
        results.append(data)

    invalid = sum(1 for r in results if not r.is_valid)
    logger.log_catalog_built(total, len(results), invalid)
    return results


def _format_specs(enchantments: Sequence[EnchantmentSpec]) -> str:
    parts = []
    for spec in enchantments:
        if isinstance(spec, Mapping):
            parts.extend(f"{ench_id}={level}" for ench_id, level in spec.items())
        else:
            parts.append(f"{spec[0]}={spec[1]}")
    return ", ".join(parts)


def recipes_to_frame(recipes: Iterable[RecipeData]) -> pd.DataFrame:
    """
    Catalog summary as a DataFrame with columns ``RECIPE_COLUMNS``.

    Cost columns are empty (NA) for infeasible recipes; ``is_valid``
    flags them.
    """
    rows: List[Dict[str, Any]] = []
    for data in recipes:
        recipe = data.recipe
        valid = recipe.is_valid
        rows.append({
            "id": data.spec.id,
            "name": data.spec.name,
            "category": data.spec.category,
            "base_item": data.base_item_name,
            "enchantments": _format_specs(data.spec.enchantments),
            "is_valid": valid,
            "step_count": recipe.step_count if valid else None,
            "total_level_cost": recipe.total_level_cost if valid else None,
            "max_step_cost": recipe.max_step_cost if valid else None,
            "total_xp_cost": recipe.total_xp_cost if valid else None,
            "total_xp_cost_bulk": recipe.total_xp_cost_bulk if valid else None,
            "book_count": data.bom.book_count,
        })

    df = pd.DataFrame(rows, columns=RECIPE_COLUMNS)
    for col in ("step_count", "total_level_cost", "max_step_cost",
                "total_xp_cost", "total_xp_cost_bulk"):
        df[col] = df[col].astype("Int64")
    return df
