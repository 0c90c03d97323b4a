#!/usr/bin/env python
"""CLI entry point for the anvil recipe optimizer."""
from __future__ import annotations

import argparse
import cProfile
import pstats
import sys
from io import StringIO
from pathlib import Path
from typing import List, Optional, Tuple

from .base_items import BaseItem, get_base_item_by_display_name, parse_base_item_string
from .bom import BillOfMaterials, bom_to_frame, generate_bom
from .config import load_config
from .enchantments import UnknownEnchantmentError, load_enchantments
from .optimizer import AnvilOptimizer, ComputedRecipe, TooManyEnchantmentsError
from .rules import RulesEngine, load_rules
from .solver_logging import create_logger
from .tree import iter_steps
from .validation import validate_recipe_request


def parse_enchantment_arg(text: str) -> Tuple[str, int]:
    """``sharpness=5`` -> ("sharpness", 5). A bare id means level 1."""
    ench_id, sep, level = text.partition("=")
    if not ench_id:
        raise argparse.ArgumentTypeError(f"invalid enchantment '{text}'")
    if not sep:
        return ench_id, 1
    try:
        return ench_id, int(level)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid level in '{text}'") from None


def resolve_base_item(text: str) -> Optional[BaseItem]:
    """Accept ``netherite_sword`` or ``"Netherite Sword"``."""
    return parse_base_item_string(text) or get_base_item_by_display_name(text)


def format_recipe(recipe: ComputedRecipe) -> str:
    """Format the anvil steps and totals for display."""
    if not recipe.is_valid:
        return "Too Expensive! No combination order stays within the level cap."

    lines = []
    for i, step in enumerate(iter_steps(recipe.tree), start=1):
        lines.append(
            f"  {i}. {step.left.label} + {step.right.label} -> {step.result_label} "
            f"({step.level_cost} levels, {step.xp_cost} XP)"
        )
    if not lines:
        lines.append("  Nothing to combine.")

    lines.append("")
    lines.append(f"Steps: {recipe.step_count}")
    lines.append(f"Total levels: {recipe.total_level_cost}")
    lines.append(f"Total XP (level up per step): {recipe.total_xp_cost}")
    lines.append(f"Total XP (save up for hardest step): {recipe.total_xp_cost_bulk}")
    return "\n".join(lines)


def format_bom(bom: BillOfMaterials) -> str:
    """Format the bill of materials for display."""
    lines = ["\n--- Materials ---"]
    for item in bom.items:
        lines.append(f"  {item.quantity}x {item.item}")
    return "\n".join(lines)


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Find the cheapest anvil order for enchanting an item."
    )
    parser.add_argument(
        "base_item",
        help="Base item, e.g. netherite_sword or 'Netherite Sword'",
    )
    parser.add_argument(
        "enchantments",
        nargs="*",
        type=parse_enchantment_arg,
        help="Enchantments as id=level, e.g. sharpness=5 mending",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to user config YAML (default: Anvil/DefaultUserConfig.yaml)",
    )
    parser.add_argument(
        "--rules",
        type=Path,
        default=None,
        help="Rule patch YAML (default: from config, else Anvil/data/patches.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["SILENT", "MINIMAL", "SUMMARY", "DETAILED", "DEBUG", "TRACE"],
        help="Logging verbosity (default: from config)",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Check the request against enchantment and rule data first",
    )
    parser.add_argument(
        "--csv",
        type=Path,
        default=None,
        help="Write the bill of materials to a CSV file",
    )
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Run with cProfile and display performance statistics",
    )
    parser.add_argument(
        "--profile-sort",
        type=str,
        default="cumulative",
        choices=["cumulative", "time", "calls", "name"],
        help="Sort order for profile output (default: cumulative)",
    )
    parser.add_argument(
        "--profile-lines",
        type=int,
        default=30,
        help="Number of profile lines to display (default: 30)",
    )

    args = parser.parse_args(argv)

    base = resolve_base_item(args.base_item)
    if base is None:
        parser.error(f"unknown base item '{args.base_item}'")

    config = load_config(args.config)
    logger = create_logger(level=args.log_level or config.log_level, output=sys.stderr)
    logger.log_config(config)

    catalog = load_enchantments(config.enchantments_file, logger=logger)
    rules = RulesEngine(load_rules(args.rules or config.rules_file, logger=logger))

    if args.validate:
        validation = validate_recipe_request(
            base.type,
            args.enchantments,
            catalog=catalog,
            rules=rules,
            survival_cap=config.survival_cap,
            max_enchantments=config.max_enchantments,
            logger=logger,
        )
        if not validation.is_valid:
            print("Request is not valid:")
            for issue in validation.issues:
                print(f"  [{issue.code}] {issue.message}")
            return 1

    optimizer = AnvilOptimizer(
        catalog=catalog,
        rules=rules if config.apply_rule_costs else None,
        survival_cap=config.survival_cap,
        max_enchantments=config.max_enchantments,
        logger=logger,
    )

    # Run optimizer (with optional profiling)
    profiler = cProfile.Profile() if args.profile else None
    try:
        if profiler:
            profiler.enable()
        recipe = optimizer.compute_recipe(args.enchantments, base.display_name)
    except (UnknownEnchantmentError, TooManyEnchantmentsError) as exc:
        parser.error(str(exc))
    finally:
        if profiler:
            profiler.disable()

    if profiler:
        print("\n" + "=" * 60)
        print("PROFILING RESULTS")
        print("=" * 60)

        stream = StringIO()
        stats = pstats.Stats(profiler, stream=stream)
        stats.strip_dirs()
        stats.sort_stats(args.profile_sort)
        stats.print_stats(args.profile_lines)
        print(stream.getvalue())

        print(f"\nTotal function calls: {stats.total_calls}")
        print(f"Total time: {stats.total_tt:.3f} seconds")
        print("=" * 60 + "\n")

    print(f"{base.display_name}:")
    print(format_recipe(recipe))
    if not recipe.is_valid:
        return 1

    bom = generate_bom(recipe.tree, catalog, logger=logger)
    print(format_bom(bom))

    if args.csv:
        bom_to_frame(bom).to_csv(args.csv, index=False)
        print(f"\nBill of materials written to {args.csv}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
