"""
Comprehensive logging for the anvil recipe optimizer.

Provides insight into optimizer behavior at multiple verbosity levels:
    - MINIMAL: Only final results, warnings and errors
    - SUMMARY: Request overview and key metrics
    - DETAILED: Step tables, bill of materials, rule index sizes
    - DEBUG: Search statistics and internal state
    - TRACE: Everything including every evaluated permutation

Usage:
    from Anvil.solver_logging import SolverLogger, LogLevel

    logger = SolverLogger(level=LogLevel.DETAILED)
    recipe = compute_recipe([{"sharpness": 5}], "Netherite Sword", logger=logger)
    logger.log_bom(generate_bom(recipe.tree))
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple, Union

from .tree import iter_steps


class LogLevel(IntEnum):
    """Verbosity levels for optimizer logging."""
    SILENT = 0      # No output at all
    MINIMAL = 10    # Only final results, warnings and errors
    SUMMARY = 20    # Request overview and key metrics
    DETAILED = 30   # Step tables, BOM tables
    DEBUG = 40      # Search statistics and internal state
    TRACE = 50      # Everything including per-permutation results


@dataclass
class LogEntry:
    """A single log entry with metadata."""
    timestamp: datetime
    level: LogLevel
    category: str
    message: str
    data: Optional[Dict[str, Any]] = None

    def format(self, include_timestamp: bool = True, include_level: bool = True) -> str:
        """Format the log entry as a string."""
        parts = []
        if include_timestamp:
            parts.append(f"[{self.timestamp.strftime('%H:%M:%S.%f')[:-3]}]")
        if include_level:
            parts.append(f"[{self.level.name:8}]")
        parts.append(f"[{self.category}]")
        parts.append(self.message)
        return " ".join(parts)


@dataclass
class SolverLogger:
    """
    Structured logger for the anvil optimizer.

    Collects log entries at various verbosity levels and can output
    to multiple destinations (console, file, string buffer).

    Attributes
    ----------
    level : LogLevel
        Minimum level to log (entries below this level are ignored)
    output : TextIO | None
        Output stream (defaults to sys.stdout)
    log_to_file : Path | None
        Optional path to also write logs to a file
    entries : list[LogEntry]
        All logged entries (for programmatic access)
    """
    level: LogLevel = LogLevel.SUMMARY
    output: Optional[TextIO] = None
    log_to_file: Optional[Path] = None
    include_timestamp: bool = True
    include_level: bool = True
    entries: List[LogEntry] = field(default_factory=list)
    _file_handle: Optional[TextIO] = field(default=None, repr=False)

    def __post_init__(self):
        if self.output is None:
            self.output = sys.stdout
        if self.log_to_file:
            self._file_handle = open(self.log_to_file, "w", encoding="utf-8")

    def close(self):
        """Close the file handle if opened."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _log(self, level: LogLevel, category: str, message: str,
             data: Optional[Dict[str, Any]] = None) -> None:
        """Internal method to record and output a log entry."""
        if level > self.level:
            return

        entry = LogEntry(
            timestamp=datetime.now(),
            level=level,
            category=category,
            message=message,
            data=data,
        )
        self.entries.append(entry)

        formatted = entry.format(self.include_timestamp, self.include_level)
        if self.output:
            self.output.write(formatted + "\n")
            self.output.flush()
        if self._file_handle:
            self._file_handle.write(formatted + "\n")
            self._file_handle.flush()

    def _log_table(self, level: LogLevel, category: str,
                   headers: List[str], rows: List[List[Any]],
                   title: Optional[str] = None) -> None:
        """Log a formatted table."""
        if level > self.level:
            return

        all_rows = [headers] + rows
        widths = [max(len(str(row[i])) for row in all_rows) for i in range(len(headers))]

        lines = []
        if title:
            lines.append(title)
            lines.append("=" * len(title))

        header_line = " | ".join(str(h).ljust(w) for h, w in zip(headers, widths))
        lines.append(header_line)
        lines.append("-" * len(header_line))

        for row in rows:
            row_line = " | ".join(str(v).ljust(w) for v, w in zip(row, widths))
            lines.append(row_line)

        for line in lines:
            self._log(level, category, line)

    def warning(self, category: str, message: str,
                data: Optional[Dict[str, Any]] = None) -> None:
        """Log a recoverable problem. Shown at every non-silent level."""
        self._log(LogLevel.MINIMAL, category, f"WARNING: {message}", data)

    # -------------------------------------------------------------------------
    # Configuration / Data Loading
    # -------------------------------------------------------------------------

    def log_config(self, config: Any) -> None:
        """Log the effective user configuration."""
        self._log(LogLevel.SUMMARY, "CONFIG",
                  f"Survival cap: {config.survival_cap}, "
                  f"max enchantments: {config.max_enchantments}, "
                  f"rule costs: {'on' if config.apply_rule_costs else 'off'}")

    def log_enchantments_loaded(self, count: int, source: str) -> None:
        """Log enchantment table loading."""
        self._log(LogLevel.SUMMARY, "DATA",
                  f"Loaded {count} enchantments from {source}")

    def log_rules_loaded(self, count: int, source: str,
                         counts_by_type: Optional[Dict[str, int]] = None) -> None:
        """Log rule patch loading."""
        self._log(LogLevel.SUMMARY, "RULES",
                  f"Loaded {count} rules from {source}")
        if counts_by_type and self.level >= LogLevel.DETAILED:
            rows = [[rule_type, n] for rule_type, n in sorted(counts_by_type.items())]
            self._log_table(LogLevel.DETAILED, "RULES",
                           ["Rule Type", "Count"], rows, title="Rule Index")

    def log_rule_skipped(self, rule_id: str, reason: str) -> None:
        """Log a malformed or unsupported rule that was dropped."""
        self.warning("RULES", f"Skipping rule '{rule_id}': {reason}")

    # -------------------------------------------------------------------------
    # Optimizer Logging
    # -------------------------------------------------------------------------

    def log_request_start(self, base_item: str,
                          enchantments: Sequence[Tuple[str, int]]) -> None:
        """Log the start of an optimization request."""
        listed = ", ".join(f"{ench_id}={level}" for ench_id, level in enchantments)
        self._log(LogLevel.SUMMARY, "OPTIMIZER",
                  f"Optimizing {base_item} with {len(enchantments)} "
                  f"enchantment(s): {listed or 'none'}")

    def log_search_space(self, num_enchantments: int, num_orderings: int) -> None:
        """Log the size of the permutation search."""
        self._log(LogLevel.DEBUG, "SEARCH",
                  f"Searching {num_orderings} orderings of {num_enchantments} books")

    def log_permutation_result(self, index: int, order: Sequence[str],
                               total_cost: float, status: str) -> None:
        """Log a single evaluated ordering (TRACE level)."""
        if self.level < LogLevel.TRACE:
            return

        self._log(LogLevel.TRACE, "SEARCH",
                  f"#{index} [{', '.join(order)}]: status={status}, total={total_cost}")

    def log_search_complete(self, evaluated: int, feasible: int,
                            pruned: int, elapsed_ms: float) -> None:
        """Log search statistics."""
        self._log(LogLevel.DEBUG, "SEARCH",
                  f"Evaluated {evaluated} orderings: {feasible} improving, "
                  f"{pruned} pruned, time={elapsed_ms:.1f}ms")

    def log_infeasible(self, base_item: str, cap: int) -> None:
        """Log that every ordering broke the survival cap."""
        self._log(LogLevel.MINIMAL, "OPTIMIZER",
                  f"No ordering keeps every step of {base_item} at or below "
                  f"{cap} levels (Too Expensive!)")

    def log_recipe(self, recipe: Any) -> None:
        """Log a computed recipe summary and, at DETAILED, its step table."""
        if not recipe.is_valid:
            return

        self._log(LogLevel.MINIMAL, "RECIPE",
                  f"Steps: {recipe.step_count}, levels: {recipe.total_level_cost}, "
                  f"XP (incremental): {recipe.total_xp_cost}, "
                  f"XP (bulk): {recipe.total_xp_cost_bulk}")

        if self.level < LogLevel.DETAILED or recipe.step_count == 0:
            return

        rows = []
        for i, step in enumerate(iter_steps(recipe.tree), start=1):
            rows.append([
                i,
                step.left.label,
                step.right.label,
                step.level_cost,
                step.xp_cost,
                step.resulting_pwp,
                step.result_label,
            ])

        self._log_table(LogLevel.DETAILED, "RECIPE",
                       ["#", "Target", "Sacrifice", "Levels", "XP", "PWP", "Result"],
                       rows, title="Anvil Steps")

    # -------------------------------------------------------------------------
    # Bill of Materials
    # -------------------------------------------------------------------------

    def log_bom(self, bom: Any) -> None:
        """Log bill of materials contents."""
        if bom is None or self.level < LogLevel.DETAILED:
            return

        items = getattr(bom, "items", [])
        books = sum(item.quantity for item in items if item.item_type == "book")
        self._log(LogLevel.DETAILED, "BOM",
                  f"Bill of materials: {len(items)} lines, {books} books")

        rows = [[item.item, item.item_type, item.quantity] for item in items]
        if rows:
            self._log_table(LogLevel.DETAILED, "BOM",
                           ["Item", "Type", "Qty"], rows, title="Materials")

    def log_bom_leaf_dropped(self, label: str) -> None:
        """Log a tree leaf that could not be resolved into a BOM line."""
        self.warning("BOM", f"Could not resolve book '{label}'; leaf dropped")

    # -------------------------------------------------------------------------
    # Validation / Catalog
    # -------------------------------------------------------------------------

    def log_validation(self, result: Any) -> None:
        """Log validation issues."""
        if result.is_valid:
            self._log(LogLevel.SUMMARY, "VALIDATION", "Recipe request is valid")
            return

        self._log(LogLevel.MINIMAL, "VALIDATION",
                  f"{len(result.issues)} validation issue(s)")
        for issue in result.issues:
            self._log(LogLevel.MINIMAL, "VALIDATION", f"  [{issue.code}] {issue.message}")

    def log_custom_validator_missing(self, rule_id: str, validator: str) -> None:
        """Log a custom validation rule with no registered handler."""
        self._log(LogLevel.MINIMAL, "VALIDATION",
                  f"NOTICE: no handler registered for validator '{validator}' "
                  f"(rule '{rule_id}'); treating as passed")

    def log_catalog_built(self, total: int, computed: int, invalid: int) -> None:
        """Log catalog computation summary."""
        self._log(LogLevel.SUMMARY, "CATALOG",
                  f"Computed {computed}/{total} recipes ({invalid} too expensive)")

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    def get_all_entries(self) -> List[LogEntry]:
        """Return all logged entries."""
        return self.entries.copy()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        """Return entries at or below a specific level."""
        return [e for e in self.entries if e.level <= level]

    def get_entries_by_category(self, category: str) -> List[LogEntry]:
        """Return entries matching a category."""
        return [e for e in self.entries if e.category == category]

    def to_string(self, level: Optional[LogLevel] = None) -> str:
        """Format all entries to a string."""
        entries = self.entries if level is None else self.get_entries_by_level(level)
        return "\n".join(e.format(self.include_timestamp, self.include_level)
                        for e in entries)

    def clear(self) -> None:
        """Clear all logged entries."""
        self.entries.clear()


def create_logger(
    level: Union[LogLevel, str, int] = LogLevel.SUMMARY,
    output: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
) -> SolverLogger:
    """
    Factory function to create a SolverLogger.

    Parameters
    ----------
    level : LogLevel | str | int
        Verbosity level. Can be LogLevel enum, string name, or integer.
    output : TextIO | None
        Output stream. Defaults to sys.stdout.
    log_file : Path | None
        Optional path to write logs to file.

    Returns
    -------
    SolverLogger
        Configured logger instance
    """
    if isinstance(level, str):
        level = LogLevel[level.upper()]
    elif isinstance(level, int) and not isinstance(level, LogLevel):
        level = LogLevel(level)

    return SolverLogger(
        level=level,
        output=output,
        log_to_file=log_file,
    )


def create_string_logger(level: LogLevel = LogLevel.DETAILED) -> Tuple[SolverLogger, StringIO]:
    """
    Create a logger that writes to a string buffer.

    Useful for testing or capturing logs programmatically.

    Returns
    -------
    tuple[SolverLogger, StringIO]
        The logger and the buffer it writes to
    """
    buffer = StringIO()
    logger = SolverLogger(level=level, output=buffer)
    return logger, buffer


def resolve_logger(
    logger: Optional[SolverLogger] = None,
    log_level: Union[LogLevel, str, int, None] = None,
) -> SolverLogger:
    """Return ``logger`` or build one from ``log_level`` (silent when both are None)."""
    if logger is not None:
        return logger
    if log_level is not None:
        return create_logger(level=log_level)
    return create_logger(level=LogLevel.SILENT)
