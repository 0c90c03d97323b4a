"""Enchantment metadata: the static table the optimizer and rules read from.

The table is loaded once from ``data/enchantments.yaml`` into an immutable
:class:`EnchantmentCatalog`, which is then handed to the optimizer, the
bill-of-materials extractor and the validator.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

import yaml

from .resources import get_resource_path
from .solver_logging import SolverLogger

ENCHANTMENTS_PATH = get_resource_path("data/enchantments.yaml")

_ROMAN_VALUES: Tuple[Tuple[int, str], ...] = (
    (1000, "M"), (900, "CM"), (500, "D"), (400, "CD"),
    (100, "C"), (90, "XC"), (50, "L"), (40, "XL"),
    (10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
)
_ROMAN_RE = re.compile(r"^M{0,3}(CM|CD|D?C{0,3})(XC|XL|L?X{0,3})(IX|IV|V?I{0,3})$")


class UnknownEnchantmentError(KeyError):
    """Raised when an enchantment id is not in the catalog."""


def to_roman_numeral(num: int) -> str:
    """Format a positive level as a Roman numeral (``5`` -> ``"V"``)."""
    if num <= 0:
        return str(num)
    parts = []
    for value, symbol in _ROMAN_VALUES:
        while num >= value:
            parts.append(symbol)
            num -= value
    return "".join(parts)


def parse_roman_numeral(text: str) -> Optional[int]:
    """Parse a Roman numeral; None if ``text`` is not one."""
    if not text or not _ROMAN_RE.match(text):
        return None
    total = 0
    index = 0
    for value, symbol in _ROMAN_VALUES:
        while text.startswith(symbol, index):
            total += value
            index += len(symbol)
    return total


@dataclass(frozen=True)
class EnchantmentData:
    """Static definition of one enchantment."""
    id: str
    name: str
    max_level: int
    book_multiplier: int
    item_multiplier: int
    conflicts: FrozenSet[str] = frozenset()
    applicable_to: FrozenSet[str] = frozenset()
    category: str = "utility"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EnchantmentData":
        """Build from a YAML record (camelCase keys, as in enchantments.yaml)."""
        return cls(
            id=str(raw["id"]),
            name=str(raw["name"]),
            max_level=int(raw["maxLevel"]),
            book_multiplier=int(raw["bookMultiplier"]),
            item_multiplier=int(raw["itemMultiplier"]),
            conflicts=frozenset(raw.get("conflicts") or ()),
            applicable_to=frozenset(raw.get("applicableTo") or ()),
            category=str(raw.get("category", "utility")),
        )


class EnchantmentCatalog:
    """
    Read-only lookup over enchantment definitions.

    Builds the id, display-name, category and item indexes once at
    construction; every query afterwards is a dictionary lookup.
    """

    def __init__(self, enchantments: Iterable[EnchantmentData]):
        self._by_id: Dict[str, EnchantmentData] = {}
        self._by_name: Dict[str, EnchantmentData] = {}  # lowercase display name
        self._by_category: Dict[str, List[EnchantmentData]] = {}
        self._by_item: Dict[str, List[EnchantmentData]] = {}

        for ench in enchantments:
            self._by_id[ench.id] = ench
            self._by_name[ench.name.lower()] = ench
            self._by_category.setdefault(ench.category, []).append(ench)
            for item_type in sorted(ench.applicable_to):
                self._by_item.setdefault(item_type, []).append(ench)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, ench_id: object) -> bool:
        return ench_id in self._by_id

    def __iter__(self) -> Iterator[EnchantmentData]:
        return iter(self._by_id.values())

    def get(self, ench_id: str) -> Optional[EnchantmentData]:
        """Return the enchantment with ``ench_id`` or None."""
        return self._by_id.get(ench_id)

    def require(self, ench_id: str) -> EnchantmentData:
        """Return the enchantment with ``ench_id``; raise if it is unknown."""
        ench = self._by_id.get(ench_id)
        if ench is None:
            raise UnknownEnchantmentError(ench_id)
        return ench

    def get_by_name(self, name: str) -> Optional[EnchantmentData]:
        """Look up by display name, case-insensitively."""
        return self._by_name.get(name.lower())

    def get_all(self) -> List[EnchantmentData]:
        return list(self._by_id.values())

    def get_by_category(self, category: str) -> List[EnchantmentData]:
        return list(self._by_category.get(category, []))

    def get_for_item(self, item_type: str) -> List[EnchantmentData]:
        """Enchantments whose static definition allows ``item_type``."""
        return list(self._by_item.get(item_type, []))

    def format(self, ench_id: str, level: int) -> str:
        """
        Display string for an enchantment at a level.

        Single-level enchantments drop the numeral ("Mending"), everything
        else gets one ("Smite V"). Unknown ids fall back to the raw id.
        """
        ench = self._by_id.get(ench_id)
        name = ench.name if ench else ench_id
        max_level = ench.max_level if ench else 1
        if level == 1 and max_level == 1:
            return name
        return f"{name} {to_roman_numeral(level)}"


def load_enchantments(
    path: Optional[Path] = None,
    logger: Optional[SolverLogger] = None,
) -> EnchantmentCatalog:
    """
    Load the enchantment table from YAML.

    Parameters
    ----------
    path : Path, optional
        YAML file with an ``enchantments`` list. Defaults to the packaged table.
    logger : SolverLogger, optional
        Receives a warning for every malformed record (which is skipped).

    Returns
    -------
    EnchantmentCatalog

    Raises
    ------
    FileNotFoundError
        If the table does not exist; the optimizer cannot run without it.
    """
    data_path = path or ENCHANTMENTS_PATH
    if not data_path.exists():
        raise FileNotFoundError(f"enchantments.yaml not found at {data_path}")

    with data_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    records = raw.get("enchantments", []) if isinstance(raw, dict) else []
    enchantments = []
    for record in records:
        try:
            enchantments.append(EnchantmentData.from_dict(record))
        except (KeyError, TypeError, ValueError) as exc:
            if logger:
                logger.warning("DATA", f"Skipping malformed enchantment {record!r}: {exc}")

    catalog = EnchantmentCatalog(enchantments)
    if logger:
        logger.log_enchantments_loaded(len(catalog), str(data_path))
    return catalog


@lru_cache(maxsize=1)
def default_catalog() -> EnchantmentCatalog:
    """The packaged enchantment table, loaded once per process."""
    return load_enchantments()
