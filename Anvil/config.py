"""Load, normalise, and save user configuration from DefaultUserConfig.yaml."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .optimizer import MAX_ENCHANTMENTS, SURVIVAL_CAP
from .resources import get_resource_path
from .solver_logging import LogLevel

DEFAULT_CONFIG_PATH = get_resource_path("DefaultUserConfig.yaml")

# Search stays tractable up to 10! orderings
MAX_ENCHANTMENTS_LIMIT = 10


@dataclass
class UserConfig:
    survival_cap: int = SURVIVAL_CAP
    max_enchantments: int = MAX_ENCHANTMENTS
    apply_rule_costs: bool = True  # honour cost_modifier rules in the optimizer
    rules_file: Optional[Path] = None  # None = packaged data/patches.yaml
    enchantments_file: Optional[Path] = None  # None = packaged data/enchantments.yaml
    log_level: str = "SUMMARY"


def _to_int(raw: Any, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _to_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if raw is None:
        return default
    return bool(raw)


def _to_path(raw: Any, base_dir: Path) -> Optional[Path]:
    """Relative paths are taken relative to the config file's directory."""
    if not raw:
        return None
    path = Path(str(raw)).expanduser()
    return path if path.is_absolute() else base_dir / path


def _to_log_level(raw: Any) -> str:
    name = str(raw or "SUMMARY").upper()
    return name if name in LogLevel.__members__ else "SUMMARY"


def load_config(path: Optional[Path] = None) -> UserConfig:
    """Load and normalise configuration YAML into UserConfig dataclass."""
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        return UserConfig()

    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    # Clamp to usable bounds
    survival_cap = max(1, _to_int(raw.get("survivalCap"), SURVIVAL_CAP))
    max_enchantments = min(
        MAX_ENCHANTMENTS_LIMIT,
        max(1, _to_int(raw.get("maxEnchantments"), MAX_ENCHANTMENTS)),
    )

    base_dir = cfg_path.resolve().parent
    return UserConfig(
        survival_cap=survival_cap,
        max_enchantments=max_enchantments,
        apply_rule_costs=_to_bool(raw.get("applyRuleCosts"), True),
        rules_file=_to_path(raw.get("rulesFile"), base_dir),
        enchantments_file=_to_path(raw.get("enchantmentsFile"), base_dir),
        log_level=_to_log_level(raw.get("logLevel")),
    )


def save_config(config: UserConfig, path: Optional[Path] = None) -> None:
    """
    Save UserConfig back to YAML file.

    Parameters
    ----------
    config : UserConfig
        The configuration to save
    path : Path, optional
        Path to save to. Defaults to DefaultUserConfig.yaml
    """
    cfg_path = path or DEFAULT_CONFIG_PATH

    data: Dict[str, Any] = {
        "survivalCap": config.survival_cap,
        "maxEnchantments": config.max_enchantments,
        "applyRuleCosts": config.apply_rule_costs,
        "rulesFile": str(config.rules_file) if config.rules_file else None,
        "enchantmentsFile": str(config.enchantments_file) if config.enchantments_file else None,
        "logLevel": config.log_level,
    }

    with cfg_path.open("w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)
