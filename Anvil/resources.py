"""
Resource path utilities for frozen (PyInstaller) and development modes.

Static data (enchantment table, rule patches, default user config) ships
inside the package directory. This module resolves paths to those files
both when running from a source checkout / installed package and when
packaged as a standalone executable with PyInstaller.
"""
from __future__ import annotations

import sys
from pathlib import Path


def get_resource_path(relative_path: str) -> Path:
    """
    Get absolute path to a packaged resource, works for dev and PyInstaller.
    
    In development (or installed) mode, paths are resolved relative to the
    ``Anvil`` package directory. In frozen (PyInstaller) mode, paths are
    resolved relative to the ``Anvil`` folder inside the temporary
    extraction directory (_MEIPASS).
    
    Parameters
    ----------
    relative_path : str
        Path relative to the package directory (e.g., "data/enchantments.yaml")
    
    Returns
    -------
    Path
        Absolute path to the resource
    
    Examples
    --------
    >>> config_path = get_resource_path("DefaultUserConfig.yaml")
    >>> rules_path = get_resource_path("data/patches.yaml")
    """
    if getattr(sys, 'frozen', False):
        # PyInstaller bundle: data is collected under <_MEIPASS>/Anvil
        base_path = Path(sys._MEIPASS) / "Anvil"  # type: ignore[attr-defined]
    else:
        base_path = Path(__file__).resolve().parent
    return base_path / relative_path


def is_frozen() -> bool:
    """
    Check if running in a frozen (PyInstaller) environment.
    
    Returns
    -------
    bool
        True if running as a packaged executable, False in development
    """
    return getattr(sys, 'frozen', False)
