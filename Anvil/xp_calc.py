"""XP and level conversion for anvil costs.

Experience levels are the unit anvil costs are quoted in; XP points are
what the player actually collects. The mapping between the two is the
piecewise quadratic from the Minecraft wiki:

    level 0-16:   level**2 + 6*level
    level 17-31:  2.5*level**2 - 40.5*level + 360
    level 32+:    4.5*level**2 - 162.5*level + 2220

Two totals are derived from a sequence of per-step level costs:
incremental (earn, spend, repeat: every step is paid from level 0) and
bulk (save up to the most expensive step, then spend down).
"""
from __future__ import annotations

import math
from typing import Iterable, Sequence

# Boundary values for formula selection
XP_AT_LEVEL_16 = 352   # level_to_xp(16)
XP_AT_LEVEL_31 = 1507  # level_to_xp(31)


class XpRangeError(ValueError):
    """Raised when a negative level or XP amount is converted."""


def level_to_xp(level: float) -> int:
    """
    Convert an experience level to the total XP needed to reach it.
    
    Parameters
    ----------
    level : int or float
        Non-negative level. Fractional levels are floored.
    
    Returns
    -------
    int
        Total XP points needed to reach ``level`` from level 0.
    
    Raises
    ------
    XpRangeError
        If ``level`` is negative.
    """
    if level < 0:
        raise XpRangeError(f"Level cannot be negative: {level}")

    lvl = math.floor(level)

    if lvl <= 16:
        return lvl * lvl + 6 * lvl
    if lvl <= 31:
        return math.floor(2.5 * lvl * lvl - 40.5 * lvl + 360)
    return math.floor(4.5 * lvl * lvl - 162.5 * lvl + 2220)


def _solve_level(xp: float) -> int:
    """Closed-form inverse of the piece that ``xp`` falls in (may be off by one)."""
    if xp <= XP_AT_LEVEL_16:
        # level**2 + 6*level - xp = 0
        return math.floor((-6 + math.sqrt(36 + 4 * xp)) / 2)
    if xp <= XP_AT_LEVEL_31:
        # 2.5*level**2 - 40.5*level + (360 - xp) = 0
        discriminant = 40.5 * 40.5 - 4 * 2.5 * (360 - xp)
        return math.floor((40.5 + math.sqrt(discriminant)) / 5)
    # 4.5*level**2 - 162.5*level + (2220 - xp) = 0
    discriminant = 162.5 * 162.5 - 4 * 4.5 * (2220 - xp)
    return math.floor((162.5 + math.sqrt(discriminant)) / 9)


def xp_to_level(xp: float) -> int:
    """
    Convert a total amount of XP to the level it reaches (floored).
    
    The quadratic for the matching piece is solved first, then the result
    is nudged against :func:`level_to_xp` so that floating point error in
    the square root can never produce an off-by-one level.
    
    Parameters
    ----------
    xp : int or float
        Non-negative XP total.
    
    Returns
    -------
    int
        Highest level whose XP requirement is <= ``xp``.
    
    Raises
    ------
    XpRangeError
        If ``xp`` is negative.
    """
    if xp < 0:
        raise XpRangeError(f"XP cannot be negative: {xp}")

    level = max(0, _solve_level(xp))
    while level > 0 and level_to_xp(level) > xp:
        level -= 1
    while level_to_xp(level + 1) <= xp:
        level += 1
    return level


def xp_between_levels(from_level: float, to_level: float) -> int:
    """XP needed to go from ``from_level`` to ``to_level`` (negative when going down)."""
    return level_to_xp(to_level) - level_to_xp(from_level)


def calculate_incremental_xp(step_costs: Iterable[float]) -> int:
    """
    Total XP when every anvil step is paid for from level 0.
    
    Models "earn XP, spend it, repeat": the player farms exactly enough XP
    for each operation, so each step costs ``level_to_xp(step)``.
    """
    return sum(level_to_xp(cost) for cost in step_costs)


def calculate_bulk_xp(step_costs: Sequence[float]) -> int:
    """
    Total XP when the player saves up for the most expensive step first.
    
    Only the peak step matters: after reaching that level every cheaper
    step is paid by spending down. Returns 0 for an empty sequence.
    """
    if not step_costs:
        return 0
    return level_to_xp(max(step_costs))
