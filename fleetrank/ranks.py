"""Rank system: ten military tiers resolved from a unified XP total.

Tiers run from Crewman (0 XP) to Fleet Admiral (500k XP).  The top tier's
``max_xp`` is nominal; anything above it still resolves to Fleet Admiral with
full progress.  Admins and platform-team members are appointed Fleet Admiral
regardless of what they have earned.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence, Tuple


@dataclass(frozen=True)
class RankThreshold:
    name: str
    pips: int
    pip_color: str
    bg_color: str
    min_xp: int
    max_xp: int
    level: int


@dataclass(frozen=True)
class ResolvedRank:
    name: str
    pips: int
    pip_color: str
    bg_color: str
    min_xp: int
    max_xp: int
    level: int
    xp: float
    progress_to_next: float
    is_overridden: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Descending by min_xp; lookup takes the first match.
RANK_THRESHOLDS: Tuple[RankThreshold, ...] = (
    RankThreshold("Fleet Admiral", 7, "bg-yellow-500", "bg-yellow-500/20", 500000, 999999, 10),
    RankThreshold("Admiral", 6, "bg-yellow-400", "bg-yellow-400/20", 250000, 499999, 9),
    RankThreshold("Captain", 5, "bg-yellow-300", "bg-yellow-300/20", 100000, 249999, 8),
    RankThreshold("Commander", 4, "bg-orange-400", "bg-orange-400/20", 50000, 99999, 7),
    RankThreshold("Lieutenant Commander", 4, "bg-orange-300", "bg-orange-300/20", 25000, 49999, 6),
    RankThreshold("Lieutenant", 3, "bg-blue-400", "bg-blue-400/20", 10000, 24999, 5),
    RankThreshold("Lieutenant JG", 3, "bg-blue-300", "bg-blue-300/20", 5000, 9999, 4),
    RankThreshold("Ensign", 2, "bg-cyan-400", "bg-cyan-400/20", 2500, 4999, 3),
    RankThreshold("Chief Petty Officer", 2, "bg-cyan-300", "bg-cyan-300/20", 1000, 2499, 2),
    RankThreshold("Crewman", 1, "bg-green-400", "bg-green-400/20", 0, 999, 1),
)

TOP_RANK = RANK_THRESHOLDS[0]
BOTTOM_RANK = RANK_THRESHOLDS[-1]


def sanitize_xp(xp: Any) -> float:
    """Coerce an XP value to a non-negative number. Garbage becomes 0."""
    if isinstance(xp, bool) or xp is None:
        return 0
    try:
        value = float(xp)
    except (TypeError, ValueError):
        return 0
    except OverflowError:
        # Integers beyond float range
        return 0 if xp < 0 else math.inf
    if math.isnan(value) or value < 0:
        return 0
    if value.is_integer():
        return int(value)
    return value


def clamp_progress(value: float) -> float:
    return min(max(value, 0.0), 100.0)


def find_threshold(
    xp: float, thresholds: Sequence[RankThreshold] = RANK_THRESHOLDS
) -> RankThreshold:
    """Return the highest threshold whose ``min_xp`` is reached."""
    for threshold in thresholds:
        if xp >= threshold.min_xp:
            return threshold
    return thresholds[-1]


def resolve_rank(
    xp: Any,
    is_overridden: bool = False,
    thresholds: Sequence[RankThreshold] = RANK_THRESHOLDS,
) -> ResolvedRank:
    """Resolve a display rank for an XP total.

    Overridden users always get the top tier with 100% progress; their XP is
    reported but plays no part in tier selection.

    Examples: resolve_rank(0) -> Crewman 0%, resolve_rank(999) -> Crewman
    99.9%, resolve_rank(1000) -> Chief Petty Officer 0%,
    resolve_rank(0, True) -> Fleet Admiral 100%.
    """
    value = sanitize_xp(xp)

    threshold = thresholds[0] if is_overridden else find_threshold(value, thresholds)
    # Top tier has nowhere left to go
    if is_overridden or threshold is thresholds[0]:
        progress = 100.0
    else:
        # max_xp is inclusive; the next tier starts one point above it
        span = threshold.max_xp + 1 - threshold.min_xp
        if span > 0:
            progress = clamp_progress((value - threshold.min_xp) / span * 100)
        else:
            progress = 100.0

    return ResolvedRank(
        name=threshold.name,
        pips=threshold.pips,
        pip_color=threshold.pip_color,
        bg_color=threshold.bg_color,
        min_xp=threshold.min_xp,
        max_xp=threshold.max_xp,
        level=threshold.level,
        xp=value,
        progress_to_next=progress,
        is_overridden=bool(is_overridden),
    )


def resolve_forum_rank(
    xp: Any, ranks: Sequence[Dict[str, Any]]
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]], float]:
    """Return (current, next, progress) for community forum ranks.

    ``ranks`` are dicts with at least ``min_points``; order does not matter.
    """
    if not ranks:
        return None, None, 0.0

    value = sanitize_xp(xp)
    ordered = sorted(ranks, key=lambda r: r["min_points"])
    current = ordered[0]
    nxt: Optional[Dict[str, Any]] = ordered[1] if len(ordered) > 1 else None
    for i, rank in enumerate(ordered):
        if value >= rank["min_points"]:
            current = rank
            nxt = ordered[i + 1] if i + 1 < len(ordered) else None

    if nxt is None:
        return current, None, 100.0

    required = nxt["min_points"] - current["min_points"]
    progress = (value - current["min_points"]) / required * 100 if required > 0 else 100.0
    return current, nxt, clamp_progress(progress)
