"""Ambassadorial titles awarded for qualifying pledges."""

from typing import Any, Dict, Iterable, List, Optional


def title_matches_campaign(title: Dict[str, Any], campaign_slug: Optional[str]) -> bool:
    required = title.get("campaign_slug")
    return required is None or required == campaign_slug


def eligible_titles(
    pledges: Iterable[Dict[str, Any]], titles: Iterable[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Return titles earned by ``pledges``, each tagged with its source pledge.

    Pledges need ``id``, ``amount`` and ``campaign_slug``.  A title is earned
    by any single pledge of at least ``minimum_pledge_amount`` to a matching
    campaign; the largest such pledge is recorded as the source.
    """
    pledges = list(pledges)
    earned = []
    for title in titles:
        best = None
        for pledge in pledges:
            amount = float(pledge.get("amount") or 0)
            if amount < title["minimum_pledge_amount"]:
                continue
            if not title_matches_campaign(title, pledge.get("campaign_slug")):
                continue
            if best is None or amount > float(best.get("amount") or 0):
                best = pledge
        if best is not None:
            earned.append({**title, "source_pledge_id": best["id"]})
    return earned


def pick_primary_title(titles: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Primary title: the one flagged, else the most recently awarded."""
    for title in titles:
        if title.get("is_primary"):
            return title
    if not titles:
        return None
    return max(titles, key=lambda t: t.get("awarded_at") or "")


def title_buffs(titles: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Aggregate buffs from held titles.

    Flat bonuses stack across titles.  Multipliers do not: the best one held
    applies, and 1.0 means no boost.
    """
    buffs = {"xp_multiplier": 1.0, "forum_xp_bonus": 0, "participation_xp_bonus": 0}
    for t in titles:
        buffs["xp_multiplier"] = max(buffs["xp_multiplier"], float(t.get("xp_multiplier") or 1.0))
        buffs["forum_xp_bonus"] += int(t.get("forum_xp_bonus") or 0)
        buffs["participation_xp_bonus"] += int(t.get("participation_xp_bonus") or 0)
    return buffs


def title_xp_buff(titles: Iterable[Dict[str, Any]]) -> int:
    buffs = title_buffs(titles)
    return buffs["forum_xp_bonus"] + buffs["participation_xp_bonus"]
