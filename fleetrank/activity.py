"""Login streaks and the community pulse score."""

from datetime import date
from typing import Optional, Tuple

# Users silent this long are no longer considered online
ONLINE_TIMEOUT_MINUTES = 5


def advance_streak(
    last_login: Optional[date], today: date, current: int, longest: int
) -> Tuple[int, int]:
    """Return (current_streak, longest_streak) after a login on ``today``."""
    if last_login is None:
        return 1, max(longest, 1)

    day_diff = (today - last_login).days
    if day_diff <= 0:
        return current, longest
    if day_diff == 1:
        current += 1
        return current, max(longest, current)
    return 1, max(longest, 1)


def recency_weight(hours_since_seen: float, is_online: bool) -> int:
    if is_online:
        return 100
    if hours_since_seen < 1:
        return 80
    if hours_since_seen < 24:
        return 50
    return 20


def pulse_score(
    unified_xp: float, activity_7d: int, hours_since_seen: float, is_online: bool = False
) -> float:
    """Blend recency and recent forum activity into a 20..100 score.

    Activity is scaled against XP so veterans need proportionally more posts
    to max out the activity half.
    """
    if unified_xp > 0:
        activity = activity_7d / max(unified_xp / 1000, 1) * 100
    else:
        activity = activity_7d * 10
    activity = min(activity, 100)

    engagement_multiplier = 1.0
    return (
        recency_weight(hours_since_seen, is_online) * 0.4
        + activity * 0.4
        + engagement_multiplier * 20
    )
