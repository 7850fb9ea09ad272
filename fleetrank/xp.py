"""XP economy: donor XP, forum XP, profile completion and streak bonuses.

Two paths feed the unified total.  Donors earn 100 XP per dollar pledged;
community members earn participation XP from forum activity, profile
completion, achievements and recruitment.  The unified total takes the
larger path plus a 10% bonus of the smaller when both are non-zero.
"""

import math
from typing import Any, Dict

from .ranks import sanitize_xp

DONOR_XP_MULTIPLIER = 100  # $1 = 100 XP

FORUM_XP: Dict[str, int] = {
    "create_thread": 100,
    "post_reply": 20,
    "receive_like": 10,
    "receive_thank": 20,
    "hot_thread_bonus": 50,      # 100+ views
    "viral_thread_bonus": 100,   # 500+ views
    "thread_pinned_bonus": 200,
    "first_reply_bonus": 10,
    "thread_starter_bonus": 25,  # thread gets 5+ replies
}

# Actions the user wrote themselves; likes, thanks and thread bonuses are received
AUTHORED_ACTIONS = ("create_thread", "post_reply")

PROFILE_XP: Dict[str, int] = {
    "avatar_uploaded": 150,
    "bio_filled": 100,
    "custom_signature": 100,
    "social_link": 50,  # per link
    "favorite_series": 50,
    "location_timezone": 50,
    "profile_views_100": 100,
    "complete_all_fields": 300,
}

# (minimum consecutive days, xp), checked top-down
STREAK_XP = (
    (365, 5000),
    (180, 2000),
    (90, 1000),
    (30, 500),
    (7, 100),
)

WORDS_100_PLUS = 1.5
WORDS_500_PLUS = 2.0
HAS_MEDIA = 1.2

# (max post number today, multiplier); anything past the last tier gets the floor
POSTS_PER_DAY = (
    (10, 1.0),
    (20, 0.5),
)
POSTS_PER_DAY_FLOOR = 0.25

DUAL_PATH_BONUS = 0.1


def calculate_donor_xp(total_pledged: Any) -> float:
    return sanitize_xp(total_pledged) * DONOR_XP_MULTIPLIER


def calculate_unified_xp(donation_xp: Any, participation_xp: Any) -> float:
    """Dual-path total: max(donation, participation) + 10% of the smaller."""
    donation = sanitize_xp(donation_xp)
    participation = sanitize_xp(participation_xp)
    base = max(donation, participation)
    if math.isinf(base):
        return base
    bonus = 0
    if donation > 0 and participation > 0:
        bonus = math.floor(min(donation, participation) * DUAL_PATH_BONUS)
    return int(base + bonus)


def posts_per_day_multiplier(post_number_today: int) -> float:
    for max_posts, multiplier in POSTS_PER_DAY:
        if post_number_today <= max_posts:
            return multiplier
    return POSTS_PER_DAY_FLOOR


def calculate_post_xp(
    base_xp: int, word_count: int = 0, has_media: bool = False, post_number_today: int = 1
) -> int:
    """Apply quality multipliers and the daily diminishing-returns tier."""
    multiplier = 1.0
    if word_count >= 500:
        multiplier *= WORDS_500_PLUS
    elif word_count >= 100:
        multiplier *= WORDS_100_PLUS

    if has_media:
        multiplier *= HAS_MEDIA

    multiplier *= posts_per_day_multiplier(post_number_today)
    return math.floor(base_xp * multiplier)


def calculate_profile_completion_xp(
    has_avatar: bool = False,
    has_bio: bool = False,
    has_signature: bool = False,
    social_links_count: int = 0,
    has_favorite_series: bool = False,
    has_location: bool = False,
    profile_views: int = 0,
) -> int:
    total = 0
    if has_avatar:
        total += PROFILE_XP["avatar_uploaded"]
    if has_bio:
        total += PROFILE_XP["bio_filled"]
    if has_signature:
        total += PROFILE_XP["custom_signature"]
    if has_favorite_series:
        total += PROFILE_XP["favorite_series"]
    if has_location:
        total += PROFILE_XP["location_timezone"]

    total += max(social_links_count, 0) * PROFILE_XP["social_link"]

    if profile_views >= 100:
        total += PROFILE_XP["profile_views_100"]

    is_complete = (
        has_avatar and has_bio and has_signature
        and has_favorite_series and has_location
        and social_links_count > 0
    )
    if is_complete:
        total += PROFILE_XP["complete_all_fields"]

    return total


def calculate_streak_xp(consecutive_days: int) -> int:
    for min_days, xp in STREAK_XP:
        if consecutive_days >= min_days:
            return xp
    return 0


def effective_rank_xp(
    total_pledged: Any = 0, forum_rank_min_points: Any = 0, unified_xp: Any = 0
) -> float:
    """XP used for military rank: the best of pledge, forum rank and unified XP."""
    return max(
        calculate_donor_xp(total_pledged),
        sanitize_xp(forum_rank_min_points),
        sanitize_xp(unified_xp),
    )
