"""Rank override source: admins and the appointed platform team."""

from dataclasses import dataclass
from typing import Iterable, Optional


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_platform_team_email(email: Optional[str], team_emails: Iterable[str]) -> bool:
    """Check an e-mail against the platform team roster (case-insensitive)."""
    normalized = normalize_email(email)
    if not normalized:
        return False
    return any(normalize_email(member) == normalized for member in team_emails)


@dataclass(frozen=True)
class RankContext:
    """Membership facts for one user, looked up once per request."""
    user_id: int
    email: Optional[str] = None
    is_admin: bool = False
    is_platform_team: bool = False

    @property
    def is_overridden(self) -> bool:
        # Platform-team rank is appointed, not earned
        return self.is_admin or self.is_platform_team
