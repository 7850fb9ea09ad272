"""YAML seed catalog: platform team, forum ranks, ambassadorial titles."""

import logging
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class TeamMember(BaseModel):
    name: str
    email: str
    role: str = ""


class ForumRank(BaseModel):
    slug: str
    name: str
    min_points: int = Field(ge=0)
    sort_order: int = 0
    description: str = ""


class TitleDefinition(BaseModel):
    slug: str
    display_name: str
    description: Optional[str] = None
    campaign_slug: Optional[str] = None
    minimum_pledge_amount: float = Field(ge=0)
    xp_multiplier: float = 1.0
    forum_xp_bonus: int = 0
    participation_xp_bonus: int = 0
    tier_level: int = 0
    color: str = "#888888"
    badge_style: str = "default"


class Catalog(BaseModel):
    platform_team: List[TeamMember] = []
    forum_ranks: List[ForumRank] = []
    ambassadorial_titles: List[TitleDefinition] = []


def load_catalog(path: str) -> Catalog:
    """Parse and validate the catalog file. Raises on invalid content."""
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    catalog = Catalog.model_validate(raw)
    logger.info(
        f"Loaded catalog: {len(catalog.platform_team)} team members, "
        f"{len(catalog.forum_ranks)} forum ranks, "
        f"{len(catalog.ambassadorial_titles)} titles"
    )
    return catalog
