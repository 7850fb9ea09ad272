"""Configuration loading and validation."""

import os
import sys
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

DEFAULT_CATALOG_FILE = os.path.join(os.path.dirname(__file__), "assets", "catalog.yml")


@dataclass
class Config:
    """Service configuration."""
    auth_secret: str
    data_file: str
    webapp_host: str
    webapp_port: int
    catalog_file: str
    xp_recalc_minutes: int
    auth_max_age_seconds: int
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def load_config() -> Config:
    """Load and validate configuration from environment variables."""
    load_dotenv()

    auth_secret = os.getenv("AUTH_SECRET")
    data_file = os.getenv("DATA_FILE", "fleetrank.db")
    webapp_host = os.getenv("WEBAPP_HOST", "0.0.0.0")
    webapp_port_str = os.getenv("WEBAPP_PORT", "8080")
    catalog_file = os.getenv("CATALOG_FILE", DEFAULT_CATALOG_FILE)
    recalc_str = os.getenv("XP_RECALC_MINUTES", "15")
    max_age_str = os.getenv("AUTH_MAX_AGE_SECONDS", "86400")
    cors_origins = os.getenv("CORS_ORIGINS", "*")

    if not auth_secret:
        sys.stderr.write("Missing required environment variables: AUTH_SECRET\n")
        sys.exit(1)

    try:
        webapp_port = int(webapp_port_str)
        xp_recalc_minutes = int(recalc_str)
        auth_max_age_seconds = int(max_age_str)
    except ValueError:
        sys.stderr.write(
            "WEBAPP_PORT, XP_RECALC_MINUTES and AUTH_MAX_AGE_SECONDS must be integers.\n"
        )
        sys.exit(1)

    return Config(
        auth_secret=auth_secret,
        data_file=data_file,
        webapp_host=webapp_host,
        webapp_port=webapp_port,
        catalog_file=catalog_file,
        xp_recalc_minutes=xp_recalc_minutes,
        auth_max_age_seconds=auth_max_age_seconds,
        cors_origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
    )


config = load_config()
