"""Donor rank, XP and community service."""

__version__ = "0.1.0"
