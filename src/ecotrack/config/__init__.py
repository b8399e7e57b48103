"""Configuration package."""

from ecotrack.config.settings import Settings

__all__ = ["Settings"]
