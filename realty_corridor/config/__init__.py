"""Configuration package."""

from realty_corridor.config.settings import (
    VALID_DETECTOR_STRATEGIES,
    Settings,
    get_settings,
)

__all__ = ["Settings", "VALID_DETECTOR_STRATEGIES", "get_settings"]
