"""Configuration for the mission system."""

from fixloop_mission_system.config.settings import (
    Settings,
    get_settings,
    reload_settings,
    reset_settings,
    set_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "reset_settings",
    "set_settings",
]
