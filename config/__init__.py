"""
Configuration Management Module
Process-level settings loaded from the environment / config/.env.
"""
from .settings import (
    Settings,
    get_settings,
    get_storage_settings,
    get_search_settings,
    get_agent_settings,
    get_log_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_storage_settings",
    "get_search_settings",
    "get_agent_settings",
    "get_log_settings",
]
