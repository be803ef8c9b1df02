"""
Configuration Management.

Settings are loaded with Pydantic Settings from, in order of precedence:
1. Environment variables
2. .env file
3. Default values

Example:
    from memweave.config import settings

    threshold = settings.default_similarity_threshold
"""

from memweave.config.settings import Settings, get_settings, settings

__all__ = [
    "Settings",
    "get_settings",
    "settings",
]
