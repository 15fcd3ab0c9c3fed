"""
Keelson configuration.

Pydantic-based settings read from environment variables (``KEELSON_`` prefix)
and ``.env`` files.
"""

from keelson.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
