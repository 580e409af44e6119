"""
Kbot Configuration Package.

Provides Pydantic Settings loaded from environment variables.
"""

from kbot_config.settings import Settings

__all__ = ["Settings"]
