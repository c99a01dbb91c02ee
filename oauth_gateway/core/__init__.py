"""Core module - settings, provider configuration, security helpers"""

from .settings import Settings

__all__ = ["Settings"]
