"""
Admin Package

Administrative overrides for temp voice channels.
"""

from .commands import AdminCog

__all__ = ["AdminCog"]
