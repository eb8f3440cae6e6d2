"""
Ephemeral conversation history cache.
"""

from .session_cache import CacheLookup, CacheStatus, SessionCache

__all__ = ["CacheLookup", "CacheStatus", "SessionCache"]
