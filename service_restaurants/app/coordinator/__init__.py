"""
Cache-aside coordination for the Restaurants Service.
"""

from .cache_aside import CacheAsideCoordinator
from .keys import CacheKeyBuilder

__all__ = ["CacheAsideCoordinator", "CacheKeyBuilder"]
