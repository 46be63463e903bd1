"""
Cache key derivation for restaurant lookups and list queries.
"""

import hashlib
import json

from ..models import ListQuery


class CacheKeyBuilder:
    """Builds deterministic cache keys under a common namespace."""

    def __init__(self, prefix: str = "restaurants"):
        self.prefix = prefix

    def point_key(self, name: str) -> str:
        """Key for the point-lookup entry of one restaurant."""
        return f"{self.prefix}:restaurant:{name}"

    def list_key(self, query: ListQuery) -> str:
        """Key for one list query.

        The whole parameter tuple is hashed, so two queries share a key
        only when kind, filter values, limit and minimum rating all match.
        """
        payload = json.dumps({
            "kind": query.kind.value,
            "values": list(query.values),
            "limit": int(query.limit),
            "min_rating": float(query.min_rating),
        }, sort_keys=True)
        digest = hashlib.md5(payload.encode()).hexdigest()
        return f"{self.prefix}:list:{query.kind.value}:{digest}"
