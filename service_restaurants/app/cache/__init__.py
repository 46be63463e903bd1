"""
Cache package for the Restaurants Service.

Provides a Redis-backed cache for restaurant lookups and list queries.
Cache failures degrade to misses so the service keeps serving from the
table.
"""
