"""
Restaurants Service package for the Restaurant Directory.

This package serves CRUD and top-rated listing endpoints for restaurants
stored in DynamoDB, with an optional Redis read-through cache. It provides:

- app.main: API surface, health and service lifecycle.
- app.coordinator: Cache-aside policy and cache key derivation.
- app.cache: Fail-open Redis cache.
- app.persistence: DynamoDB table access.

Guidelines:
- The service is stateless; rely on the external cache and table.
- The table is the source of truth; the cache may always be dropped.
"""
