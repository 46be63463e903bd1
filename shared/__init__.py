"""
Shared utilities for the Restaurant Directory.

This package holds the building blocks the service is assembled from:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator with backoff
- circuit_breaker: Protection for calls to flaky collaborators
- base_service: FastAPI service shell (health, metrics, error handlers)

Do not import from service packages into shared/.
"""
