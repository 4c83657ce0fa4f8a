"""
Shared utilities for the resource cache.

This package aggregates common building blocks consumed by the cache and
its loaders:

- config: Cache and loader configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators for loaders
- circuit_breaker: Resilient external call protection for loaders

Do not import from resource_cache into shared/.
"""
