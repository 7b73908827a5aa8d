"""
Shared utilities for the rule acknowledgement gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators for idempotent calls
- circuit_breaker: Resilient external call protection
- test_helpers: Identity header, token and Aggregator document factories for tests

Do not import from service packages into shared/.
"""
