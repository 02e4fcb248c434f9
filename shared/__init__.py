"""
Shared utilities for the content access layer.

This package aggregates common building blocks consumed by the service:

- config: Settings via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types
- retry: Exponential backoff for origin calls
- clock: Injectable time sources
- background: Best-effort detached writes

Do not import from service_* packages into shared/.
"""
