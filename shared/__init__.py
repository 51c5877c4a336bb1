"""
Shared utilities for the feed coordination services.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request, viewer and trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service scaffold (health, metrics, error handlers)
- test_helpers: Fake clock, controllable requests and row factories

Do not import from service_* packages into shared/.
"""
