"""
Shared utilities for the OIDC login service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Resilient external call protection
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
