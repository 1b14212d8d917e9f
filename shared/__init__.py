"""
Shared utilities for the GitHub Backend API.

This package aggregates the common building blocks of the service:

- config: Service settings via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI app skeleton, middleware and exception handlers

Do not import from service packages into shared/.
"""
