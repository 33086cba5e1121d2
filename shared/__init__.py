"""
Shared utilities for the Directory Access Layer.

This package aggregates common building blocks consumed by the services:

- config: Service and directory settings via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry and timeout budget for external calls
- base_service: FastAPI application skeleton with health and metrics routes

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
