"""Starlette middleware for the FanFlow API."""

from fanflow_api.middleware.correlation import CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware"]
