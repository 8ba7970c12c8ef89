"""Cont3xt middleware."""

from cont3xt.middleware.access_log import AccessLogMiddleware

__all__ = ["AccessLogMiddleware"]
