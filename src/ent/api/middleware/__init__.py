"""ent API middleware package."""

from ent.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
