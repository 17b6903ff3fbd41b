"""FastAPI middleware for the AMS planning service."""

from ams.api.middleware.security import RequestIDMiddleware, SecurityHeadersMiddleware

__all__ = [
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
]
