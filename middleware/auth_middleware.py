"""
Authentication logging middleware.
Flags requests to protected routes that carry no bearer token; actual
validation is done by FastAPI dependencies so error messages stay uniform.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List

from core.logger import logger

# Exact-match public paths
PUBLIC_PATHS: List[str] = [
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/auth/login",
    "/api/auth/register",
]

# Prefix-match public paths (static files, websockets authenticate by query token)
PUBLIC_PREFIXES: List[str] = [
    "/files/",
    "/ws/",
    "/docs/",
]


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """Early authentication header check, used for logging/monitoring only."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if request.method != "OPTIONS" and not is_public_path(path):
            if not request.headers.get("authorization"):
                client = request.client.host if request.client else "unknown"
                logger.warning(f"Request without authentication headers: {request.method} {path} from {client}")
        return await call_next(request)
