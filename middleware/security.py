"""
Security middleware for rate limiting, CORS, and response headers.
"""
from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from core.logger import logger


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiting per client IP."""

    def __init__(self, app, requests_per_minute: int = 120, requests_per_hour: int = 3000):
        """
        Args:
            app: FastAPI application
            requests_per_minute: Max requests per minute per IP
            requests_per_hour: Max requests per hour per IP
        """
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.history: Dict[str, Deque[float]] = defaultdict(deque)
        self.cleanup_interval = 300
        self.last_cleanup = time.time()

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"

        current_time = time.time()
        if current_time - self.last_cleanup > self.cleanup_interval:
            self._cleanup_old_entries(current_time)
            self.last_cleanup = current_time

        if not self._check_rate_limit(client_ip, current_time):
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            # Exceptions raised in BaseHTTPMiddleware bypass the exception handlers
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later.", "code": "RATE_LIMITED"}
            )

        return await call_next(request)

    def _check_rate_limit(self, client_ip: str, current_time: float) -> bool:
        history = self.history[client_ip]
        while history and current_time - history[0] >= 3600:
            history.popleft()

        last_minute = sum(1 for t in history if current_time - t < 60)
        if last_minute >= self.requests_per_minute or len(history) >= self.requests_per_hour:
            return False

        history.append(current_time)
        return True

    def _cleanup_old_entries(self, current_time: float):
        for ip in list(self.history.keys()):
            history = self.history[ip]
            while history and current_time - history[0] >= 3600:
                history.popleft()
            if not history:
                del self.history[ip]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


def setup_cors(app, allowed_origins: list[str], allowed_methods: list[str] = None):
    """
    Setup CORS middleware.

    Args:
        app: FastAPI application
        allowed_origins: List of allowed origins
        allowed_methods: List of allowed HTTP methods
    """
    if allowed_methods is None:
        allowed_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=allowed_methods,
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )


def setup_trusted_hosts(app, allowed_hosts: list[str]):
    """Setup trusted hosts middleware."""
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)
