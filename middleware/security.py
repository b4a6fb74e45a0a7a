"""
Security middleware: per-IP rate limiting, response headers, CORS and trusted hosts.
"""
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger


class _SlidingWindow:
    """Request timestamps per client inside a fixed-length window."""

    def __init__(self, limit: int, seconds: int):
        self.limit = limit
        self.seconds = seconds
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _expire(self, key: str, now: float) -> Deque[float]:
        hits = self.hits[key]
        while hits and now - hits[0] >= self.seconds:
            hits.popleft()
        return hits

    def retry_after(self, key: str, now: float) -> Optional[int]:
        """Seconds until `key` may call again, None when under the limit."""
        hits = self._expire(key, now)
        if len(hits) < self.limit:
            return None
        return max(1, int(self.seconds - (now - hits[0])) + 1)

    def add(self, key: str, now: float) -> None:
        self.hits[key].append(now)

    def prune(self, now: float) -> None:
        for key in list(self.hits):
            if not self._expire(key, now):
                del self.hits[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware."""

    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        path_prefix: str = "",
    ):
        """
        Initialize rate limiting middleware.

        Args:
            app: FastAPI application
            requests_per_minute: Max requests per minute per IP
            requests_per_hour: Max requests per hour per IP
            path_prefix: Only requests under this path are counted
        """
        super().__init__(app)
        self.windows: Tuple[_SlidingWindow, ...] = (
            _SlidingWindow(requests_per_minute, 60),
            _SlidingWindow(requests_per_hour, 3600),
        )
        self.path_prefix = path_prefix
        self.cleanup_interval = 300
        self.last_cleanup = time.time()
        self._lock = threading.Lock()

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        with self._lock:
            if now - self.last_cleanup > self.cleanup_interval:
                for window in self.windows:
                    window.prune(now)
                self.last_cleanup = now

            waits = [w.retry_after(client_ip, now) for w in self.windows]
            blocked = [wait for wait in waits if wait is not None]
            if not blocked:
                for window in self.windows:
                    window.add(client_ip, now)

        if blocked:
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(max(blocked))},
            )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Cross-Origin-Resource-Policy": "same-site",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def setup_cors(app, allowed_origins: List[str], allowed_methods: Optional[List[str]] = None):
    """
    Setup CORS middleware.

    Args:
        app: FastAPI application
        allowed_origins: List of allowed origins
        allowed_methods: HTTP methods the proxy exposes (GET/POST/OPTIONS by default)
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=allowed_methods or ["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
        expose_headers=["Content-Disposition"],
    )


def setup_trusted_hosts(app, allowed_hosts: List[str]):
    """Reject requests whose Host header is not in `allowed_hosts`."""
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=[h.strip() for h in allowed_hosts if h.strip()])
