"""
HTTP Middleware Stack
- Request timing with request id and response-time headers
- Sliding-window rate limiting per client
"""
import asyncio
import json
import logging
import time
import uuid
from collections import defaultdict
from typing import Callable, Dict, List

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 3000


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track request timing and add performance headers
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - start_time) * 1000
            logger.error(f"[{request_id}] {request.method} {request.url.path} - ERROR after {elapsed:.2f}ms: {e}")
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        # Chat turns wait on the language model, so the threshold is generous
        if elapsed_ms > SLOW_REQUEST_MS:
            logger.warning(f"[{request_id}] SLOW: {request.method} {request.url.path} - {elapsed_ms:.2f}ms")
        else:
            logger.debug(f"[{request_id}] {request.method} {request.url.path} {response.status_code} {elapsed_ms:.2f}ms")

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware with sliding window algorithm
    """

    SKIP_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")

    def __init__(
        self,
        app: ASGIApp,
        requests_per_window: int = 100,
        window_seconds: int = 60,
    ):
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_size = window_seconds
        self._request_counts: Dict[str, List[float]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client_ip = request.client.host if request.client else "unknown"

        if request.url.path.startswith(self.SKIP_PATHS):
            return await call_next(request)

        async with self._lock:
            now = time.time()
            window_start = now - self.window_size

            self._request_counts[client_ip] = [
                ts for ts in self._request_counts[client_ip]
                if ts > window_start
            ]

            if len(self._request_counts[client_ip]) >= self.requests_per_window:
                oldest = min(self._request_counts[client_ip])
                retry_after = int(oldest + self.window_size - now) + 1
                logger.info(f"Rate limit hit for {client_ip} on {request.url.path}")

                return Response(
                    content=json.dumps({
                        "error": True,
                        "error_code": "RATE_LIMIT_EXCEEDED",
                        "message": "Rate limit exceeded. Please try again later.",
                        "details": {"retry_after_seconds": retry_after},
                    }),
                    status_code=429,
                    headers={
                        "Content-Type": "application/json",
                        "Retry-After": str(retry_after),
                        "X-RateLimit-Limit": str(self.requests_per_window),
                        "X-RateLimit-Remaining": "0",
                        "X-RateLimit-Reset": str(int(oldest + self.window_size)),
                    }
                )

            self._request_counts[client_ip].append(now)
            remaining = self.requests_per_window - len(self._request_counts[client_ip])

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_window)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
        return response


def setup_middleware(app: FastAPI, requests_per_window: int = 100, window_seconds: int = 60) -> None:
    """
    Configure middleware for the application.
    Last added runs first, so timing wraps rate limiting.
    """
    if requests_per_window > 0:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=requests_per_window,
            window_seconds=window_seconds,
        )
    app.add_middleware(TimingMiddleware)
    logger.info("Middleware stack configured")
