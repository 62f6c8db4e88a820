import math
import time
from typing import Callable, Dict
from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from models.explain_models import ErrorResponse
from utils.errors import ExplainError, InvalidRequestError, PayloadTooLargeError
from utils.logging import gateway_logger, log_request_start, log_request_end, log_error, log_periodic_stats, log_rate_limited
from utils.rate_limit import RateLimitConfig, RateLimitStore


def error_json(error: ExplainError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=ErrorResponse(error=error.message).model_dump(exclude_none=True)
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with timing and turns escaped exceptions into a 500"""

    def __init__(self, app, slow_request_threshold_ms: float = 5000, log_periodic_stats_interval: int = 300):
        super().__init__(app)
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.log_periodic_stats_interval = log_periodic_stats_interval
        self.last_stats_log = time.time()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        endpoint = f"{request.method} {request.url.path}"
        request_info = log_request_start(request, endpoint)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_error(e, endpoint, {
                "duration_ms": duration_ms,
                "request_path": str(request.url.path),
                "request_method": request.method
            })
            log_request_end(request_info, duration_ms, 500)
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(error="Internal server error").model_dump(exclude_none=True)
            )

        duration_ms = (time.time() - start_time) * 1000
        log_request_end(request_info, duration_ms, response.status_code)

        if duration_ms > self.slow_request_threshold_ms:
            gateway_logger.logger.warning(
                f"🐌 SLOW REQUEST | {endpoint} | "
                f"Duration: {duration_ms:.2f}ms | Threshold: {self.slow_request_threshold_ms}ms"
            )

        current_time = time.time()
        if current_time - self.last_stats_log > self.log_periodic_stats_interval:
            log_periodic_stats()
            self.last_stats_log = current_time

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Sets the usual hardening headers on every response"""

    CONTENT_SECURITY_POLICY = (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    )

    HEADERS: Dict[str, str] = {
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
        "Origin-Agent-Cluster": "?1",
        "Referrer-Policy": "no-referrer",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "X-Content-Type-Options": "nosniff",
        "X-DNS-Prefetch-Control": "off",
        "X-Download-Options": "noopen",
        "X-Frame-Options": "SAMEORIGIN",
        "X-Permitted-Cross-Domain-Policies": "none",
        "X-XSS-Protection": "0",
    }

    # Swagger UI loads its assets from a CDN
    CSP_EXEMPT_PATHS = ("/docs", "/redoc", "/openapi.json")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        for name, value in self.HEADERS.items():
            response.headers[name] = value
        if not request.url.path.startswith(self.CSP_EXEMPT_PATHS):
            response.headers["Content-Security-Policy"] = self.CONTENT_SECURITY_POLICY

        return response


class BodySizeLimitMiddleware:
    """Rejects request bodies larger than max_body_bytes.

    Declared sizes are refused up front; bodies without a Content-Length
    (chunked uploads) are counted as they stream in. Plain ASGI so the
    receive channel can be wrapped.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int = 10 * 1024 * 1024):
        self.app = app
        self.max_body_bytes = max_body_bytes

    def _log_rejection(self, scope: Scope, size: int) -> None:
        gateway_logger.logger.warning(
            f"📦 PAYLOAD TOO LARGE | {scope.get('method')} {scope.get('path')} | "
            f"Size: {size}+ bytes | Limit: {self.max_body_bytes} bytes"
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            try:
                declared = int(content_length)
            except ValueError:
                await error_json(InvalidRequestError())(scope, receive, send)
                return

            if declared > self.max_body_bytes:
                self._log_rejection(scope, declared)
                await error_json(PayloadTooLargeError())(scope, receive, send)
                return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    self._log_rejection(scope, received)
                    # Raised while the route reads its body; answered by the HTTP error handler
                    raise HTTPException(status_code=413, detail=PayloadTooLargeError.message)
            return message

        await self.app(scope, limited_receive, send)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Caps requests per client address within a fixed window"""

    def __init__(self,
                 app,
                 store: RateLimitStore,
                 max_requests: int = RateLimitConfig.MAX_REQUESTS,
                 window_seconds: int = RateLimitConfig.WINDOW_SECONDS,
                 message: str = RateLimitConfig.MESSAGE):
        super().__init__(app)
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message

    @staticmethod
    def client_key(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        key = self.client_key(request)
        hit = await self.store.hit(key, self.window_seconds)

        reset_in = math.ceil(hit.reset_in)
        headers = {
            "RateLimit-Limit": str(self.max_requests),
            "RateLimit-Remaining": str(max(self.max_requests - hit.count, 0)),
            "RateLimit-Reset": str(reset_in),
        }

        if hit.count > self.max_requests:
            log_rate_limited(key, f"{request.method} {request.url.path}", hit.count)
            headers["Retry-After"] = str(reset_in)
            return PlainTextResponse(self.message, status_code=429, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
