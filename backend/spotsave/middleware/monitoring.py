import time
import uuid
from typing import Callable
import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and logs its outcome and duration"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        # Bodies on these paths carry passwords or role bindings
        self.sensitive_paths = ('/auth/', '/aws/assume-role', '/session/connect')

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        path = request.url.path
        sensitive = any(marker in path for marker in self.sensitive_paths)
        log_context = {
            "request_id": request_id,
            "method": request.method,
            "path": "[SENSITIVE]" if sensitive else path,
            "client_ip": self._get_client_ip(request),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("Request failed",
                         error=str(e),
                         error_type=type(e).__name__,
                         duration_ms=round((time.time() - start_time) * 1000, 2),
                         **log_context)
            raise

        duration = time.time() - start_time
        logger.info("Request completed",
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2),
                    **log_context)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"
