"""Request logging middleware."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import logging
import time
import uuid

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and tags the response with timing and a request id."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        forwarded = request.headers.get("X-Forwarded-For")
        client_ip = forwarded.split(",")[0].strip() if forwarded else (
            request.client.host if request.client else "unknown"
        )
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request: {method} {path} | Status: 500 | "
                f"Time: {time.time() - start_time:.3f}s | IP: {client_ip} | ID: {request_id} | Error: {e}"
            )
            raise

        process_time = time.time() - start_time
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            f"Request: {method} {path} | "
            f"Status: {response.status_code} | "
            f"Time: {process_time:.3f}s | "
            f"IP: {client_ip} | "
            f"ID: {request_id}"
        )

        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        response.headers["X-Request-ID"] = request_id

        return response
