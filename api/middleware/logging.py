"""
Access log middleware: one line per request with status and duration.
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    # paths polled by probes and docs
    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.time()
        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params) or None,
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration=round(time.time() - start_time, 3),
                error=str(exc),
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=round(duration, 3),
        )
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response
