"""
FastAPI middleware for correlation ID propagation and request logging.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from messaging_engine.core.logging import (
    get_logger,
    correlation_context,
    log_business_event,
)

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation ID to requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and add correlation ID."""
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())[:8]
        user_id = request.headers.get("X-User-ID")
        client_id = request.headers.get("X-Client-ID")

        with correlation_context(
            correlation_id=correlation_id,
            user_id=user_id,
            client_id=client_id,
        ):
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                correlation_id=correlation_id,
            )

            start_time = time.time()

            try:
                response = await call_next(request)

                processing_time_ms = round((time.time() - start_time) * 1000, 2)

                logger.info(
                    "Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    processing_time_ms=processing_time_ms,
                    correlation_id=correlation_id
                )

                response.headers["X-Correlation-ID"] = correlation_id
                response.headers["X-Processing-Time-MS"] = str(processing_time_ms)

                return response

            except Exception as e:
                processing_time_ms = round((time.time() - start_time) * 1000, 2)

                logger.error(
                    "Request failed",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                    processing_time_ms=processing_time_ms,
                    correlation_id=correlation_id,
                    exc_info=True
                )

                log_business_event(
                    "http_request_failed",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                    correlation_id=correlation_id,
                )

                return JSONResponse(
                    status_code=500,
                    content={
                        "error": "Internal server error",
                        "correlation_id": correlation_id,
                        "timestamp": time.time()
                    },
                    headers={"X-Correlation-ID": correlation_id},
                )
