"""
Request ID middleware for request correlation.

- Generates or accepts X-Request-ID header
- Stores in request.state and response headers
- Sets context vars so request_id and the course code are in every log line
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from classdesk.logging_config import course_code_var, get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000

_COURSE_PATH = re.compile(r"/courses/([^/]+)")


def course_code_from_path(path: str) -> Optional[str]:
    match = _COURSE_PATH.search(path)
    if not match or match.group(1) == "join":
        return None
    return match.group(1)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Assign a unique request ID to each request for correlation across logs.

    Accepts X-Request-ID from the client when present, otherwise generates a
    UUID, and echoes it on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = incoming if incoming else str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        course_token = course_code_var.set(course_code_from_path(request.url.path))
        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id

            # The feed endpoint streams for as long as the viewer stays
            if duration_ms > SLOW_REQUEST_MS and not request.url.path.endswith("/feed"):
                logger.warning(
                    "Slow request",
                    extra={
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": round(duration_ms, 1),
                    },
                )
            return response
        finally:
            course_code_var.reset(course_token)
            request_id_var.reset(token)
