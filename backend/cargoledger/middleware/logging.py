"""Access log middleware.

Emits one JSON line per request on ``cargoledger.access`` and echoes the
request id back as ``X-Request-ID`` so callers can correlate pipeline runs
with log output. Client errors log at WARNING, server errors at ERROR.
"""

import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("cargoledger.access")

REQUEST_ID_HEADER = "X-Request-ID"


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error request_id=%s %s %s", request_id, request.method, request.url.path
            )
            raise

        entry = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query": str(request.url.query) or None,
            "status": response.status_code,
            "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
        }
        logger.log(_level_for(response.status_code), json.dumps(entry))

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
