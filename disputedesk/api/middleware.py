import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from disputedesk.common.logging import get_logger

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-Id"


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs it with the acting user.

    Version conflicts and other client errors log at WARNING, server
    errors at ERROR, everything else at INFO.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "[%s] %s %s -> %d in %.1fms (actor=%s role=%s)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.headers.get("x-actor-id", "-"),
            request.headers.get("x-actor-role", "-"),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        return response
