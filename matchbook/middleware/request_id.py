"""Request ID middleware.

Every request gets an ID (taken from ``X-Request-ID`` or freshly generated)
that is stored in a ContextVar so log lines emitted while resolving a place
can be correlated, and echoed back on the response.
"""

import contextvars
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            request_id_var.reset(token)


def get_request_id() -> str:
    """Current request ID, or "" outside a request (CLI, background tasks)."""
    return request_id_var.get()
