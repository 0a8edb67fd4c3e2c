"""Request ID middleware.

Assigns a request ID to each request and returns it in the X-Request-ID
response header. A client supplied X-Request-ID is reused when it is a
short token of safe characters; anything else is replaced with a UUID so
log lines cannot be forged through the header.
"""

import re
import uuid
from collections.abc import Awaitable, Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def resolve_request_id(header_value: str | None) -> str:
    """Reuse a well-formed client request ID, otherwise generate one."""
    if header_value and _SAFE_REQUEST_ID.match(header_value):
        return header_value
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that sets request.state.request_id and adds X-Request-ID to response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        request.state.request_id = request_id
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
