"""Structured JSON access logging for the marking API."""

import json
import logging
import sys
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.middleware.request_id import resolve_request_id

logger = logging.getLogger(__name__)

# Chatty third-party loggers kept at WARNING so marking logs stay readable
QUIET_LOGGERS = ("httpx", "httpcore", "google_genai", "urllib3")

# Response header -> access log field, with a parser for the value
MARKING_HEADERS: Dict[str, tuple] = {
    "X-Marking-Method": ("marking_method", str),
    "X-Marking-Percentage": ("marking_percentage", int),
}


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging; access logs are already JSON formatted."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(message)s',
        stream=sys.stdout
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def marking_fields(headers: Any) -> Dict[str, Any]:
    """Marking outcome fields carried on response headers by the marking router."""
    fields: Dict[str, Any] = {}
    for header, (field, parse) in MARKING_HEADERS.items():
        value = headers.get(header)
        if value is None:
            continue
        try:
            fields[field] = parse(value)
        except ValueError:
            logger.debug(f"Ignoring unparsable {header} header: {value!r}")
    return fields


def build_access_log(
    request: Request,
    request_id: str,
    started: float,
    status_code: int,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """One access log record. Never includes document text, memos or prompts."""
    record: Dict[str, Any] = {
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "user_ip": request.client.host if request.client else "unknown",
        "status_code": status_code,
        "processing_time_ms": round((time.time() - started) * 1000, 2),
    }
    if extra:
        record.update(extra)
    return record


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one JSON line per request.

    Client errors are logged at WARNING and server errors at ERROR so a
    failing remote marker stands out from routine validation failures.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = getattr(request.state, "request_id", None) or resolve_request_id(None)
        request.state.request_id = request_id
        started = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            record = build_access_log(request, request_id, started, 500, {
                "error": str(e),
                "error_type": type(e).__name__,
            })
            logger.error(json.dumps(record), exc_info=True)
            raise

        record = build_access_log(request, request_id, started, response.status_code, marking_fields(response.headers))
        if response.status_code >= 500:
            logger.error(json.dumps(record))
        elif response.status_code >= 400:
            logger.warning(json.dumps(record))
        else:
            logger.info(json.dumps(record))

        response.headers["X-Request-ID"] = request_id
        return response
