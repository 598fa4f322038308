"""
Structured JSON logging for the message store server.

Every record carries ts, level, name, thread and message; records emitted
while serving an HTTP request also carry that request's id.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from pythonjsonlogger.json import JsonFormatter
from starlette.middleware.base import BaseHTTPMiddleware

from craftmessage.metrics import record_http_request


# Set by RequestLoggingMiddleware for the lifetime of one request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

_access_logger = logging.getLogger("craftmessage.requests")


class CustomJsonFormatter(JsonFormatter):
    """Adds a UTC ts with millisecond precision, the level name, thread and request id."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["ts"] = created.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        log_record["level"] = record.levelname
        log_record["thread"] = record.threadName

        request_id = request_id_ctx.get()
        if request_id and "request_id" not in log_record:
            log_record["request_id"] = request_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Route the root logger and uvicorn's loggers to one JSON handler on stdout.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False

    # RequestLoggingMiddleware writes the access log
    logging.getLogger("uvicorn.access").disabled = True

    # show_sql drives engine echo; pool checkouts are noise at INFO
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    return root


def _route_template(request: Request) -> Optional[str]:
    route = request.scope.get("route")
    return getattr(route, "path", None)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One access log line per request, plus http metrics.

    Logged keys: request_id, method, path, status, latency_ms, and for
    message submissions player_id and result.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            response.headers[REQUEST_ID_HEADER] = request_id

            route = _route_template(request)
            if route != "/metrics":
                record_http_request(request.method, route, response.status_code, elapsed)

            fields = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(elapsed * 1000, 2),
            }
            fields.update(getattr(request.state, "submission_log_data", {}))

            if response.status_code >= 500:
                level = logging.ERROR
            elif response.status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            _access_logger.log(level, "Request completed", extra=fields)

            return response
        finally:
            request_id_ctx.reset(token)


def log_submission_data(request: Request, player_id: Optional[str] = None, result: Optional[str] = None) -> None:
    """
    Stash submission fields on the request for the access log line.

    result is one of queued, rejected, validation_error, invalid_payload.
    """
    data = {}
    if player_id is not None:
        data["player_id"] = player_id
    if result is not None:
        data["result"] = result
    request.state.submission_log_data = data
