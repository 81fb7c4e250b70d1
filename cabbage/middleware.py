"""WSGI middleware that gives every request its own logger and request ID."""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Iterable, Iterator, MutableMapping, Optional, Union

from .logger import Breadcrumb, Level, Logger, NoOpLogger

LOGGER_KEY = "cabbage.logger"
REQUEST_ID_KEY = "cabbage.request_id"
USER_ID_KEY = "cabbage.user_id"
REQUEST_ID_HEADER = "X-Request-ID"

AnyLogger = Union[Logger, NoOpLogger]
StartResponse = Callable[..., Any]
WSGIApp = Callable[[MutableMapping[str, Any], StartResponse], Iterable[bytes]]


def log_level_from_status(status_code: int) -> str:
    """Name of the logger method used for a response with this status."""
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warn"
    return "info"


def logger_from_environ(environ: MutableMapping[str, Any]) -> AnyLogger:
    """The request-scoped logger, or a logger that discards everything."""
    found = environ.get(LOGGER_KEY)
    if isinstance(found, (Logger, NoOpLogger)):
        return found
    return NoOpLogger()


def request_id_from_environ(environ: MutableMapping[str, Any]) -> str:
    """The request ID set by the middleware, or an empty string."""
    found = environ.get(REQUEST_ID_KEY)
    return found if isinstance(found, str) else ""


def request_logging_middleware(logger: AnyLogger, app: WSGIApp) -> WSGIApp:
    """Wrap a WSGI app so each request is logged with its own context.

    The user ID must already be in the environment under ``USER_ID_KEY``;
    a request without one raises :class:`LookupError`.
    """

    def middleware(environ: MutableMapping[str, Any], start_response: StartResponse) -> Iterator[bytes]:
        start = time.monotonic()

        request_id = environ.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        method = environ.get("REQUEST_METHOD", "")
        path = environ.get("PATH_INFO", "")

        user_id = environ.get(USER_ID_KEY)
        if not isinstance(user_id, str):
            raise LookupError("request has no user ID in its environment")

        request_logger = (
            logger.with_request_id(request_id)
            .with_fields(
                method=method,
                path=path,
                remote_addr=environ.get("REMOTE_ADDR", ""),
                user_agent=environ.get("HTTP_USER_AGENT", ""),
            )
            .with_user_id(user_id)
        )

        environ[LOGGER_KEY] = request_logger
        environ[REQUEST_ID_KEY] = request_id

        status_code = 200

        def tracking_start_response(status: str, headers: list, exc_info: Optional[Any] = None) -> Any:
            nonlocal status_code
            status_code = int(status.split(None, 1)[0])
            headers = list(headers)
            if not any(name.lower() == REQUEST_ID_HEADER.lower() for name, _ in headers):
                headers.append((REQUEST_ID_HEADER, request_id))
            if exc_info is None:
                return start_response(status, headers)
            return start_response(status, headers, exc_info)

        request_logger.info("Request started")
        request_logger.add_breadcrumb(Breadcrumb(
            message="HTTP Request",
            category="http",
            level=Level.INFO,
            data={"method": method, "path": path, "request_id": request_id},
        ))

        result = app(environ, tracking_start_response)
        try:
            yield from result
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()

        duration = time.monotonic() - start
        log = getattr(request_logger, log_level_from_status(status_code))
        log(
            "Request completed",
            status_code=status_code,
            duration=duration,
            duration_ms=int(duration * 1000),
        )

    return middleware