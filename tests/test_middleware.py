import io
import json
import uuid

import pytest

from cabbage.logger import LoggerConfig, NoOpLogger, create_logger
from cabbage.middleware import (
    REQUEST_ID_KEY,
    USER_ID_KEY,
    log_level_from_status,
    logger_from_environ,
    request_id_from_environ,
    request_logging_middleware,
)

DSN = "https://public@example.com/1"


def make_logger():
    stream = io.StringIO()
    logger = create_logger(
        LoggerConfig(environment="TEST", service_name="cabbage", sentry_dsn=DSN, level="debug"),
        stream,
    )
    return logger, stream


def records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def make_app(status="200 OK", seen=None):
    def app(environ, start_response):
        if seen is not None:
            seen["logger"] = logger_from_environ(environ)
            seen["request_id"] = request_id_from_environ(environ)
        start_response(status, [("Content-Type", "text/plain")])
        return [b"ok"]

    return app


def call(app, environ):
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = headers
        return lambda data: None

    body = b"".join(app(environ, start_response))
    return captured["status"], dict(captured["headers"]), body


def base_environ(**extra):
    environ = {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": "/me/upwardli/webhooks",
        "REMOTE_ADDR": "127.0.0.1",
        "HTTP_USER_AGENT": "pytest",
        USER_ID_KEY: "user-1",
    }
    environ.update(extra)
    return environ


@pytest.mark.parametrize(
    "status, level",
    [(200, "info"), (302, "info"), (404, "warn"), (500, "error"), (503, "error")],
)
def test_log_level_from_status(status, level):
    assert log_level_from_status(status) == level


def test_request_id_header_is_reused_and_echoed():
    logger, _ = make_logger()
    seen = {}
    app = request_logging_middleware(logger, make_app(seen=seen))
    status, headers, body = call(app, base_environ(HTTP_X_REQUEST_ID="req-1"))
    assert status == "200 OK"
    assert body == b"ok"
    assert headers["X-Request-ID"] == "req-1"
    assert seen["request_id"] == "req-1"


def test_request_id_is_generated_when_missing():
    logger, _ = make_logger()
    app = request_logging_middleware(logger, make_app())
    _, headers, _ = call(app, base_environ())
    assert uuid.UUID(headers["X-Request-ID"]).version == 4


def test_app_sees_request_scoped_logger():
    logger, _ = make_logger()
    seen = {}
    app = request_logging_middleware(logger, make_app(seen=seen))
    call(app, base_environ(HTTP_X_REQUEST_ID="req-2"))
    fields = seen["logger"].fields
    assert fields["request_id"] == "req-2"
    assert fields["user_id"] == "user-1"
    assert fields["path"] == "/me/upwardli/webhooks"


def test_completion_is_logged_with_status_level():
    logger, stream = make_logger()
    app = request_logging_middleware(logger, make_app(status="404 Not Found"))
    call(app, base_environ(HTTP_X_REQUEST_ID="req-3"))
    lines = records(stream)
    assert lines[0]["message"] == "Request started"
    last = lines[-1]
    assert last["message"] == "Request completed"
    assert last["level"] == "warn"
    assert last["status_code"] == 404
    assert last["request_id"] == "req-3"
    assert last["method"] == "GET"
    assert last["duration_ms"] >= 0


def test_breadcrumb_and_user_recorded():
    logger, _ = make_logger()
    app = request_logging_middleware(logger, make_app())
    call(app, base_environ(HTTP_X_REQUEST_ID="req-4"))
    crumb = logger.reporter.breadcrumbs[0]
    assert crumb.message == "HTTP Request"
    assert crumb.category == "http"
    assert crumb.data == {"method": "GET", "path": "/me/upwardli/webhooks", "request_id": "req-4"}
    assert logger.reporter.user["id"] == "user-1"


def test_server_error_is_reported():
    logger, _ = make_logger()
    app = request_logging_middleware(logger, make_app(status="500 Internal Server Error"))
    call(app, base_environ())
    messages = [event["message"] for event in logger.reporter.events]
    assert messages == ["Request completed"]
    assert logger.reporter.events[0]["extra"]["status_code"] == 500


def test_missing_user_id_raises():
    logger, _ = make_logger()
    app = request_logging_middleware(logger, make_app())
    environ = base_environ()
    del environ[USER_ID_KEY]
    with pytest.raises(LookupError):
        call(app, environ)
    assert logger.reporter.user is None
    assert len(logger.reporter.breadcrumbs) == 0


def test_environ_helpers_without_middleware():
    assert isinstance(logger_from_environ({}), NoOpLogger)
    assert request_id_from_environ({REQUEST_ID_KEY: 5}) == ""