"""Structured logging with an in-process error-reporting scope."""

from __future__ import annotations

import enum
import json
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, TextIO
from urllib.parse import urlsplit

_SEVERITY = {
    "debug": -1,
    "info": 0,
    "warn": 1,
    "error": 2,
    "dpanic": 3,
    "panic": 4,
    "fatal": 5,
}
_COLOURS = {
    "debug": 35,
    "info": 34,
    "warn": 33,
    "error": 31,
    "dpanic": 31,
    "panic": 31,
    "fatal": 31,
}
_MAX_BREADCRUMBS = 100


class Level(str, enum.Enum):
    """Severity levels understood by the error reporter."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass
class Breadcrumb:
    """A trail entry attached to later error reports."""

    message: str = ""
    category: str = ""
    level: Level = Level.INFO
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class LoggerConfig:
    """Settings for :func:`create_logger`."""

    environment: str = ""
    service_name: str = ""
    sentry_dsn: str = ""
    level: str = ""
    local: bool = False


def fields_to_map(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Turn log fields into plain data suitable for an error report."""
    return {
        key: str(value) if isinstance(value, BaseException) else value
        for key, value in fields.items()
    }


def _parse_level(text: str) -> str:
    if text == "":
        return "info"
    lowered = text.lower()
    if lowered in _SEVERITY and text in (lowered, lowered.upper()):
        return lowered
    raise ValueError(f"failed to create logger: invalid log level {text}")


def _check_dsn(dsn: str) -> str:
    parts = urlsplit(dsn)
    project = parts.path.rstrip("/").rsplit("/", 1)[-1]
    if parts.scheme not in ("http", "https") or not parts.username or not parts.hostname or not project:
        raise ValueError(f"failed to initialize Sentry: invalid DSN {dsn!r}")
    return dsn


class _Sampler:
    """Per second, keep the first entries of a level and message, then every n-th."""

    def __init__(self, initial: int = 100, thereafter: int = 100, tick: float = 1.0,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self._initial = initial
        self._thereafter = thereafter
        self._tick = tick
        self._clock = clock
        self._counts: dict[tuple[str, str], tuple[int, int]] = {}

    def allow(self, level: str, message: str) -> bool:
        window = int(self._clock() // self._tick)
        key = (level, message)
        start, count = self._counts.get(key, (window, 0))
        if start != window:
            start, count = window, 0
        count += 1
        self._counts[key] = (start, count)
        if count <= self._initial:
            return True
        return (count - self._initial) % self._thereafter == 0


class _Core:
    """Shared output state: stream, threshold, sampling and encoding."""

    def __init__(self, stream: TextIO, level: str, local: bool) -> None:
        self._stream = stream
        self._min = _SEVERITY[level]
        self._local = local
        self._sampler = _Sampler()
        self._lock = threading.Lock()

    def write(self, level: str, message: str, fields: Mapping[str, Any]) -> None:
        if _SEVERITY[level] < self._min:
            return
        with self._lock:
            if not self._sampler.allow(level, message):
                return
            self._stream.write(self._encode(level, message, fields) + "\n")

    def _encode(self, level: str, message: str, fields: Mapping[str, Any]) -> str:
        now = datetime.now().astimezone()
        if self._local:
            coloured = f"\x1b[{_COLOURS[level]}m{level.upper()}\x1b[0m"
            line = f"{now.strftime('%H:%M:%S')}\t{coloured}\t{message}"
            if fields:
                line += "\t" + json.dumps(dict(fields), default=str)
            return line
        offset = now.strftime("%z")
        stamp = now.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + ("Z" if offset == "+0000" else offset)
        record = {"level": level, "timestamp": stamp, "message": message, **fields}
        return json.dumps(record, default=str)

    def flush(self) -> None:
        with self._lock:
            self._stream.flush()


class _Reporter:
    """Scope of tags, user, breadcrumbs and captured events for error tracking."""

    def __init__(self, dsn: str, environment: str, debug: bool = False) -> None:
        self.dsn = _check_dsn(dsn)
        self.environment = environment
        self.debug = debug
        self.tags: dict[str, str] = {}
        self.user: Optional[dict[str, Any]] = None
        self.breadcrumbs: deque[Breadcrumb] = deque(maxlen=_MAX_BREADCRUMBS)
        self.events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def set_tag(self, key: str, value: str) -> None:
        with self._lock:
            self.tags[key] = value

    def set_user(self, user_id: str, role: str) -> None:
        with self._lock:
            self.user = {"id": user_id, "data": {"role": role}}

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        if breadcrumb.timestamp is None:
            breadcrumb.timestamp = datetime.now().astimezone()
        with self._lock:
            self.breadcrumbs.append(breadcrumb)

    def _record(self, event: dict[str, Any]) -> None:
        with self._lock:
            event.update(
                environment=self.environment,
                tags=dict(self.tags),
                user=self.user,
                breadcrumbs=list(self.breadcrumbs),
            )
            self.events.append(event)

    def capture_message(self, message: str, level: Level = Level.INFO,
                        extra: Optional[Mapping[str, Any]] = None) -> None:
        self._record({"message": message, "level": Level(level), "extra": dict(extra or {})})

    def capture_exception(self, err: BaseException) -> None:
        self._record({
            "exception": type(err).__name__,
            "message": str(err),
            "level": Level.ERROR,
            "extra": {},
        })


class Logger:
    """Logger that writes structured lines and feeds the error reporter."""

    def __init__(self, config: LoggerConfig, core: _Core, reporter: Optional[_Reporter],
                 base_fields: Mapping[str, Any]) -> None:
        self.config = config
        self._core = core
        self._reporter = reporter
        self._base_fields = dict(base_fields)

    @property
    def reporter(self) -> Optional[_Reporter]:
        """The error-reporting scope, or None when no DSN is configured."""
        return self._reporter

    @property
    def fields(self) -> dict[str, Any]:
        """Fields added to every line this logger writes."""
        return dict(self._base_fields)

    def _log(self, level: str, msg: str, fields: Mapping[str, Any]) -> None:
        self._core.write(level, msg, {**self._base_fields, **fields})

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log("debug", msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log("info", msg, kwargs)

    def warn(self, msg: str, **kwargs: Any) -> None:
        self._log("warn", msg, kwargs)
        if self._reporter is not None:
            self.add_breadcrumb(Breadcrumb(
                message=msg, level=Level.WARNING, category="log", data=fields_to_map(kwargs)
            ))

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log("error", msg, kwargs)
        if self._reporter is not None:
            self._reporter.capture_message(msg, Level.ERROR, fields_to_map(kwargs))

    def fatal(self, msg: str, **kwargs: Any) -> None:
        """Log the message and terminate the process with status 1."""
        self._log("fatal", msg, kwargs)
        self._core.flush()
        raise SystemExit(1)

    def capture_exception(self, err: BaseException) -> None:
        if self._reporter is not None:
            self._reporter.capture_exception(err)
        self.error("Exception captured", error=err)

    def capture_message(self, message: str, level: Level) -> None:
        if self._reporter is not None:
            self._reporter.capture_message(message)
        handlers = {
            Level.DEBUG: self.debug,
            Level.INFO: self.info,
            Level.WARNING: self.warn,
            Level.ERROR: self.error,
            Level.FATAL: self.fatal,
        }
        handlers[Level(level)](message)

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        if self._reporter is not None:
            self._reporter.add_breadcrumb(breadcrumb)

    def with_fields(self, **kwargs: Any) -> "Logger":
        return Logger(self.config, self._core, self._reporter, {**self._base_fields, **kwargs})

    def with_user_id(self, user_id: str) -> "Logger":
        if self._reporter is not None:
            self._reporter.set_user(user_id, "")
        return self.with_fields(user_id=user_id)

    def with_request_id(self, request_id: str) -> "Logger":
        return self.with_fields(request_id=request_id)

    def close(self) -> None:
        self._core.flush()


class NoOpLogger:
    """Logger that discards everything, counting what it dropped."""

    def __init__(self) -> None:
        self.dropped = 0
        self.closed = False

    def _drop(self) -> None:
        self.dropped += 1

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._drop()

    def info(self, msg: str, **kwargs: Any) -> None:
        self._drop()

    def warn(self, msg: str, **kwargs: Any) -> None:
        self._drop()

    def error(self, msg: str, **kwargs: Any) -> None:
        self._drop()

    def fatal(self, msg: str, **kwargs: Any) -> None:
        self._drop()

    def capture_exception(self, err: BaseException) -> None:
        self._drop()

    def capture_message(self, message: str, level: Level) -> None:
        self._drop()

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        self._drop()

    def with_fields(self, **kwargs: Any) -> "NoOpLogger":
        """Discard the context fields, counting them as dropped, and return this logger."""
        self._drop()
        return self

    def with_user_id(self, user_id: str) -> "NoOpLogger":
        return self.with_fields(user_id=user_id)

    def with_request_id(self, request_id: str) -> "NoOpLogger":
        return self.with_fields(request_id=request_id)

    def close(self) -> None:
        self.closed = True


def create_logger(config: LoggerConfig, stream: Optional[TextIO] = None) -> Logger:
    """Build a logger; raises ValueError for a bad level or DSN."""
    reporter = None
    if config.sentry_dsn:
        reporter = _Reporter(config.sentry_dsn, config.environment, debug=config.local)

    core = _Core(stream if stream is not None else sys.stdout, _parse_level(config.level), config.local)

    if reporter is not None:
        reporter.set_tag("service", config.service_name)
        reporter.set_tag("environment", config.environment)

    return Logger(
        config,
        core,
        reporter,
        {"service": config.service_name, "environment": config.environment},
    )