"""WSGI middleware that checks the signature of incoming webhook deliveries."""

from __future__ import annotations

import io
import json
from typing import Any, Callable, Iterable, MutableMapping, Protocol

SIGNATURE_HEADER = "Upwardli-Signature"
_SIGNATURE_ENVIRON_KEY = "HTTP_UPWARDLI_SIGNATURE"
_REQUIRED_FIELDS = ("t", "v1")

StartResponse = Callable[..., Any]
WSGIApp = Callable[[MutableMapping[str, Any], StartResponse], Iterable[bytes]]


class SignatureError(ValueError):
    """The signature header is malformed or incomplete."""


class _SignatureVerifier(Protocol):
    def verify(self, message: bytes, signature: bytes) -> bool: ...


class _DebugLogger(Protocol):
    def debug(self, msg: str, **kwargs: Any) -> None: ...


def parse_signature_header(header: str) -> dict[str, str]:
    """Parse ``t=...,v1=...`` into a mapping; every pair and field is required."""
    mapping: dict[str, str] = {}
    for element in header.split(","):
        key_value = element.split("=")
        if len(key_value) != 2:
            raise SignatureError("invalid signature format")
        key, value = key_value
        mapping[key] = value

    for name in _REQUIRED_FIELDS:
        if not mapping.get(name):
            raise SignatureError(f"missing required field: {name}")
    return mapping


def signed_payload(timestamp: str, body: bytes) -> bytes:
    """The bytes the signature is computed over: ``<timestamp>.<body>``."""
    return timestamp.encode() + b"." + body


def _read_body(environ: MutableMapping[str, Any]) -> bytes:
    stream = environ.get("wsgi.input")
    if stream is None:
        return b""
    raw_length = environ.get("CONTENT_LENGTH")
    if raw_length:
        length = int(raw_length)
        if length < 0:
            raise ValueError("negative content length")
        return stream.read(length)
    if environ.get("wsgi.input_terminated"):
        return stream.read()
    return b""


def _error_response(start_response: StartResponse, message: str) -> list[bytes]:
    body = json.dumps({"error": message}, separators=(",", ":")).encode()
    start_response(
        "400 Bad Request",
        [("Content-Type", "application/json"), ("Content-Length", str(len(body)))],
    )
    return [body]


def webhook_verification_middleware(
    verifier: _SignatureVerifier, logger: _DebugLogger, app: WSGIApp
) -> WSGIApp:
    """Wrap a WSGI app so only correctly signed deliveries reach it."""

    def middleware(environ: MutableMapping[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        try:
            body = _read_body(environ)
        except (OSError, ValueError):
            return _error_response(start_response, "error reading body")

        signature = environ.get(_SIGNATURE_ENVIRON_KEY, "")
        logger.debug("upwardli webhook called")

        environ["wsgi.input"] = io.BytesIO(body)
        environ["CONTENT_LENGTH"] = str(len(body))

        try:
            fields = parse_signature_header(signature)
        except SignatureError as err:
            return _error_response(start_response, str(err))

        if not verifier.verify(signed_payload(fields["t"], body), fields["v1"].encode()):
            return _error_response(start_response, "invalid signature")

        return app(environ, start_response)

    return middleware