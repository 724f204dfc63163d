"""Pieces of the core service: start-up helpers, the health check and OAuth validation."""

from __future__ import annotations

import logging
import urllib.parse
from collections.abc import Iterator
from dataclasses import dataclass

from dss.auth import FileKeyResolver, JWKSResolver
from dss.errors import DSSError, ErrorCode, get_code, handle

HEALTHY_PATH = "/healthy"
DEPRECATION_MESSAGE = "DEPRECATED: enable_http has been renamed to allow_http_base_urls."

# Seconds to wait between attempts while prerequisites such as the database are not ready.
_BACKOFFS = (5.0, 15.0, 60.0, 60.0, 60.0, 300.0)


def set_deprecating_http_flag(logger: logging.Logger, new_flag: bool,
                              deprecated_flag: bool) -> bool:
    """Return the effective value of the new flag, honouring the deprecated one.

    A warning is logged whenever the deprecated flag is set.
    """
    if deprecated_flag:
        logger.warning(DEPRECATION_MESSAGE)
        if not new_flag:
            return deprecated_flag
    return new_flag


def create_key_resolver(public_key_files: str, jwks_endpoint: str, jwks_key_ids: str):
    """Choose how access-token keys are found, or None to run without authorization.

    Key files (comma separated) take precedence over a JWKS endpoint, which is
    only used when key IDs are given too.
    """
    if public_key_files:
        return FileKeyResolver(public_key_files.split(","))
    if jwks_endpoint and jwks_key_ids:
        try:
            urllib.parse.urlparse(jwks_endpoint)
        except ValueError as err:
            raise DSSError("Error parsing JWKS URL", cause=err) from err
        return JWKSResolver(jwks_endpoint, jwks_key_ids.split(","))
    return None


def healthy_endpoint_middleware(logger: logging.Logger, app):
    """Wrap a WSGI application so that the health-check path answers "ok"."""

    def middleware(environ, start_response):
        if environ.get("PATH_INFO") == HEALTHY_PATH:
            logger.debug("Answering health check")
            body = b"ok"
            start_response("200 OK", [("Content-Type", "text/plain; charset=utf-8"),
                                      ("Content-Length", str(len(body)))])
            return [body]
        return app(environ, start_response)

    return middleware


@dataclass(frozen=True)
class OAuthValidation:
    """Outcome of validating an access token: the HTTP status and an error message."""

    status: int
    message: str | None = None


def validate_oauth(auth_result, owner: str | None) -> OAuthValidation:
    """Check an authorization result and, when given, that the token belongs to ``owner``."""
    error = auth_result.error
    if error is not None:
        code = get_code(error)
        if code == ErrorCode.UNAUTHENTICATED:
            return OAuthValidation(401, handle(DSSError("Authentication failed", cause=error)))
        if code == ErrorCode.PERMISSION_DENIED:
            return OAuthValidation(403, handle(DSSError("Authorization failed", cause=error)))
        return OAuthValidation(500, handle(DSSError("Could not perform authorization",
                                                    cause=error)))

    client_id = auth_result.client_id
    if client_id is None:
        return OAuthValidation(403, handle(DSSError("Missing owner",
                                                    ErrorCode.PERMISSION_DENIED)))
    if owner is not None and owner != client_id:
        return OAuthValidation(403, handle(DSSError(
            f"Owner mismatch, required: {owner}, but oauth token has {client_id}",
            ErrorCode.PERMISSION_DENIED)))
    return OAuthValidation(200)


def retry_delays() -> Iterator[float]:
    """Successive waits in seconds before retrying start-up; the last one repeats forever."""
    yield from _BACKOFFS
    while True:
        yield _BACKOFFS[-1]