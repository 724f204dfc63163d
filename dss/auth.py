"""Bearer-token authentication and scope authorization of incoming requests."""

from __future__ import annotations

import json
import logging
import threading
import time
import urllib.error
import urllib.request
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.serialization import load_pem_public_key

from dss.errors import DSSError, ErrorCode

logger = logging.getLogger("dss")

MAX_TOKEN_LIFETIME_SECONDS = 3600

_ALGORITHMS = ["RS256", "RS384", "RS512", "PS256", "PS384", "PS512",
               "ES256", "ES384", "ES512", "EdDSA"]

_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}

# An authorization option maps a security scheme to the scopes it requires.
AuthorizationOption = Mapping[str, Sequence[str]]


class ScopeSet(frozenset):
    """A set of scopes granted by an access token."""

    @classmethod
    def from_json(cls, value: Any) -> "ScopeSet":
        """Build from the decoded JSON value of a ``scope`` claim (space separated)."""
        if not isinstance(value, str):
            raise ValueError(f"Unable to unmarshal JSON: scope must be a string, got {value!r}")
        return cls(value.split(" "))

    def validate_required_scopes(self, required: Iterable[str]) -> list[str]:
        """Return the required scopes that are missing; empty when all are present."""
        return [scope for scope in required if scope not in self]

    def to_list(self) -> list[str]:
        return sorted(self)


def _string_claim(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name, "")
    if not isinstance(value, str):
        raise ValueError(f"claim {name!r} must be a string")
    return value


def _time_claim(payload: Mapping[str, Any], name: str) -> int:
    value = payload.get(name, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"claim {name!r} must be a number")
    return int(value)


@dataclass
class Claims:
    """The claims of an access token that the service relies on."""

    subject: str = ""
    issuer: str = ""
    audience: str = ""
    expires_at: int = 0
    not_before: int = 0
    issued_at: int = 0
    scopes: ScopeSet = field(default_factory=ScopeSet)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Claims":
        """Build from a decoded token payload; raises ValueError on ill-typed claims."""
        scopes = ScopeSet.from_json(payload["scope"]) if "scope" in payload else ScopeSet()
        return cls(
            subject=_string_claim(payload, "sub"),
            issuer=_string_claim(payload, "iss"),
            audience=_string_claim(payload, "aud"),
            expires_at=_time_claim(payload, "exp"),
            not_before=_time_claim(payload, "nbf"),
            issued_at=_time_claim(payload, "iat"),
            scopes=scopes,
        )

    def validate(self, now: float) -> None:
        """Raise ValueError unless the claims are valid at unix time ``now``."""
        now = int(now)
        if not self.subject:
            raise ValueError("missing or empty subject")
        if self.expires_at > now + MAX_TOKEN_LIFETIME_SECONDS:
            raise ValueError(
                "token expiration time is too far in the future, max token duration is 1 hour")
        if not self.issuer:
            raise ValueError("missing Issuer URI")
        if self.expires_at and now > self.expires_at:
            raise ValueError("token is expired")
        if self.issued_at and now < self.issued_at:
            raise ValueError("token used before issued")
        if self.not_before and now < self.not_before:
            raise ValueError("token is not valid yet")


class KeyResolver(Protocol):
    def resolve_keys(self) -> list[Any]: ...


@dataclass
class MemoryKeyResolver:
    """Serves a fixed list of keys."""

    keys: list[Any]

    def resolve_keys(self) -> list[Any]:
        return list(self.keys)


@dataclass
class FileKeyResolver:
    """Reads RSA public keys from PEM files, once."""

    key_files: list[str]
    _keys: list[Any] | None = field(default=None, init=False, repr=False)

    def resolve_keys(self) -> list[Any]:
        if self._keys is not None:
            return self._keys
        keys = []
        for path in self.key_files:
            try:
                with open(path, "rb") as handle:
                    data = handle.read()
            except OSError as err:
                raise DSSError("Error reading key file", cause=err) from err
            if b"-----BEGIN" not in data:
                raise DSSError("Failed to decode key file")
            try:
                key = load_pem_public_key(data)
            except ValueError as err:
                raise DSSError("Error parsing key as x509 public key", cause=err) from err
            if not isinstance(key, RSAPublicKey):
                raise DSSError(f"Could not create RSA public key from {path}")
            keys.append(key)
        self._keys = keys
        return keys


@dataclass
class JWKSResolver:
    """Fetches keys from an endpoint serving a JSON Web Key Set.

    With no ``key_ids`` every key of the set is used.
    """

    endpoint: str
    key_ids: list[str] = field(default_factory=list)

    def resolve_keys(self) -> list[Any]:
        try:
            with urllib.request.urlopen(self.endpoint) as response:
                raw = response.read()
        except (urllib.error.URLError, OSError) as err:
            raise DSSError(f"Error retrieving JWKS at {self.endpoint}", cause=err) from err
        try:
            document = json.loads(raw)
            web_keys = document.get("keys", []) if isinstance(document, dict) else None
            if not isinstance(web_keys, list):
                raise ValueError("JWKS has no key list")
        except ValueError as err:
            raise DSSError("Error decoding JWKS", cause=err) from err

        selected = [] if self.key_ids else list(web_keys)
        for kid in self.key_ids:
            matching = [key for key in web_keys if isinstance(key, dict) and key.get("kid") == kid]
            if not matching:
                raise DSSError(f"Failed to resolve key(s) for ID: {kid}")
            selected.extend(matching)
        try:
            return [jwt.PyJWK(key).key for key in selected]
        except jwt.PyJWTError as err:
            raise DSSError("Error decoding JWKS", cause=err) from err


@dataclass
class Configuration:
    """Creation-time parameters of an Authorizer."""

    key_resolver: KeyResolver | None
    key_refresh_timeout: float = 60.0
    # An empty string accepts tokens without an audience claim.
    accepted_audiences: list[str] = field(default_factory=list)


@dataclass
class AuthorizationResult:
    """Outcome of authorizing a request: either an error or the client identity."""

    client_id: str | None = None
    scopes: list[str] = field(default_factory=list)
    error: DSSError | None = None


class Authorizer:
    """Verifies bearer tokens against keys that are refreshed in the background."""

    def __init__(self, configuration: Configuration, clock: Callable[[], float] = time.time) -> None:
        self._resolver = configuration.key_resolver
        self._clock = clock
        self._accepted_audiences = set(configuration.accepted_audiences)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        if self._resolver is None:
            self._keys: list[Any] = []
            self._thread = None
            return
        try:
            self._keys = list(self._resolver.resolve_keys())
        except Exception as err:
            raise DSSError("Unable to resolve keys", cause=err) from err
        self._interval = configuration.key_refresh_timeout
        self._thread = threading.Thread(target=self._refresh, name="key-refresh", daemon=True)
        self._thread.start()

    def _refresh(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                keys = self._resolver.resolve_keys()
            except Exception:
                logger.critical("failed to refresh key", exc_info=True)
                return
            self.set_keys(keys)
        logger.warning("finalizing key refresh worker")

    def set_keys(self, keys: Iterable[Any]) -> None:
        with self._lock:
            self._keys = list(keys)

    def close(self) -> None:
        """Stop refreshing keys."""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def __enter__(self) -> "Authorizer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _verify(self, token: str) -> Claims:
        with self._lock:
            keys = list(self._keys)
        last_error: Exception | None = None
        for key in keys:
            try:
                payload = jwt.decode(token, key, algorithms=_ALGORITHMS, options=_DECODE_OPTIONS)
                claims = Claims.from_payload(payload)
                claims.validate(self._clock())
                return claims
            except (jwt.PyJWTError, ValueError, TypeError) as err:
                last_error = err
        raise DSSError("Access token validation failed", ErrorCode.UNAUTHENTICATED, cause=last_error)

    def authorize(self, headers: Mapping[str, str],
                  auth_options: Sequence[AuthorizationOption]) -> AuthorizationResult:
        """Check the bearer token in ``headers`` against ``auth_options``."""
        token = get_token(headers)
        if token is None:
            return AuthorizationResult(
                error=DSSError("Missing access token", ErrorCode.UNAUTHENTICATED))
        try:
            claims = self._verify(token)
        except DSSError as err:
            return AuthorizationResult(error=err)

        if claims.audience not in self._accepted_audiences:
            return AuthorizationResult(error=DSSError(
                f"Invalid access token audience: {claims.audience}", ErrorCode.UNAUTHENTICATED))

        passed, missing = validate_scopes(auth_options, claims.scopes)
        if not passed:
            return AuthorizationResult(error=DSSError(
                f"Access token missing scopes ({missing}) while expecting "
                f"{describe_authorization_expectations(auth_options)} and got "
                f"{', '.join(claims.scopes.to_list())}",
                ErrorCode.PERMISSION_DENIED))

        return AuthorizationResult(client_id=claims.subject, scopes=claims.scopes.to_list())


def has_scope(scopes: Iterable[str], required_scope: str) -> bool:
    return required_scope in scopes


def describe_authorization_expectations(auth_options: Sequence[AuthorizationOption]) -> str:
    """Describe in words what the authorization options require."""
    if not auth_options:
        return "no expectation"
    expectations = []
    for option in auth_options:
        parts = [f"{scheme}: ({' AND '.join(map(str, scopes))})" for scheme, scopes in option.items()]
        expectations.append(f"[{' AND '.join(parts)}]")
    return " OR ".join(expectations)


def validate_scopes(auth_options: Sequence[AuthorizationOption],
                    client_scopes: Iterable[str]) -> tuple[bool, str]:
    """Check scopes against the options; satisfying any one option is enough.

    Returns whether validation passed and, if not, a description of what is missing.
    """
    if not auth_options:
        return True, ""
    scopes = client_scopes if isinstance(client_scopes, ScopeSet) else ScopeSet(client_scopes)
    failures = []
    for index, option in enumerate(auth_options):
        required = [str(scope) for option_scopes in option.values() for scope in option_scopes]
        missing = scopes.validate_required_scopes(required)
        if not missing:
            return True, ""
        failures.append(f"AuthOption[{index}]: {', '.join(missing)}")
    return False, " ; ".join(failures)


def get_token(headers: Mapping[str, str]) -> str | None:
    """Return the bearer token from the Authorization header, or None."""
    value = next((v for k, v in headers.items() if k.lower() == "authorization"), "")
    if len(value) < 7 or value[:6].lower() != "bearer":
        return None
    return value[7:]