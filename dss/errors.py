"""Error codes and the error type shared across the service."""

from __future__ import annotations

import enum
import logging
import os
import uuid

logger = logging.getLogger("dss")


class ErrorCode(enum.IntEnum):
    """Codes attached to errors that determine the response sent to a client."""

    # Requested area is larger than the maximum allowed.
    AREA_TOO_LARGE = 0
    # An AirspaceConflictResponse should be returned instead of a plain error.
    MISSING_OVNS = 1
    # The resource being created already exists.
    ALREADY_EXISTS = 2
    # The client supplied bad request parameters.
    BAD_REQUEST = 3
    # The resource version supplied by the client is old or incorrect.
    VERSION_MISMATCH = 4
    # The requested resource does not exist.
    NOT_FOUND = 5
    # The access token does not grant the requested operation.
    PERMISSION_DENIED = 6
    # The client created too many resources in an area.
    EXHAUSTED = 7
    # The access token is invalid or missing.
    UNAUTHENTICATED = 8


class DSSError(Exception):
    """An error carrying an optional code and an optional underlying cause."""

    def __init__(self, message: str, code: ErrorCode | None = None,
                 cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.__cause__ is not None:
            return f"{self.message}: {self.__cause__}"
        return self.message

    def root_cause(self) -> BaseException:
        """Return the innermost error of the cause chain."""
        return root_cause(self)


def _chain(err: BaseException):
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def get_code(err: BaseException | None) -> ErrorCode | None:
    """Return the outermost code attached along the cause chain, if any."""
    if err is None:
        return None
    for item in _chain(err):
        if isinstance(item, DSSError) and item.code is not None:
            return item.code
    return None


def root_cause(err: BaseException | None) -> BaseException | None:
    """Return the innermost error of the cause chain."""
    if err is None:
        return None
    last = err
    for item in _chain(err):
        last = item
    return last


def make_err_id() -> str:
    """Return a fresh identifier for looking up an error in the logs."""
    return f"E:{uuid.uuid4()}"


def handle(err: BaseException | None) -> str:
    """Log an error from a request handler and return a client-facing message."""
    err_id = make_err_id()
    if err is None:
        err = DSSError("Error to handle is nil")

    root = root_cause(err)
    code = get_code(err)
    fields = {"error_id": err_id, "stacktrace": str(err), "error": str(root)}
    if code is not None:
        fields["code"] = int(code)
        logger.error("Error during unary server call", extra={"fields": fields})
    else:
        logger.error("Uncoded error during unary server call", extra={"fields": fields})

    return f"{root} ({err_id})"


def missing_spatial_volume() -> DSSError:
    """A spatial volume is required but missing."""
    return DSSError("Missing spatial volume", ErrorCode.BAD_REQUEST)


def missing_footprint() -> DSSError:
    """A geometry footprint is required but missing."""
    return DSSError("Missing footprint", ErrorCode.BAD_REQUEST)


def not_enough_points_in_polygon() -> DSSError:
    """A polygon does not have enough vertices to define a shape."""
    return DSSError("Not enough points in polygon", ErrorCode.BAD_REQUEST)


def bad_coord_set() -> DSSError:
    """Coordinates do not form a single enclosed area."""
    return DSSError("Coordinates did not create a well-formed area", ErrorCode.BAD_REQUEST)


def radius_must_be_larger_than_0() -> DSSError:
    """A circle with a non-positive radius was given."""
    return DSSError("Radius must be larger than 0", ErrorCode.BAD_REQUEST)


def area_too_large() -> DSSError:
    """The requested area exceeds the maximum allowed."""
    return DSSError("Area too large", ErrorCode.AREA_TOO_LARGE)


def odd_number_of_coordinates_in_area_string() -> DSSError:
    """An area string ended with a latitude lacking its longitude."""
    return DSSError("Odd number of coordinates in area string", ErrorCode.BAD_REQUEST)


if "DSS_ERRORS_OBFUSCATE_INTERNAL_ERRORS" in os.environ:
    logger.warning(
        "DSS_ERRORS_OBFUSCATE_INTERNAL_ERRORS has been deprecated and will be "
        "removed in a future version"
    )