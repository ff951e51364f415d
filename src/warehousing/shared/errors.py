"""Error kinds raised by the warehousing context.

Every domain rule violation surfaces to callers with a machine-readable kind:

    NotFound                -> protean ObjectNotFoundError
    ValidationError         -> protean ValidationError
    Conflict                -> ConflictError
    InsufficientQuantity    -> InsufficientQuantityError
    InvalidStateTransition  -> InvalidStateTransitionError
    ConcurrencyConflict     -> ConcurrencyConflictError (or protean ExpectedVersionError)

The quantity and state errors subclass protean's ValidationError so that
handlers written against the framework exception keep catching them.
"""

from protean.exceptions import (
    ExpectedVersionError,
    InvalidOperationError,
    ObjectNotFoundError,
    ProteanException,
    ValidationError,
)


class InsufficientQuantityError(ValidationError):
    """A reservation, outbound movement or transfer exceeds what is available."""

    kind = "InsufficientQuantity"


class InvalidStateTransitionError(ValidationError):
    """The requested operation is not allowed from the object's current status."""

    kind = "InvalidStateTransition"


class ConflictError(InvalidOperationError):
    """A record with the same natural key already exists, or is still in use."""

    kind = "Conflict"


class ConcurrencyConflictError(ProteanException):
    """A concurrent writer changed the aggregate between read and write."""

    kind = "ConcurrencyConflict"


_KIND_BY_TYPE = (
    (InsufficientQuantityError, "InsufficientQuantity"),
    (InvalidStateTransitionError, "InvalidStateTransition"),
    (ConflictError, "Conflict"),
    (ConcurrencyConflictError, "ConcurrencyConflict"),
    (ExpectedVersionError, "ConcurrencyConflict"),
    (ObjectNotFoundError, "NotFound"),
    (ValidationError, "ValidationError"),
    (InvalidOperationError, "Conflict"),
)


def error_kind(exc: Exception) -> str:
    """Return the machine-readable kind for an exception."""
    for exc_type, kind in _KIND_BY_TYPE:
        if isinstance(exc, exc_type):
            return kind
    return "InternalError"


def error_details(exc: Exception) -> dict:
    """Return field-keyed error messages for an exception."""
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        return messages
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return {"_error": [str(exc)]}


def insufficient(field: str, requested, available) -> InsufficientQuantityError:
    return InsufficientQuantityError(
        {field: [f"Insufficient quantity. Available: {available}, Requested: {requested}"]}
    )


def invalid_transition(entity: str, current: str, action: str) -> InvalidStateTransitionError:
    return InvalidStateTransitionError({"status": [f"Cannot {action} {entity} in {current} state"]})
