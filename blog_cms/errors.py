"""
Error kinds and the success/error result union returned by services.

Expected failures (bad input, missing rows, insufficient rights, business
rule violations) are raised inside services as ``ServiceError`` subclasses
and recovered at the service boundary by ``service_operation`` into a
``ServiceResult``.  Anything else (database unreachable, identity provider
down) propagates untouched to the caller's fault boundary.

Error maps are keyed by input field name; errors that do not belong to a
single field use the reserved ``FORM_ERROR_KEY``.
"""
from __future__ import annotations

import enum
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

FORM_ERROR_KEY = "_form"

T = TypeVar("T")
SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "Unauthenticated"
    FORBIDDEN = "Forbidden"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    VALIDATION_FAILED = "ValidationFailed"
    PRECONDITION_FAILED = "PreconditionFailed"
    SLUG_EXHAUSTED = "SlugExhausted"


# ---------------------------------------------------------------------------
# Exceptions (internal to the service layer)
# ---------------------------------------------------------------------------

class ServiceError(Exception):
    kind: ErrorKind = ErrorKind.PRECONDITION_FAILED

    def __init__(self, message: str, field: str = FORM_ERROR_KEY) -> None:
        super().__init__(message)
        self.errors: dict[str, list[str]] = {field: [message]}

    @property
    def message(self) -> str:
        return str(self)

    def to_result(self) -> "ServiceResult[Any]":
        return ServiceResult.failure(self.kind, self.errors)


class Unauthenticated(ServiceError):
    kind = ErrorKind.UNAUTHENTICATED


class Forbidden(ServiceError):
    kind = ErrorKind.FORBIDDEN


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND


class Conflict(ServiceError):
    kind = ErrorKind.CONFLICT


class PreconditionFailed(ServiceError):
    kind = ErrorKind.PRECONDITION_FAILED


class SlugExhausted(ServiceError):
    kind = ErrorKind.SLUG_EXHAUSTED


class ValidationFailed(ServiceError):
    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, errors: dict[str, list[str]]) -> None:
        first = next(iter(errors.values()), ["Invalid input"])
        super().__init__(first[0] if first else "Invalid input")
        self.errors = errors

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            loc = err.get("loc") or ()
            key = str(loc[0]) if loc else FORM_ERROR_KEY
            errors.setdefault(key, []).append(err.get("msg", "Invalid value"))
        return cls(errors)


# ---------------------------------------------------------------------------
# Result union
# ---------------------------------------------------------------------------

@dataclass
class ServiceResult(Generic[T]):
    data: T | None = None
    kind: ErrorKind | None = None
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.kind is None

    @property
    def message(self) -> str | None:
        """First human-readable error message, form-level errors first."""
        if self.ok:
            return None
        if self.errors.get(FORM_ERROR_KEY):
            return self.errors[FORM_ERROR_KEY][0]
        for messages in self.errors.values():
            if messages:
                return messages[0]
        return self.kind.value

    @classmethod
    def success(cls, data: T) -> "ServiceResult[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, errors: dict[str, list[str]]) -> "ServiceResult[T]":
        return cls(kind=kind, errors=errors)

    def to_dict(self) -> dict:
        if self.ok:
            return {"data": self.data}
        return {"kind": self.kind.value, "errors": self.errors}


def service_operation(func):
    """
    Wrap an async service function so that ``ServiceError`` becomes a
    failed ``ServiceResult`` and a plain return value becomes a successful
    one.  Other exceptions are not caught.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> ServiceResult:
        try:
            data = await func(*args, **kwargs)
        except ServiceError as exc:
            logger.info("%s rejected (%s): %s", func.__name__, exc.kind.value, exc.message)
            return exc.to_result()
        return ServiceResult.success(data)

    return wrapper


def validate(schema: type[SchemaT], payload: Any) -> SchemaT:
    """
    Return *payload* as an instance of *schema*, raising
    ``ValidationFailed`` with a field-keyed error map on bad input.
    """
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed.from_pydantic(exc) from exc
