"""
agora.engine.results — Result Values & Error Taxonomy
======================================================

Every public engine operation returns a :class:`Result`: a success payload
XOR an :class:`EngineError`.  Nothing raises across that boundary, so the
HTTP layer maps error kinds to status codes in one place
(:mod:`agora.api.errors`).

Inside the services, failures are raised as :class:`EngineException`
subclasses and converted by :func:`returns_result`.  Any
``SQLAlchemyError`` that escapes becomes a ``PersistenceFailure``.
"""

from __future__ import annotations

import enum
import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(enum.StrEnum):
    NOT_FOUND = "NotFound"
    INVALID_INPUT = "InvalidInput"
    CONFLICT = "Conflict"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    AGGREGATE_FAILURE = "AggregateFailure"


@dataclass(frozen=True, slots=True)
class EngineError:
    """Error descriptor carried by a failed :class:`Result`.

    Parameters
    ----------
    kind : Taxonomy bucket (drives the HTTP status).
    message : Human-readable explanation.
    reason : Machine-readable sub-code for conflicts
        (``poll_closed``, ``already_voted``, ``reward_locked``).
    cause : The first underlying error of an ``AggregateFailure``.
    details : Extra structured data (per-recipient outcomes for fan-out).
    """

    kind: ErrorKind
    message: str
    reason: str | None = None
    cause: EngineError | None = None
    details: tuple = ()


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    value: T | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: EngineError) -> Result[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, raising :class:`EngineException` on failure.

        For callers composing operations inside a ``returns_result`` body.
        """
        if self.error is not None:
            raise EngineException.from_error(self.error)
        return self.value  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Internal exceptions (never cross the public boundary)
# ---------------------------------------------------------------------------
class EngineException(Exception):
    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        cause: EngineError | None = None,
        details: tuple = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.cause = cause
        self.details = details

    def to_error(self) -> EngineError:
        return EngineError(
            kind=self.kind,
            message=self.message,
            reason=self.reason,
            cause=self.cause,
            details=self.details,
        )

    @staticmethod
    def from_error(error: EngineError) -> EngineException:
        exc = _EXCEPTION_BY_KIND[error.kind](
            error.message, reason=error.reason, cause=error.cause, details=error.details,
        )
        return exc


class NotFoundError(EngineException):
    kind = ErrorKind.NOT_FOUND


class InvalidInputError(EngineException):
    kind = ErrorKind.INVALID_INPUT


class ConflictError(EngineException):
    kind = ErrorKind.CONFLICT


class PersistenceError(EngineException):
    kind = ErrorKind.PERSISTENCE_FAILURE


class AggregateError(EngineException):
    kind = ErrorKind.AGGREGATE_FAILURE


_EXCEPTION_BY_KIND: dict[ErrorKind, type[EngineException]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.INVALID_INPUT: InvalidInputError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.PERSISTENCE_FAILURE: PersistenceError,
    ErrorKind.AGGREGATE_FAILURE: AggregateError,
}


def error_from_exception(exc: BaseException) -> EngineError:
    """Classify any exception raised while serving an operation."""
    if isinstance(exc, EngineException):
        return exc.to_error()
    if isinstance(exc, SQLAlchemyError):
        return EngineError(ErrorKind.PERSISTENCE_FAILURE, f"Store operation failed: {exc}")
    return EngineError(ErrorKind.PERSISTENCE_FAILURE, f"Unexpected error: {exc}")


# ---------------------------------------------------------------------------
# Boundary decorator
# ---------------------------------------------------------------------------
def _log_failure(func_name: str, exc: Exception) -> None:
    if isinstance(exc, EngineException):
        logger.warning("%s rejected (%s): %s", func_name, exc.kind, exc.message)
    else:
        logger.exception("%s failed", func_name)


def returns_result(func: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap a sync or async function so it returns a :class:`Result`.

    ``EngineException`` becomes its own kind; ``SQLAlchemyError`` (and any
    other unexpected exception) becomes ``PersistenceFailure`` and is
    logged with its traceback.
    """
    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return Result.success(await func(*args, **kwargs))
            except Exception as exc:
                _log_failure(func.__qualname__, exc)
                return Result.failure(error_from_exception(exc))

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return Result.success(func(*args, **kwargs))
        except Exception as exc:
            _log_failure(func.__qualname__, exc)
            return Result.failure(error_from_exception(exc))

    return wrapper
