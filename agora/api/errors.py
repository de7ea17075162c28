"""
agora.api.errors — Result → HTTP mapping
=========================================

Services never raise across their boundary; routes call
:func:`raise_for_result` to turn a failed :class:`Result` into an
``HTTPException`` with a uniform body.
"""

from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException

from agora.engine.results import EngineError, ErrorKind, Result

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PERSISTENCE_FAILURE: 500,
    ErrorKind.AGGREGATE_FAILURE: 500,
}


def error_body(error: EngineError) -> dict:
    body = {"kind": str(error.kind), "message": error.message}
    if error.reason:
        body["reason"] = error.reason
    if error.cause is not None:
        body["cause"] = error_body(error.cause)
    return body


def raise_for_result(result: Result[T]) -> T:
    """Return the value of a successful *result* or raise ``HTTPException``."""
    if result.ok:
        return result.value
    raise HTTPException(STATUS_BY_KIND[result.error.kind], error_body(result.error))
