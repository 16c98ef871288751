"""Fault taxonomy for identity resolution.

Three kinds of fault can end an identify call:

VALIDATION : caller supplied neither email nor phone number; reported as a
             result value, never raised
INVARIANT  : a stored cluster has no primary contact; raised, aborts the
             unit of work
STORE      : the database layer failed; the ``SQLAlchemyError`` propagates
             unchanged and the unit of work rolls back
"""
from __future__ import annotations

from enum import Enum

from sqlalchemy.exc import SQLAlchemyError


class FaultKind(str, Enum):
    VALIDATION = "validation"
    INVARIANT = "invariant"
    STORE = "store"
    UNKNOWN = "unknown"


class InvariantFault(RuntimeError):
    """Raised when stored contacts violate the cluster invariants."""

    kind = FaultKind.INVARIANT


class StoreNotInitializedError(RuntimeError):
    """Raised when a unit of work is requested from a closed contact store."""


def categorize(error: BaseException) -> FaultKind:
    """Map an exception raised during an identify call to its FaultKind."""
    if isinstance(error, InvariantFault):
        return error.kind
    if isinstance(error, SQLAlchemyError):
        return FaultKind.STORE
    return FaultKind.UNKNOWN
