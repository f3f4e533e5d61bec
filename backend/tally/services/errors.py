"""Domain error taxonomy.

Every rejection that crosses an operation boundary carries a stable
``kind`` (machine readable) plus a human-readable message.  API handlers
translate these into ``{"error": kind, "message": ...}`` bodies.
"""

from fastapi import HTTPException


class TallyError(Exception):
    """Base class for all domain rejections."""

    kind = "TallyError"
    status_code = 400

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": str(self)}


class UnmappedCategory(TallyError):
    """Operation attributes have no entry in the account resolution table."""

    kind = "UnmappedCategory"


class UnbalancedEntry(TallyError):
    """Debits and credits of a journal entry differ."""

    kind = "UnbalancedEntry"
    status_code = 422


class InvalidAmount(TallyError):
    """Non-positive amount or a missing required field."""

    kind = "InvalidAmount"


class InvalidAccount(TallyError):
    """Account is missing, inactive or does not accept postings."""

    kind = "InvalidAccount"


class NotFound(TallyError):
    kind = "NotFound"
    status_code = 404


class AlreadyExists(TallyError):
    kind = "AlreadyExists"
    status_code = 409


class ExpiredOrInvalidToken(TallyError):
    kind = "ExpiredOrInvalidToken"
    status_code = 401


class StaleReference(TallyError):
    """The referenced record is no longer in a usable state."""

    kind = "StaleReference"
    status_code = 409


class InvalidStateTransition(TallyError):
    kind = "InvalidStateTransition"
    status_code = 409


class ConcurrencyConflict(TallyError):
    """Write conflicts persisted through every transaction retry."""

    kind = "ConcurrencyConflict"
    status_code = 409


def http_error(exc: TallyError) -> HTTPException:
    """Convert a domain error into the HTTPException an endpoint raises."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
