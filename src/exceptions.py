"""Custom exceptions for Namayose service."""

from typing import Any


class NamayoseError(Exception):
    """Base exception for Namayose errors."""

    code = "error"
    retryable = False


class InvalidInputError(NamayoseError):
    """Malformed ids, or the same id on both sides of a pair."""

    code = "invalid_input"


class NotFoundError(NamayoseError):
    """Identity does not exist in the tenant, or was already merged away."""

    code = "not_found"


class ConflictError(NamayoseError):
    """Another merge touching one of the identities is in flight."""

    code = "conflict"
    retryable = True


class StoreUnavailableError(NamayoseError):
    """Transient record store failure. Safe to retry as-is."""

    code = "store_unavailable"
    retryable = True


class PartialFailureError(NamayoseError):
    """
    A merge step failed after earlier steps were committed.

    Reissuing the identical merge call resumes from ``resume_point`` and
    completes the consolidation. The remove identity must not be treated as
    intact in the meantime.
    """

    code = "partial_failure"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        resume_point: int,
        tenant_id: str,
        keep_id: str,
        remove_id: str,
        details: dict[str, dict[str, int]] | None = None,
    ):
        super().__init__(message)
        self.resume_point = resume_point
        self.tenant_id = tenant_id
        self.keep_id = keep_id
        self.remove_id = remove_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Resume information for the caller."""
        return {
            "resume_point": self.resume_point,
            "tenant_id": self.tenant_id,
            "keep_id": self.keep_id,
            "remove_id": self.remove_id,
            "details": self.details,
        }
