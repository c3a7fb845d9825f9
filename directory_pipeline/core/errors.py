"""Error taxonomy shared by the ingestion, merge and verification commands.

Per-record failures (validation, duplicate, resolution, store) are counted by
the batch commands and never abort a run. Only ``ConfigurationError`` is
fatal, and it is raised before any record is touched.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure raised by the directory pipeline."""


class ValidationError(PipelineError):
    """A candidate record is missing or has a malformed required field."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class DuplicateError(PipelineError):
    """A listing with the same external id already exists."""

    reason = "already_exists"


class ResolutionError(PipelineError):
    """A reference (state, city) could not be resolved to an existing row."""


class StoreError(PipelineError):
    """A single persistence operation failed."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details
        self.hint = hint

    @classmethod
    def from_exception(cls, exc: Exception) -> "StoreError":
        """Wrap a psycopg2 error, keeping the detail the server reported."""
        diag = getattr(exc, "diag", None)
        primary = getattr(diag, "message_primary", None) or str(exc).strip() or exc.__class__.__name__
        return cls(
            primary,
            code=getattr(exc, "pgcode", None),
            details=getattr(diag, "message_detail", None),
            hint=getattr(diag, "message_hint", None),
        )

    def __str__(self) -> str:
        message = super().__str__()
        if self.details:
            message += f" | Details: {self.details}"
        if self.hint:
            message += f" | Hint: {self.hint}"
        if self.code:
            message += f" | Code: {self.code}"
        return message


class ConfigurationError(PipelineError):
    """Required CLI input or credentials are missing; nothing was processed."""
