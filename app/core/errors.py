"""Error taxonomy for the response ledger.

Lookups that miss are not errors: read paths return ``None`` or empty lists.
Exceptions are reserved for rejected writes, writes that target a missing
document and an unreachable store. Partial failures of multi-document
operations are reported in the operation result, never raised.
"""
from typing import Optional
from pydantic import BaseModel


class LedgerError(Exception):
    """Base class for ledger errors."""


class ValidationError(LedgerError):
    """A write was rejected before any persistence attempt."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class DocumentNotFound(LedgerError):
    """A write targeted a document that does not exist."""


class SubmissionNotFound(DocumentNotFound):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission '{submission_id}' not found")
        self.submission_id = submission_id


class AssessmentNotFound(DocumentNotFound):
    def __init__(self, assessment_id: str):
        super().__init__(f"Assessment '{assessment_id}' not found")
        self.assessment_id = assessment_id


class StoreUnavailable(LedgerError):
    """The underlying document store could not be reached.

    Surfaced to the caller as a hard failure; retrying is the caller's job.
    """


class PartialFailure(BaseModel):
    """One branch of a multi-document operation that did not succeed."""
    operation: str
    target: str
    detail: str
