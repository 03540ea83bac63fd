"""Inputs and result summaries of ledger operations.

Multi-document operations report what they did as counts plus a list of
partial failures instead of a single pass/fail.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import Field

from app.core.errors import PartialFailure
from app.domain.base import LedgerModel
from app.domain.response import ReviewStatus, StudentAnswer


class SubmitResult(LedgerModel):
    id: str
    score: float


class ManualGrade(LedgerModel):
    """Instructor override for one question; omitted fields are left as stored."""
    is_correct: Optional[bool] = None
    points: Optional[float] = Field(default=None, ge=0)
    feedback: Optional[str] = None


class ManualGradeResult(LedgerModel):
    updated_score: float
    scoped_updated: bool
    global_updated: bool
    warnings: List[PartialFailure] = Field(default_factory=list)


class StatusUpdateResult(LedgerModel):
    submission_id: str
    status: ReviewStatus
    mirrored: bool
    warnings: List[PartialFailure] = Field(default_factory=list)


class SubmissionSummary(LedgerModel):
    """One row of an instructor's review queue."""
    id: str
    student_email: str
    student_name: str
    assessment_id: str
    assessment_title: str
    submitted_at: Optional[datetime] = None
    status: ReviewStatus = ReviewStatus.PENDING
    question_count: int = 0
    time_spent: float = 0
    answers: Dict[str, StudentAnswer] = Field(default_factory=dict)
    canvas_drawings: Dict[str, Any] = Field(default_factory=dict)


class ReviewQueue(LedgerModel):
    submissions: List[SubmissionSummary] = Field(default_factory=list)
    tutor_assessment_count: int = 0


class DeleteReport(LedgerModel):
    assessment_id: str
    assessment_deleted: bool
    deleted_global_responses: int = 0
    deleted_user_responses: int = 0
    affected_students: int = 0
    warnings: List[PartialFailure] = Field(default_factory=list)


class OrphanSweepReport(LedgerModel):
    valid_assessments: int = 0
    deleted_global_responses: int = 0
    deleted_user_responses: int = 0
    affected_students: int = 0
    cleaned_analytics: int = 0
    warnings: List[PartialFailure] = Field(default_factory=list)


class InstructorCleanupReport(LedgerModel):
    global_responses: int = 0
    user_responses: int = 0
    valid_assessments: int = 0
    warnings: List[PartialFailure] = Field(default_factory=list)


class StudentSummary(LedgerModel):
    email: str
    display_name: str
    total_responses: int = 0
    total_score: float = 0
    average_score: int = 0
    completed_assessments: int = 0


class TutorOverview(LedgerModel):
    assessments: List[Dict[str, Any]] = Field(default_factory=list)
    responses: List[Dict[str, Any]] = Field(default_factory=list)
    students: List[StudentSummary] = Field(default_factory=list)
    summary: Dict[str, Union[int, float]] = Field(default_factory=dict)
