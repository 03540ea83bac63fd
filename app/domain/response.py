"""Domain models for student submissions and their answers.

A submission exists twice: a scoped copy under the student's partition and a
global copy in the flat review collection. Both share the same id and answer
content; the global copy additionally carries denormalized assessment and
student display fields for instructor tooling.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union
from pydantic import Field, model_validator

from app.domain.base import LedgerModel

# Historical field names that older documents used for the same value
ASSESSMENT_KEY_ALIASES = ("assessmentId", "dayId")
STUDENT_KEY_ALIASES = ("studentId", "studentEmail", "submittedBy")


class ReviewStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"


def _first_present(data: dict, keys: tuple) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def assessment_key(data: dict) -> Optional[str]:
    """Assessment id of a stored response, whichever field name it used."""
    return _first_present(data, ASSESSMENT_KEY_ALIASES)


def student_key(data: dict) -> Optional[str]:
    """Student id of a stored response, whichever field name it used."""
    return _first_present(data, STUDENT_KEY_ALIASES)


def normalize_response_document(data: dict) -> dict:
    """Map legacy field names onto the canonical ones.

    Applied at the store boundary so callers only ever see ``assessmentId``
    and ``studentId``.
    """
    normalized = dict(data)
    assessment_id = assessment_key(data)
    if assessment_id is not None:
        normalized["assessmentId"] = assessment_id
    student_id = student_key(data)
    if student_id is not None:
        normalized["studentId"] = student_id
    return normalized


def display_name_for(student_id: Optional[str], stored: Optional[str] = None) -> str:
    """Stored display name, else the email local-part."""
    if stored:
        return stored
    if student_id:
        return student_id.split("@")[0]
    return "Unknown Student"


class StudentAnswer(LedgerModel):
    """One answered question, with topic fields copied from the question."""
    question_id: Optional[str] = None
    answer: Optional[Union[str, int, float]] = None
    canvas_data: Optional[str] = None
    is_correct: bool = False
    points_earned: float = 0

    tutor_feedback: Optional[str] = None
    manually_graded: bool = False
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None

    topic_path: Optional[str] = None
    strand: Optional[str] = None
    chapter: Optional[str] = None
    subtopic: Optional[str] = None


class StudentResponse(LedgerModel):
    """A submission as stored in either collection."""
    id: Optional[str] = None
    assessment_id: str
    student_id: str
    answers: Dict[str, StudentAnswer] = Field(default_factory=dict)
    canvas_drawings: Dict[str, Any] = Field(default_factory=dict)
    score: float = 0
    time_spent: float = 0
    completed_at: Optional[datetime] = None

    status: ReviewStatus = ReviewStatus.PENDING
    reviewed_by: Optional[str] = None
    review_started_at: Optional[datetime] = None
    review_completed_at: Optional[datetime] = None
    feedback_sent_at: Optional[datetime] = None
    tutor_feedback: Optional[str] = None
    total_score: Optional[float] = None

    manually_graded: bool = False
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    # Global copy only
    assessment_title: Optional[str] = None
    assessment_day: Optional[int] = None
    display_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalize_response_document(data)
        return data

    @model_validator(mode="after")
    def _fill_question_ids(self):
        for question_id, answer in self.answers.items():
            if not answer.question_id:
                answer.question_id = question_id
        return self

    @property
    def student_display_name(self) -> str:
        return display_name_for(self.student_id, self.display_name)

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "StudentResponse":
        return cls.model_validate({**data, "id": doc_id})

    def to_document(self) -> dict:
        document = super().to_document()
        document.pop("id", None)
        return document
