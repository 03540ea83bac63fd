"""Domain models for assessments and their topic-tagged questions."""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, Union
from pydantic import Field, field_validator, model_validator

from app.domain.base import LedgerModel


class QuestionType(str, Enum):
    MCQ = "mcq"
    WRITTEN = "written"
    CALCULATION = "calculation"


def split_topic_path(topic_path: Optional[str]) -> Tuple[str, str, str]:
    """Split ``strand/chapter/subtopic`` into its three components.

    Missing components come back as empty strings.
    """
    parts = (topic_path or "").split("/")
    parts += [""] * (3 - len(parts))
    return parts[0], parts[1], parts[2]


class Question(LedgerModel):
    """A single assessment question.

    The topic tag (strand/chapter/subtopic) is what analytics keys on; a
    question without one is ignored by the weakness analyzer.
    """
    id: str
    type: QuestionType = QuestionType.MCQ
    question: str = ""
    options: Optional[List[str]] = None
    correct_answer: Optional[Union[str, int, float]] = None
    points: float = Field(default=0, ge=0)

    strand: Optional[str] = None
    chapter: Optional[str] = None
    subtopic: Optional[str] = None
    topic_path: Optional[str] = None

    difficulty: Optional[int] = Field(default=None, ge=1, le=5)
    has_canvas: bool = False

    @model_validator(mode="after")
    def _sync_topic_tag(self):
        if self.type != QuestionType.MCQ:
            self.options = None
        if not self.topic_path and self.strand and self.chapter and self.subtopic:
            self.topic_path = f"{self.strand}/{self.chapter}/{self.subtopic}"
        elif self.topic_path and not (self.strand and self.chapter and self.subtopic):
            strand, chapter, subtopic = split_topic_path(self.topic_path)
            self.strand = self.strand or strand or None
            self.chapter = self.chapter or chapter or None
            self.subtopic = self.subtopic or subtopic or None
        return self


class Assessment(LedgerModel):
    """An authored assessment for one course day."""
    id: Optional[str] = None
    day: int = Field(ge=1)
    title: str = Field(min_length=1)
    chapter: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    questions: List[Question]
    total_points: Optional[float] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @model_validator(mode="after")
    def _default_total_points(self):
        if self.total_points is None:
            self.total_points = sum(q.points for q in self.questions)
        return self

    def question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Assessment":
        return cls.model_validate({**data, "id": doc_id})
