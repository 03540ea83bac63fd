"""Derived per-topic analytics. Never persisted except as cached snapshots."""
from enum import Enum
from typing import List
from pydantic import Field

from app.domain.base import LedgerModel


class FocusPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TopicPerformance(LedgerModel):
    """Accumulated correctness for one topic path across a student's answers."""
    topic_path: str
    strand: str = ""
    chapter: str = ""
    subtopic: str = ""
    display_name: str
    correct: int = Field(ge=0)
    total: int = Field(gt=0)
    accuracy: float = Field(ge=0, le=1)
    questions_attempted: int = Field(ge=0)


class FocusArea(LedgerModel):
    topic_path: str
    display_name: str
    priority: FocusPriority
    recommended_study_time: str
    accuracy: float


class WeaknessAnalysis(LedgerModel):
    """Weak/strong topics, overall accuracy and study recommendations.

    An all-empty analysis is a valid result for a student with no data.
    """
    weak_topics: List[TopicPerformance] = Field(default_factory=list)
    strong_topics: List[TopicPerformance] = Field(default_factory=list)
    average_accuracy: float = 0
    total_questions_attempted: int = 0
    recommendations: List[str] = Field(default_factory=list)
    focus_areas: List[FocusArea] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "WeaknessAnalysis":
        return cls()
