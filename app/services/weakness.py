"""Topic-based weakness detection over a student's scoped responses.

Answers are flattened into one row per topic-tagged answer, grouped by topic
path and classified:

- weak:   accuracy < 0.6 with at least 2 attempts, weakest first
- strong: accuracy >= 0.8 with at least 2 attempts, strongest first

Topics with a single attempt are left out of both lists but still count
toward overall accuracy. The analysis is recomputed on every request; the
optional ``userAnalytics`` snapshot is only a cache for dashboards.
"""
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import pandas as pd

from app.core.config import settings
from app.core.errors import ValidationError
from app.core.logging import get_logger
from app.domain.analytics import FocusArea, FocusPriority, TopicPerformance, WeaknessAnalysis
from app.domain.assessment import split_topic_path
from app.domain.response import StudentResponse
from app.infrastructure.document_store import USER_ANALYTICS, DocumentStore
from app.infrastructure.topic_catalog import TopicCatalog, get_topic_catalog
from app.services.response_store import ResponseStore
from app.utils.timestamps import as_utc, utcnow

logger = get_logger(__name__)

WEAK_THRESHOLD = 0.6
STRONG_THRESHOLD = 0.8
MIN_ATTEMPTS = 2
MAX_FOCUS_AREAS = 3
SPREAD_TOO_THIN = 3

STRAND_TIPS = {
    "number": "Practice step-by-step calculations and review basic operations.",
    "algebra": "Focus on understanding variable manipulation and equation solving.",
    "geometry": "Review shape properties and practice with diagrams.",
    "statistics": "Practice with real data sets and focus on calculation methods.",
}

STUDY_TIME = {
    FocusPriority.HIGH: "30-45 minutes",
    FocusPriority.MEDIUM: "20-30 minutes",
    FocusPriority.LOW: "15-20 minutes",
}


def _pct(accuracy: float) -> int:
    """Accuracy as a whole percentage, halves rounded up."""
    return int(math.floor(accuracy * 100 + 0.5))


def _priority(accuracy: float) -> FocusPriority:
    if accuracy < 0.3:
        return FocusPriority.HIGH
    if accuracy < 0.5:
        return FocusPriority.MEDIUM
    return FocusPriority.LOW


class TopicBasedWeaknessAnalyzer:
    """Pure analysis of topic-tagged answers. Safe to share across requests."""

    def __init__(self, catalog: Optional[TopicCatalog] = None):
        self.catalog = catalog or get_topic_catalog()

    def topic_performance(self, responses: Iterable[StudentResponse]) -> List[TopicPerformance]:
        """Correct/total per topic path, in order of first appearance."""
        rows = [
            {"topic_path": answer.topic_path, "correct": int(bool(answer.is_correct))}
            for response in responses
            for answer in response.answers.values()
            if answer.topic_path
        ]
        if not rows:
            return []

        by_topic = (
            pd.DataFrame(rows)
            .groupby("topic_path", sort=False)
            .agg(correct=("correct", "sum"), total=("correct", "size"))
            .reset_index()
        )

        topics = []
        for row in by_topic.to_dict(orient="records"):
            path = row["topic_path"]
            correct, total = int(row["correct"]), int(row["total"])
            strand, chapter, subtopic = split_topic_path(path)
            topics.append(TopicPerformance(
                topic_path=path,
                strand=strand,
                chapter=chapter,
                subtopic=subtopic,
                display_name=self.catalog.get_topic_display_name(path),
                correct=correct,
                total=total,
                accuracy=correct / total,
                questions_attempted=total,
            ))
        return topics

    def analyze(self, responses: Iterable[StudentResponse]) -> WeaknessAnalysis:
        topics = self.topic_performance(responses)

        weak = sorted(
            (t for t in topics if t.accuracy < WEAK_THRESHOLD and t.total >= MIN_ATTEMPTS),
            key=lambda t: t.accuracy,
        )
        strong = sorted(
            (t for t in topics if t.accuracy >= STRONG_THRESHOLD and t.total >= MIN_ATTEMPTS),
            key=lambda t: t.accuracy,
            reverse=True,
        )

        total_questions = sum(t.total for t in topics)
        total_correct = sum(t.correct for t in topics)
        average = total_correct / total_questions if total_questions > 0 else 0

        return WeaknessAnalysis(
            weak_topics=weak,
            strong_topics=strong,
            average_accuracy=average,
            total_questions_attempted=total_questions,
            recommendations=self.recommendations(weak),
            focus_areas=self.focus_areas(weak),
        )

    @staticmethod
    def recommendations(weak_topics: List[TopicPerformance]) -> List[str]:
        if not weak_topics:
            return [
                "Great progress! All attempted topics show strong performance.",
                "Continue practicing to maintain your skills.",
            ]

        weakest = weak_topics[0]
        recommendations = [
            f"Priority focus: {weakest.display_name} ({_pct(weakest.accuracy)}% accuracy)"
        ]
        if len(weak_topics) > 1:
            second = weak_topics[1]
            recommendations.append(
                f"Secondary focus: {second.display_name} ({_pct(second.accuracy)}% accuracy)"
            )
        if len(weak_topics) > SPREAD_TOO_THIN:
            recommendations.append(
                "Too many weak areas - focus on 1-2 topics at a time for better results."
            )

        for topic in weak_topics[:2]:
            tip = STRAND_TIPS.get(topic.strand)
            if tip:
                recommendations.append(f"For {topic.display_name}: {tip}")

        return recommendations

    @staticmethod
    def focus_areas(weak_topics: List[TopicPerformance]) -> List[FocusArea]:
        areas = []
        for topic in weak_topics[:MAX_FOCUS_AREAS]:
            priority = _priority(topic.accuracy)
            areas.append(FocusArea(
                topic_path=topic.topic_path,
                display_name=topic.display_name,
                priority=priority,
                recommended_study_time=STUDY_TIME[priority],
                accuracy=topic.accuracy,
            ))
        return areas


class WeaknessService:
    """Loads a student's scoped responses and runs the analyzer on them."""

    def __init__(
        self,
        store: DocumentStore,
        responses: ResponseStore,
        analyzer: Optional[TopicBasedWeaknessAnalyzer] = None,
        snapshot_ttl_hours: Optional[int] = None,
    ):
        self.store = store
        self.responses = responses
        self.analyzer = analyzer or TopicBasedWeaknessAnalyzer()
        self.snapshot_ttl = timedelta(
            hours=snapshot_ttl_hours or settings.analytics_cache_ttl_hours
        )

    def get_weakness_analysis(self, student_id: str) -> WeaknessAnalysis:
        """Fresh analysis; an empty analysis when the student has no responses."""
        if not student_id:
            raise ValidationError("Student ID is required", ["studentId"])

        responses = self.responses.list_scoped_by_student(student_id)
        if not responses:
            logger.info(
                "No responses found, returning empty analysis",
                extra={"student_id": student_id},
            )
            return WeaknessAnalysis.empty()

        return self.analyzer.analyze(responses)

    def refresh_snapshot(self, student_id: str) -> WeaknessAnalysis:
        """Recompute and cache the analysis in ``userAnalytics``."""
        analysis = self.get_weakness_analysis(student_id)
        document = analysis.to_document()
        document["generatedAt"] = utcnow().isoformat()
        self.store.set(USER_ANALYTICS, student_id, document)
        return analysis

    def get_snapshot(self, student_id: str) -> Optional[WeaknessAnalysis]:
        """Cached analysis, or None when missing or older than the TTL."""
        document = self.store.get(USER_ANALYTICS, student_id)
        if document is None:
            return None
        generated_at = document.get("generatedAt")
        if generated_at:
            age = utcnow() - as_utc(datetime.fromisoformat(generated_at))
            if age > self.snapshot_ttl:
                logger.debug(f"Analytics snapshot for {student_id} is stale")
                return None
        return WeaknessAnalysis.model_validate(document)

    def drop_snapshot(self, student_id: str) -> bool:
        return self.store.delete(USER_ANALYTICS, student_id)
