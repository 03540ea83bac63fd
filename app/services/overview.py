"""Instructor dashboard aggregates over the global response collection.

The overview joins assessments with their global responses in memory and
aggregates with pandas:

- per student: responses, total and average score, distinct assessments done
- per assessment: completion count and average score
- summary: totals and the average completion rate
"""
from typing import Any, Dict, List, Optional

import pandas as pd

from app.core.logging import LogTimer, get_logger
from app.domain.response import display_name_for
from app.domain.results import StudentSummary, TutorOverview
from app.services.assessments import AssessmentService
from app.services.response_store import ResponseStore

logger = get_logger(__name__)


# ----------------
# HELPER FUNCTIONS
# ----------------

def _completion_rate(responses: int, assessments: int, students: int) -> int:
    """Percentage of possible submissions made, halves rounded up."""
    if assessments == 0:
        return 0
    rate = responses / (assessments * max(students, 1)) * 100
    return int(rate + 0.5)


def _response_frame(responses: List[Dict[str, Any]]) -> pd.DataFrame:
    if not responses:
        return pd.DataFrame(columns=["studentId", "assessmentId", "score", "displayName"])
    df = pd.DataFrame(responses)
    df["score"] = pd.to_numeric(df["score"], errors="coerce").fillna(0.0)
    if "displayName" not in df.columns:
        df["displayName"] = None
    return df


class OverviewService:
    """Dashboard views for instructors."""

    def __init__(self, responses: ResponseStore, assessments: AssessmentService):
        self.responses = responses
        self.assessments = assessments

    def all_responses(self, assessment_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Global copies, newest first, with student email and display name."""
        feed = []
        for response in self.responses.list_global():
            if assessment_id and response.assessment_id != assessment_id:
                continue
            document = response.model_dump(by_alias=True, mode="json", exclude_none=True)
            document["studentEmail"] = response.student_id
            document["displayName"] = response.student_display_name
            feed.append(document)
        return feed

    def list_students(self) -> List[StudentSummary]:
        """Every student with a scoped partition, with response counts."""
        students = []
        for student_id in self.responses.list_students():
            history = self.responses.list_scoped_by_student(student_id)
            total = sum(r.score for r in history)
            students.append(StudentSummary(
                email=student_id,
                display_name=display_name_for(student_id),
                total_responses=len(history),
                total_score=total,
                average_score=int(total / len(history) + 0.5) if history else 0,
                completed_assessments=len({r.assessment_id for r in history}),
            ))
        return students

    def tutor_overview(self, instructor_id: Optional[str] = None) -> TutorOverview:
        """Assessments, their responses, per-student stats and a summary.

        With ``instructor_id`` only that instructor's assessments and the
        responses to them are included.
        """
        with LogTimer(logger, "tutor_overview"):
            assessments = self.assessments.list_assessments(created_by=instructor_id)
            assessment_ids = {a["id"] for a in assessments}
            responses = [
                r for r in self.all_responses()
                if instructor_id is None or r.get("assessmentId") in assessment_ids
            ]

            df = _response_frame(responses)
            students = self._student_stats(df)
            assessment_rows = self._assessment_stats(assessments, df)

        summary = {
            "totalAssessments": len(assessments),
            "totalResponses": len(responses),
            "totalStudents": len(students),
            "averageCompletionRate": _completion_rate(len(responses), len(assessments), len(students)),
        }
        logger.info(
            f"Overview: {summary['totalAssessments']} assessments, "
            f"{summary['totalResponses']} responses, {summary['totalStudents']} students",
            extra={"instructor_id": instructor_id},
        )
        return TutorOverview(
            assessments=assessment_rows,
            responses=responses,
            students=students,
            summary=summary,
        )

    @staticmethod
    def _student_stats(df: pd.DataFrame) -> List[StudentSummary]:
        if df.empty:
            return []
        agg = (
            df.groupby("studentId", sort=True)
            .agg(
                total_responses=("score", "size"),
                total_score=("score", "sum"),
                completed_assessments=("assessmentId", "nunique"),
                display_name=("displayName", "first"),
            )
            .reset_index()
        )
        students = []
        for row in agg.to_dict(orient="records"):
            count = int(row["total_responses"])
            total = float(row["total_score"])
            stored_name = row["display_name"] if isinstance(row["display_name"], str) else None
            students.append(StudentSummary(
                email=row["studentId"],
                display_name=display_name_for(row["studentId"], stored_name),
                total_responses=count,
                total_score=total,
                average_score=int(total / count + 0.5) if count else 0,
                completed_assessments=int(row["completed_assessments"]),
            ))
        return students

    @staticmethod
    def _assessment_stats(assessments: List[Dict[str, Any]], df: pd.DataFrame) -> List[Dict[str, Any]]:
        if df.empty:
            by_assessment = {}
        else:
            grouped = df.groupby("assessmentId")["score"].agg(["size", "mean"])
            by_assessment = grouped.to_dict(orient="index")

        rows = []
        for assessment in assessments:
            stats = by_assessment.get(assessment["id"], {})
            count = int(stats.get("size", 0))
            rows.append({
                **assessment,
                "completionCount": count,
                "averageScore": int(float(stats["mean"]) + 0.5) if count else 0,
            })
        return rows
