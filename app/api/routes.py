"""FastAPI routes for the Progress Tracker response ledger.

Store calls are blocking, so handlers are plain ``def`` and run on FastAPI's
worker threads. Ledger errors map to HTTP status codes:

- ValidationError   -> 400
- DocumentNotFound  -> 404
- StoreUnavailable  -> 503

Partial failures of multi-document operations are not errors; they come back
in the ``warnings`` list of the result with a 200.
"""
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from app.core.errors import DocumentNotFound, StoreUnavailable, ValidationError
from app.core.logging import LogTimer, get_logger
from app.domain.analytics import WeaknessAnalysis
from app.domain.base import LedgerModel
from app.domain.response import StudentResponse
from app.domain.results import (
    DeleteReport,
    InstructorCleanupReport,
    ManualGrade,
    ManualGradeResult,
    OrphanSweepReport,
    ReviewQueue,
    StatusUpdateResult,
    StudentSummary,
    SubmitResult,
    TutorOverview,
)
from app.services.container import Services, get_services

logger = get_logger(__name__)
router = APIRouter()


@contextmanager
def ledger_errors(operation: str):
    """Translate ledger exceptions raised inside a handler to HTTP errors."""
    try:
        yield
    except ValidationError as e:
        logger.warning(f"{operation} rejected: {e}", extra={"operation": operation})
        raise HTTPException(status_code=400, detail={"error": str(e), "missing": e.missing})
    except DocumentNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailable as e:
        logger.error(f"{operation} failed, store unavailable: {e}", extra={"operation": operation})
        raise HTTPException(status_code=503, detail="Document store unavailable, retry later")


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json", exclude_none=True)


# -----------------
# REQUEST MODELS
# -----------------

class StatusUpdateRequest(LedgerModel):
    status: str
    reviewer_id: Optional[str] = None
    feedback: Optional[str] = None
    total_score: Optional[float] = Field(default=None, ge=0)


class ManualGradeRequest(LedgerModel):
    response_id: str
    student_id: str
    grades: Dict[str, ManualGrade]
    graded_by: Optional[str] = None


class InstructorCleanupRequest(LedgerModel):
    instructor_id: str


# -----------------
# ASSESSMENTS
# -----------------

@router.post("/assessments")
def create_assessment(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    """Create an assessment; ``createdBy`` in the body records the instructor."""
    with LogTimer(logger, "create_assessment"), ledger_errors("create_assessment"):
        assessment = services.assessments.create_assessment(payload)
    return _dump(assessment)


@router.get("/assessments")
def list_assessments(
    created_by: Optional[str] = Query(default=None, alias="createdBy"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    with ledger_errors("list_assessments"):
        return services.assessments.list_assessments(created_by=created_by)


@router.get("/assessments/{assessment_id}")
def get_assessment(assessment_id: str, services: Services = Depends(get_services)):
    with ledger_errors("get_assessment"):
        assessment = services.assessments.get_assessment(assessment_id)
    if assessment is None:
        raise HTTPException(status_code=404, detail=f"Assessment '{assessment_id}' not found")
    return _dump(assessment)


@router.put("/assessments/{assessment_id}")
def update_assessment(
    assessment_id: str,
    patch: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    with ledger_errors("update_assessment"):
        assessment = services.assessments.update_assessment(assessment_id, patch)
    return _dump(assessment)


@router.delete("/assessments/{assessment_id}", response_model=DeleteReport)
def delete_assessment(assessment_id: str, services: Services = Depends(get_services)):
    """Delete an assessment and cascade to every response to it."""
    with LogTimer(logger, f"delete_assessment:{assessment_id}"), ledger_errors("delete_assessment"):
        return services.assessments.delete_assessment(assessment_id)


# -----------------
# RESPONSES
# -----------------

@router.post("/responses", response_model=SubmitResult)
def submit_response(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    """Submit a response; both copies are written under one id.

    Resubmitting with the id from a failed attempt overwrites instead of
    duplicating.
    """
    with LogTimer(logger, "submit_response"), ledger_errors("submit_response"):
        return services.responses.submit(payload)


@router.get("/responses")
def student_responses(
    student_id: str = Query(..., alias="studentId"),
    assessment_id: Optional[str] = Query(default=None, alias="assessmentId"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    """A student's own responses, newest first."""
    with ledger_errors("student_responses"):
        responses = services.responses.list_scoped_by_student(student_id, assessment_id)
    return [_dump(r) for r in responses]


@router.put("/responses/manual-grade", response_model=ManualGradeResult)
def apply_manual_grade(req: ManualGradeRequest, services: Services = Depends(get_services)):
    with LogTimer(logger, f"manual_grade:{req.response_id}"), ledger_errors("manual_grade"):
        return services.responses.apply_manual_grade(
            req.response_id, req.student_id, req.grades, graded_by=req.graded_by
        )


@router.put("/responses/{student_id}/{response_id}")
def update_student_response(
    student_id: str,
    response_id: str,
    patch: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    """Student-side edit of a submission (canvas drawings, time spent)."""
    with ledger_errors("update_student_response"):
        updated = services.responses.update_scoped(student_id, response_id, patch)
    return _dump(updated)


# -----------------
# REVIEW
# -----------------

@router.get("/review-queue", response_model=ReviewQueue)
def review_queue(
    instructor_id: str = Query(..., alias="instructorId"),
    services: Services = Depends(get_services),
):
    with LogTimer(logger, f"review_queue:{instructor_id}"), ledger_errors("review_queue"):
        return services.review.get_review_queue(instructor_id)


@router.get("/review-queue/{submission_id}", response_model=StudentResponse, response_model_exclude_none=True)
def get_submission(submission_id: str, services: Services = Depends(get_services)):
    with ledger_errors("get_submission"):
        submission = services.review.get_submission(submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail=f"Submission '{submission_id}' not found")
    return submission


@router.put("/review-queue/{submission_id}", response_model=StatusUpdateResult)
def update_submission_status(
    submission_id: str,
    req: StatusUpdateRequest,
    services: Services = Depends(get_services),
):
    with LogTimer(logger, f"update_status:{submission_id}"), ledger_errors("update_status"):
        return services.review.update_status(
            submission_id,
            req.status,
            reviewer_id=req.reviewer_id,
            feedback=req.feedback,
            total_score=req.total_score,
        )


# -----------------
# ANALYTICS
# -----------------

@router.get("/analytics/students", response_model=List[StudentSummary])
def list_students(services: Services = Depends(get_services)):
    with ledger_errors("list_students"):
        return services.overview.list_students()


@router.get("/analytics/{student_id}", response_model=WeaknessAnalysis)
def weakness_analysis(
    student_id: str,
    cached: bool = Query(default=False),
    services: Services = Depends(get_services),
):
    """Topic weakness analysis; ``cached=true`` serves a fresh snapshot if one exists."""
    with LogTimer(logger, f"weakness_analysis:{student_id}"), ledger_errors("weakness_analysis"):
        if cached:
            snapshot = services.weakness.get_snapshot(student_id)
            if snapshot is not None:
                return snapshot
        return services.weakness.get_weakness_analysis(student_id)


@router.post("/analytics/{student_id}", response_model=WeaknessAnalysis)
def refresh_weakness_snapshot(student_id: str, services: Services = Depends(get_services)):
    with ledger_errors("refresh_snapshot"):
        return services.weakness.refresh_snapshot(student_id)


# -----------------
# TUTOR DASHBOARD
# -----------------

@router.get("/tutor/overview", response_model=TutorOverview)
def tutor_overview(
    instructor_id: Optional[str] = Query(default=None, alias="instructorId"),
    services: Services = Depends(get_services),
):
    with ledger_errors("tutor_overview"):
        return services.overview.tutor_overview(instructor_id)


@router.get("/tutor/responses")
def all_responses(
    assessment_id: Optional[str] = Query(default=None, alias="assessmentId"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    with ledger_errors("all_responses"):
        return services.overview.all_responses(assessment_id)


# -----------------
# MAINTENANCE
# -----------------

@router.post("/maintenance/cleanup-orphans", response_model=OrphanSweepReport)
def cleanup_orphans(
    full_scan: bool = Query(default=False, alias="fullScan"),
    services: Services = Depends(get_services),
):
    """Delete responses whose assessment no longer exists. Safe to re-run."""
    with ledger_errors("cleanup_orphans"):
        return services.cleanup.cleanup_orphans(full_scan=full_scan)


@router.post("/maintenance/cleanup-instructor", response_model=InstructorCleanupReport)
def cleanup_for_instructor(req: InstructorCleanupRequest, services: Services = Depends(get_services)):
    with ledger_errors("cleanup_for_instructor"):
        return services.cleanup.cleanup_for_instructor(req.instructor_id)


# -----------------
# TOPICS
# -----------------

@router.get("/topics")
def list_topics(services: Services = Depends(get_services)) -> List[Dict[str, str]]:
    return services.catalog.list_all_topic_paths()
