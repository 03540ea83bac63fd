"""Instructor review workflow over global response copies.

Status moves pending → in_review → completed. ``completed → in_review`` is an
explicit re-open. Re-sending the current status is accepted so a retried
request converges (status writes are last-writer-wins overwrites).

Every transition is written to the global copy first, since that is what
instructor tooling reads, then mirrored best-effort to the scoped copy. A
failed mirror is logged and returned as a warning.
"""
from typing import Dict, List, Optional, Union

from app.core.errors import PartialFailure, StoreUnavailable, SubmissionNotFound, ValidationError
from app.core.logging import get_logger
from app.domain.response import ReviewStatus, StudentResponse, student_key
from app.domain.results import ReviewQueue, StatusUpdateResult, SubmissionSummary
from app.infrastructure.document_store import (
    ASSESSMENTS,
    GLOBAL_RESPONSES,
    DocumentStore,
    scoped_collection,
)
from app.services.response_store import ResponseStore
from app.utils.text import sanitize_feedback
from app.utils.timestamps import utcnow

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: Dict[ReviewStatus, set] = {
    ReviewStatus.PENDING: {ReviewStatus.PENDING, ReviewStatus.IN_REVIEW, ReviewStatus.COMPLETED},
    ReviewStatus.IN_REVIEW: {ReviewStatus.IN_REVIEW, ReviewStatus.COMPLETED},
    ReviewStatus.COMPLETED: {ReviewStatus.COMPLETED, ReviewStatus.IN_REVIEW},
}


def _stored_status(document: dict) -> ReviewStatus:
    try:
        return ReviewStatus(document.get("status") or ReviewStatus.PENDING.value)
    except ValueError:
        return ReviewStatus.PENDING


class ReviewWorkflow:
    """Review queue listing and per-submission status transitions."""

    def __init__(self, store: DocumentStore, responses: ResponseStore):
        self.store = store
        self.responses = responses

    def update_status(
        self,
        submission_id: str,
        status: Union[ReviewStatus, str],
        reviewer_id: Optional[str] = None,
        feedback: Optional[str] = None,
        total_score: Optional[float] = None,
    ) -> StatusUpdateResult:
        """Transition a submission and mirror the change to its scoped copy.

        Raises:
            ValidationError: Unknown status or a transition that is not allowed
            SubmissionNotFound: No global copy with this id
        """
        if not submission_id:
            raise ValidationError("Submission ID is required", ["submissionId"])
        try:
            status = ReviewStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown review status '{status}'", ["status"])

        current = self.store.get(GLOBAL_RESPONSES, submission_id)
        if current is None:
            raise SubmissionNotFound(submission_id)

        current_status = _stored_status(current)
        if status not in ALLOWED_TRANSITIONS[current_status]:
            raise ValidationError(
                f"Cannot move submission from {current_status.value} to {status.value}",
                ["status"],
            )

        now = utcnow().isoformat()
        update: dict = {"status": status.value, "lastModified": now}

        if status == ReviewStatus.IN_REVIEW:
            update["reviewStartedAt"] = now
            update["reviewedBy"] = reviewer_id
            if current_status == ReviewStatus.COMPLETED:
                logger.info(
                    f"Submission {submission_id} re-opened for review",
                    extra={"response_id": submission_id},
                )

        if status == ReviewStatus.COMPLETED:
            update["reviewCompletedAt"] = now
            update["feedbackSentAt"] = now
            update["tutorFeedback"] = sanitize_feedback(feedback)
            update["totalScore"] = total_score
            if reviewer_id:
                update["reviewedBy"] = reviewer_id

        update = {k: v for k, v in update.items() if v is not None}

        merged = self.store.update(GLOBAL_RESPONSES, submission_id, update)
        if merged is None:
            # Deleted between the read and the write
            raise SubmissionNotFound(submission_id)

        mirrored, warnings = self._mirror_to_scoped(submission_id, merged, update)

        logger.info(
            f"Submission {submission_id} status {current_status.value} -> {status.value}",
            extra={"response_id": submission_id, "operation": "update_status"},
        )
        return StatusUpdateResult(
            submission_id=submission_id,
            status=status,
            mirrored=mirrored,
            warnings=warnings,
        )

    def _mirror_to_scoped(self, submission_id: str, global_doc: dict, update: dict):
        student_id = student_key(global_doc)
        scoped_id = global_doc.get("userDocId") or submission_id

        if not student_id:
            detail = "global copy has no student id"
        else:
            try:
                if self.store.update(scoped_collection(student_id), scoped_id, update) is not None:
                    return True, []
                detail = "scoped copy not found"
            except StoreUnavailable as e:
                detail = f"scoped update failed: {e}"

        logger.warning(
            f"Could not mirror status of {submission_id} to scoped copy: {detail}",
            extra={"response_id": submission_id, "student_id": student_id},
        )
        return False, [PartialFailure(
            operation="update_status",
            target=f"{scoped_collection(student_id or '?')}/{scoped_id}",
            detail=detail,
        )]

    def get_review_queue(self, instructor_id: str) -> ReviewQueue:
        """Submissions to the instructor's assessments, newest first.

        The assessment and response collections are joined in memory; a
        response matches on ``assessmentId`` or the legacy ``dayId``.
        """
        if not instructor_id:
            raise ValidationError("Instructor ID is required", ["instructorId"])

        tutor_assessments = {
            doc_id: data
            for doc_id, data in self.store.list(ASSESSMENTS)
            if data.get("createdBy") == instructor_id
        }
        logger.info(
            f"Found {len(tutor_assessments)} assessments created by instructor",
            extra={"instructor_id": instructor_id},
        )

        submissions: List[SubmissionSummary] = []
        for response in self.responses.list_global():
            assessment = tutor_assessments.get(response.assessment_id)
            if assessment is None:
                continue
            submissions.append(self._summarize(response, assessment))

        return ReviewQueue(
            submissions=submissions,
            tutor_assessment_count=len(tutor_assessments),
        )

    @staticmethod
    def _summarize(response: StudentResponse, assessment: dict) -> SubmissionSummary:
        return SubmissionSummary(
            id=response.id,
            student_email=response.student_id,
            student_name=response.student_display_name,
            assessment_id=response.assessment_id,
            assessment_title=f"Day {assessment.get('day')}: {assessment.get('title')}",
            submitted_at=response.completed_at,
            status=response.status,
            question_count=len(response.answers),
            time_spent=response.time_spent,
            answers=response.answers,
            canvas_drawings=response.canvas_drawings,
        )

    def get_submission(self, submission_id: str) -> Optional[StudentResponse]:
        return self.responses.get_global(submission_id)
