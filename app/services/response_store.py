"""Dual-copy response persistence.

Every submission is written twice with the same id: a scoped copy under
``userResponses/{studentId}/responses`` (student history and analytics) and a
global copy in ``allResponses`` (instructor review queue and dashboards).
The two writes are independent; the caller retries a failed submit as a whole
and passing the same ``response_id`` makes that retry overwrite rather than
duplicate.

Filtering:
    server-side  point lookups by id; per-student partition reads
    client-side  assessment filter (``assessmentId`` or legacy ``dayId``),
                 newest-first ordering by ``completedAt``
"""
import uuid
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import PartialFailure, StoreUnavailable, SubmissionNotFound, ValidationError
from app.core.logging import get_logger
from app.domain.assessment import Assessment
from app.domain.response import (
    ReviewStatus,
    StudentResponse,
    assessment_key,
    display_name_for,
    student_key,
)
from app.domain.results import ManualGrade, ManualGradeResult, SubmitResult
from app.infrastructure.document_store import (
    ASSESSMENTS,
    GLOBAL_RESPONSES,
    USER_RESPONSES,
    DocumentStore,
    scoped_collection,
)
from app.utils.text import sanitize_feedback
from app.utils.timestamps import as_utc, utcnow

logger = get_logger(__name__)

# Fields a student may change after submitting
STUDENT_EDITABLE_FIELDS = ("canvasDrawings", "timeSpent")


def _newest_first(responses: List[StudentResponse]) -> List[StudentResponse]:
    return sorted(responses, key=lambda r: as_utc(r.completed_at), reverse=True)


class ResponseStore:
    """Reads and writes both copies of student responses."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # -----------------
    # PARSING
    # -----------------

    def _parse(self, doc_id: str, data: dict, collection: str) -> Optional[StudentResponse]:
        try:
            return StudentResponse.from_document(doc_id, data)
        except PydanticValidationError as e:
            logger.warning(
                f"Skipping malformed response document {collection}/{doc_id}: {e.error_count()} errors",
                extra={"response_id": doc_id, "collection": collection},
            )
            return None

    def _load_assessment(self, assessment_id: str) -> Optional[Assessment]:
        data = self.store.get(ASSESSMENTS, assessment_id)
        if data is None:
            return None
        try:
            return Assessment.from_document(assessment_id, data)
        except PydanticValidationError:
            logger.warning(
                f"Stored assessment {assessment_id} is malformed; topics not denormalized",
                extra={"assessment_id": assessment_id},
            )
            return None

    # -----------------
    # SUBMISSION
    # -----------------

    def submit(
        self,
        payload: Mapping[str, Any],
        assessment: Optional[Union[Assessment, Mapping[str, Any]]] = None,
        response_id: Optional[str] = None,
    ) -> SubmitResult:
        """Write a new submission to both collections.

        Args:
            payload: Response body with ``assessmentId`` (or legacy ``dayId``),
                ``studentId`` and an ``answers`` map keyed by question id
            assessment: The assessment answered; loaded from the store when omitted
            response_id: Id to use for both copies (generated when omitted)

        Returns:
            SubmitResult with the shared id and the computed score

        Raises:
            ValidationError: Required fields are missing; nothing was written
        """
        missing = []
        if not assessment_key(payload):
            missing.append("assessmentId")
        if not payload.get("studentId"):
            missing.append("studentId")
        if not isinstance(payload.get("answers"), Mapping):
            missing.append("answers")
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

        try:
            response = StudentResponse.model_validate(dict(payload))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid response: {e.error_count()} field errors") from e

        if assessment is None:
            assessment = self._load_assessment(response.assessment_id)
        elif not isinstance(assessment, Assessment):
            try:
                assessment = Assessment.model_validate(dict(assessment))
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid assessment: {e.error_count()} field errors") from e

        if assessment is None:
            logger.warning(
                f"Submission for unknown assessment {response.assessment_id}; answers keep their own topic tags",
                extra={"assessment_id": response.assessment_id, "student_id": response.student_id},
            )
        else:
            for question_id, answer in response.answers.items():
                question = assessment.question(question_id)
                if question is None or not question.topic_path:
                    continue
                answer.topic_path = question.topic_path
                answer.strand = question.strand
                answer.chapter = question.chapter
                answer.subtopic = question.subtopic

        response.id = response_id or response.id or uuid.uuid4().hex
        response.score = sum(a.points_earned for a in response.answers.values())
        response.completed_at = utcnow()
        response.status = ReviewStatus.PENDING

        scoped_doc = response.to_document()
        global_doc = {
            **scoped_doc,
            "assessmentTitle": assessment.title if assessment else f"Day {response.assessment_id}",
            "assessmentDay": assessment.day if assessment else 0,
            "displayName": display_name_for(response.student_id),
        }

        self.store.set(scoped_collection(response.student_id), response.id, scoped_doc)
        self.store.set(GLOBAL_RESPONSES, response.id, global_doc)

        logger.info(
            f"Response {response.id} submitted by {response.student_id}",
            extra={
                "response_id": response.id,
                "student_id": response.student_id,
                "assessment_id": response.assessment_id,
            },
        )
        return SubmitResult(id=response.id, score=response.score)

    # -----------------
    # LOOKUPS
    # -----------------

    def get_global(self, response_id: str) -> Optional[StudentResponse]:
        data = self.store.get(GLOBAL_RESPONSES, response_id)
        return self._parse(response_id, data, GLOBAL_RESPONSES) if data else None

    def get_scoped(self, student_id: str, response_id: str) -> Optional[StudentResponse]:
        collection = scoped_collection(student_id)
        data = self.store.get(collection, response_id)
        return self._parse(response_id, data, collection) if data else None

    def list_global(self) -> List[StudentResponse]:
        parsed = (self._parse(i, d, GLOBAL_RESPONSES) for i, d in self.store.list(GLOBAL_RESPONSES))
        return _newest_first([r for r in parsed if r is not None])

    def list_global_by_assessment(self, assessment_id: str) -> List[StudentResponse]:
        return [r for r in self.list_global() if r.assessment_id == assessment_id]

    def list_scoped_by_student(
        self,
        student_id: str,
        assessment_id: Optional[str] = None,
    ) -> List[StudentResponse]:
        collection = scoped_collection(student_id)
        parsed = (self._parse(i, d, collection) for i, d in self.store.list(collection))
        responses = [r for r in parsed if r is not None]
        if assessment_id:
            responses = [r for r in responses if r.assessment_id == assessment_id]
        return _newest_first(responses)

    def list_students(self) -> List[str]:
        """Students with a scoped partition."""
        return self.store.list_partitions(USER_RESPONSES)

    def find_global_id(self, response_id: str, student_id: str) -> Optional[str]:
        """Id of the global copy for a scoped response.

        Current submissions share one id. Older global copies were keyed
        separately and point back at their scoped copy via ``userDocId``.
        """
        if self.store.get(GLOBAL_RESPONSES, response_id) is not None:
            return response_id
        for doc_id, data in self.store.list(GLOBAL_RESPONSES):
            if data.get("userDocId") == response_id and student_key(data) == student_id:
                return doc_id
        return None

    # -----------------
    # UPDATES
    # -----------------

    def update_scoped(
        self,
        student_id: str,
        response_id: str,
        patch: Mapping[str, Any],
    ) -> StudentResponse:
        """Student-side edit of a submitted response.

        Only working data (canvas drawings, time spent) may change; answers,
        score, status and identity belong to the ledger and are rejected. The
        merged document is validated before anything is written, then the
        same fields are mirrored to the global copy.

        Raises:
            ValidationError: The patch names a non-editable field or the
                merged document is malformed
            SubmissionNotFound: The scoped copy does not exist
        """
        rejected = sorted(k for k in patch if k not in STUDENT_EDITABLE_FIELDS)
        if rejected:
            raise ValidationError(f"Fields not editable by students: {', '.join(rejected)}", rejected)
        if not patch:
            raise ValidationError("Nothing to update", list(STUDENT_EDITABLE_FIELDS))

        collection = scoped_collection(student_id)
        current = self.store.get(collection, response_id)
        if current is None:
            raise SubmissionNotFound(response_id)

        clean = {**patch, "lastModified": utcnow().isoformat()}
        try:
            StudentResponse.from_document(response_id, {**current, **clean})
        except PydanticValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise ValidationError(f"Invalid update for response '{response_id}'", fields) from e

        merged = self.store.update(collection, response_id, clean)
        if merged is None:
            raise SubmissionNotFound(response_id)

        global_id = self.find_global_id(response_id, student_id)
        if global_id is None:
            logger.warning(
                f"Global copy of {response_id} not found; student edit kept on scoped copy only",
                extra={"response_id": response_id, "student_id": student_id},
            )
        else:
            try:
                self.store.update(GLOBAL_RESPONSES, global_id, clean)
            except StoreUnavailable as e:
                logger.warning(
                    f"Global copy of {response_id} not updated: {e}",
                    extra={"response_id": response_id, "student_id": student_id},
                )

        return StudentResponse.from_document(response_id, merged)

    def apply_manual_grade(
        self,
        response_id: str,
        student_id: str,
        grades: Mapping[str, Union[ManualGrade, Mapping[str, Any]]],
        graded_by: Optional[str] = None,
    ) -> ManualGradeResult:
        """Apply per-question grade overrides to both copies.

        Overwrites correctness, points and feedback where provided, stamps
        manual-grading metadata and recomputes the score as the sum of every
        answer's points. A missing global copy does not stop the scoped
        update; it is reported as a warning.

        Raises:
            ValidationError: No ids or no grades were given
            SubmissionNotFound: Neither copy exists
        """
        if not response_id or not student_id or not grades:
            raise ValidationError("responseId, studentId and grades are required")

        parsed_grades = {
            qid: g if isinstance(g, ManualGrade) else ManualGrade.model_validate(g)
            for qid, g in grades.items()
        }
        graded_at = utcnow().isoformat()
        warnings: List[PartialFailure] = []

        scoped_path = scoped_collection(student_id)
        scoped_doc = self.store.get(scoped_path, response_id)
        global_id = self.find_global_id(response_id, student_id)
        global_doc = self.store.get(GLOBAL_RESPONSES, global_id) if global_id else None

        if scoped_doc is None and global_doc is None:
            raise SubmissionNotFound(response_id)

        scoped_score: Optional[float] = None
        global_score: Optional[float] = None

        if scoped_doc is not None:
            patch, unknown = self._graded_patch(scoped_doc, parsed_grades, graded_by, graded_at)
            self.store.update(scoped_path, response_id, patch)
            scoped_score = patch["score"]
            for qid in unknown:
                warnings.append(PartialFailure(
                    operation="manual_grade",
                    target=f"{response_id}/{qid}",
                    detail="question not present in response; grade ignored",
                ))
        else:
            warnings.append(self._warn_missing_copy("scoped", response_id, student_id))

        if global_doc is not None:
            patch, _ = self._graded_patch(global_doc, parsed_grades, graded_by, graded_at)
            try:
                self.store.update(GLOBAL_RESPONSES, global_id, patch)
                global_score = patch["score"]
            except StoreUnavailable as e:
                if scoped_score is None:
                    raise
                warnings.append(PartialFailure(
                    operation="manual_grade", target=f"{GLOBAL_RESPONSES}/{global_id}", detail=str(e),
                ))
                logger.warning(
                    f"Global copy of {response_id} not updated: {e}",
                    extra={"response_id": response_id, "student_id": student_id},
                )
        else:
            warnings.append(self._warn_missing_copy("global", response_id, student_id))

        updated_score = scoped_score if scoped_score is not None else global_score
        logger.info(
            f"Manual grades applied to {response_id}: score {updated_score}",
            extra={"response_id": response_id, "student_id": student_id},
        )
        return ManualGradeResult(
            updated_score=updated_score,
            scoped_updated=scoped_score is not None,
            global_updated=global_score is not None,
            warnings=warnings,
        )

    @staticmethod
    def _graded_patch(
        document: dict,
        grades: Dict[str, ManualGrade],
        graded_by: Optional[str],
        graded_at: str,
    ) -> tuple:
        answers = {qid: dict(answer) for qid, answer in (document.get("answers") or {}).items()}
        unknown = []

        for qid, grade in grades.items():
            answer = answers.get(qid)
            if answer is None:
                unknown.append(qid)
                continue
            if grade.is_correct is not None:
                answer["isCorrect"] = grade.is_correct
            if grade.points is not None:
                answer["pointsEarned"] = grade.points
            feedback = sanitize_feedback(grade.feedback)
            if feedback:
                answer["tutorFeedback"] = feedback
            answer["manuallyGraded"] = True
            answer["gradedBy"] = graded_by
            answer["gradedAt"] = graded_at

        score = sum(float(a.get("pointsEarned") or 0) for a in answers.values())
        patch = {
            "answers": answers,
            "score": score,
            "manuallyGraded": True,
            "gradedBy": graded_by,
            "gradedAt": graded_at,
            "lastModified": graded_at,
        }
        return patch, unknown

    @staticmethod
    def _warn_missing_copy(which: str, response_id: str, student_id: str) -> PartialFailure:
        logger.warning(
            f"No {which} copy found for response {response_id}; updating the other copy only",
            extra={"response_id": response_id, "student_id": student_id},
        )
        return PartialFailure(
            operation="manual_grade",
            target=f"{which}/{response_id}",
            detail=f"{which} copy not found",
        )

