"""Assessment authoring: create, list, update and cascading delete."""
import uuid
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import AssessmentNotFound, ValidationError
from app.core.logging import get_logger
from app.domain.assessment import Assessment
from app.domain.results import DeleteReport
from app.infrastructure.document_store import ASSESSMENTS, DocumentStore
from app.services.cleanup import CleanupService
from app.utils.timestamps import utcnow

logger = get_logger(__name__)

REQUIRED_FIELDS = ("title", "day", "questions")


def _validate(data: Mapping[str, Any]) -> Assessment:
    try:
        return Assessment.model_validate(dict(data))
    except PydanticValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ValidationError(
            f"Invalid assessment: {', '.join(fields) or e.error_count()}", fields
        ) from e


class AssessmentService:
    def __init__(self, store: DocumentStore, cleanup: CleanupService):
        self.store = store
        self.cleanup = cleanup

    def create_assessment(
        self,
        payload: Mapping[str, Any],
        created_by: Optional[str] = None,
    ) -> Assessment:
        """Validate and store a new assessment.

        Raises:
            ValidationError: title, day or questions missing or invalid
        """
        missing = [f for f in REQUIRED_FIELDS if payload.get(f) in (None, "", [])]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

        data = dict(payload)
        data.pop("totalPoints", None)
        if created_by:
            data["createdBy"] = created_by
        assessment = _validate(data)

        assessment.id = assessment.id or uuid.uuid4().hex
        assessment.created_at = utcnow()

        document = assessment.to_document()
        document.pop("id", None)
        self.store.set(ASSESSMENTS, assessment.id, document)

        logger.info(
            f"Assessment {assessment.id} created: Day {assessment.day} '{assessment.title}'",
            extra={"assessment_id": assessment.id, "instructor_id": assessment.created_by},
        )
        return assessment

    def list_assessments(self, created_by: Optional[str] = None) -> List[Dict[str, Any]]:
        """Stored assessments ordered by day, optionally one creator's only."""
        assessments = [
            {"id": doc_id, **data}
            for doc_id, data in self.store.list(ASSESSMENTS)
            if created_by is None or data.get("createdBy") == created_by
        ]
        return sorted(assessments, key=lambda a: (a.get("day") or 0, a["id"]))

    def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        data = self.store.get(ASSESSMENTS, assessment_id)
        if data is None:
            return None
        return Assessment.from_document(assessment_id, data)

    def update_assessment(self, assessment_id: str, patch: Mapping[str, Any]) -> Assessment:
        """Merge ``patch`` into a stored assessment and revalidate it.

        Replacing the questions recomputes ``totalPoints`` unless the patch
        sets it explicitly.
        """
        current = self.store.get(ASSESSMENTS, assessment_id)
        if current is None:
            raise AssessmentNotFound(assessment_id)

        merged = {**current, **{k: v for k, v in patch.items() if k not in ("id", "createdAt")}}
        if "questions" in patch and "totalPoints" not in patch:
            merged.pop("totalPoints", None)
        merged["id"] = assessment_id
        assessment = _validate(merged)

        document = assessment.to_document()
        document.pop("id", None)
        document["lastModified"] = utcnow().isoformat()
        self.store.set(ASSESSMENTS, assessment_id, document)

        logger.info(f"Assessment {assessment_id} updated", extra={"assessment_id": assessment_id})
        return assessment

    def delete_assessment(self, assessment_id: str) -> DeleteReport:
        """Delete an assessment together with every response to it."""
        return self.cleanup.delete_assessment_cascade(assessment_id)
