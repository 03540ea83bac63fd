"""Cascading deletes and orphan reconciliation across both response collections.

Every step is independent and best-effort: a failure deleting one document or
one student's scoped copies is recorded as a warning and the rest of the work
continues. Deletes are idempotent, so re-running an interrupted operation
converges on the same end state. Per-student passes touch disjoint partitions
and run on a bounded thread pool.
"""
import concurrent.futures
from typing import Callable, List, Optional, Set, Tuple

from app.core.config import settings
from app.core.errors import PartialFailure, ValidationError
from app.core.logging import LogTimer, get_logger
from app.domain.response import assessment_key, student_key
from app.domain.results import DeleteReport, InstructorCleanupReport, OrphanSweepReport
from app.infrastructure.document_store import (
    ASSESSMENTS,
    GLOBAL_RESPONSES,
    USER_RESPONSES,
    DocumentStore,
    scoped_collection,
)

logger = get_logger(__name__)

# Decides from a response's assessment id whether it should be deleted
OrphanPredicate = Callable[[Optional[str]], bool]


class CleanupService:
    """Keeps global and scoped response copies consistent with assessments."""

    def __init__(
        self,
        store: DocumentStore,
        drop_snapshot: Optional[Callable[[str], bool]] = None,
        max_workers: Optional[int] = None,
    ):
        self.store = store
        self.drop_snapshot = drop_snapshot
        self.max_workers = max_workers or settings.cleanup_max_workers

    # -----------------
    # BUILDING BLOCKS
    # -----------------

    def _delete(self, collection: str, doc_id: str, operation: str,
                warnings: List[PartialFailure]) -> bool:
        try:
            return self.store.delete(collection, doc_id)
        except Exception as e:
            logger.warning(
                f"{operation}: could not delete {collection}/{doc_id}: {e}",
                extra={"operation": operation, "collection": collection, "response_id": doc_id},
            )
            warnings.append(PartialFailure(
                operation=operation, target=f"{collection}/{doc_id}", detail=str(e),
            ))
            return False

    def _sweep_global(self, is_orphan: OrphanPredicate, operation: str,
                      warnings: List[PartialFailure]) -> Tuple[int, Set[str]]:
        """Delete matching global copies; return count and students touched."""
        deleted = 0
        students: Set[str] = set()

        for doc_id, data in self.store.list(GLOBAL_RESPONSES):
            assessment_id = assessment_key(data)
            if not is_orphan(assessment_id):
                continue
            logger.info(
                f"{operation}: deleting global response {doc_id} for assessment {assessment_id}",
                extra={"operation": operation, "response_id": doc_id, "assessment_id": assessment_id},
            )
            if self._delete(GLOBAL_RESPONSES, doc_id, operation, warnings):
                deleted += 1
            student_id = student_key(data)
            if student_id:
                students.add(student_id)

        return deleted, students

    def _sweep_student(self, student_id: str, is_orphan: OrphanPredicate,
                       operation: str) -> Tuple[int, List[PartialFailure]]:
        warnings: List[PartialFailure] = []
        deleted = 0
        collection = scoped_collection(student_id)

        for doc_id, data in self.store.list(collection):
            if is_orphan(assessment_key(data)):
                if self._delete(collection, doc_id, operation, warnings):
                    deleted += 1

        if deleted:
            student_logger = get_logger(__name__, {"operation": operation, "student_id": student_id})
            student_logger.info(f"Deleted {deleted} scoped responses from {collection}")

        return deleted, warnings

    def _sweep_students(self, students: Set[str], is_orphan: OrphanPredicate, operation: str,
                        warnings: List[PartialFailure]) -> Tuple[int, Set[str]]:
        """Delete matching scoped copies for each student.

        Returns the total deleted and the students that had deletions.
        """
        if not students:
            return 0, set()

        deleted = 0
        touched: Set[str] = set()
        workers = min(self.max_workers, len(students))

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="cleanup"
        ) as executor:
            futures = {
                executor.submit(self._sweep_student, student_id, is_orphan, operation): student_id
                for student_id in sorted(students)
            }
            for future in concurrent.futures.as_completed(futures):
                student_id = futures[future]
                try:
                    count, student_warnings = future.result()
                except Exception as e:
                    logger.warning(
                        f"{operation}: could not clean scoped responses for {student_id}: {e}",
                        extra={"operation": operation, "student_id": student_id},
                    )
                    warnings.append(PartialFailure(
                        operation=operation,
                        target=scoped_collection(student_id),
                        detail=str(e),
                    ))
                    continue
                deleted += count
                warnings.extend(student_warnings)
                if count:
                    touched.add(student_id)

        return deleted, touched

    # -----------------
    # OPERATIONS
    # -----------------

    def delete_assessment_cascade(self, assessment_id: str) -> DeleteReport:
        """Delete an assessment and every response to it in both collections."""
        if not assessment_id:
            raise ValidationError("Assessment ID is required", ["id"])

        operation = "cascade_delete"
        warnings: List[PartialFailure] = []

        with LogTimer(logger, f"{operation}:{assessment_id}"):
            assessment_deleted = self._delete(ASSESSMENTS, assessment_id, operation, warnings)

            def is_match(aid):
                return aid == assessment_id

            deleted_global, students = self._sweep_global(is_match, operation, warnings)
            deleted_user, _ = self._sweep_students(students, is_match, operation, warnings)

        return DeleteReport(
            assessment_id=assessment_id,
            assessment_deleted=assessment_deleted,
            deleted_global_responses=deleted_global,
            deleted_user_responses=deleted_user,
            affected_students=len(students),
            warnings=warnings,
        )

    def cleanup_orphans(self, full_scan: bool = False) -> OrphanSweepReport:
        """Delete responses whose assessment no longer exists.

        Scoped copies are checked for students whose global copies were
        orphaned; ``full_scan`` also checks every known student partition,
        which catches scoped copies whose global copy is already gone.
        Running the sweep again right after is a no-op.
        """
        operation = "orphan_sweep"
        warnings: List[PartialFailure] = []

        with LogTimer(logger, operation):
            valid_ids = {doc_id for doc_id, _ in self.store.list(ASSESSMENTS)}
            logger.info(f"Found {len(valid_ids)} valid assessments")

            def is_orphan(aid):
                return aid not in valid_ids

            deleted_global, students = self._sweep_global(is_orphan, operation, warnings)

            candidates = set(students)
            if full_scan:
                candidates.update(self.store.list_partitions(USER_RESPONSES))

            deleted_user, touched = self._sweep_students(candidates, is_orphan, operation, warnings)
            affected = students | touched

            cleaned_analytics = self._drop_snapshots(affected, operation, warnings)

        logger.info(
            f"Orphan sweep removed {deleted_global} global and {deleted_user} scoped responses",
            extra={"operation": operation},
        )
        return OrphanSweepReport(
            valid_assessments=len(valid_ids),
            deleted_global_responses=deleted_global,
            deleted_user_responses=deleted_user,
            affected_students=len(affected),
            cleaned_analytics=cleaned_analytics,
            warnings=warnings,
        )

    def cleanup_for_instructor(self, instructor_id: str) -> InstructorCleanupReport:
        """Orphan sweep limited to one instructor's dashboard.

        A response is an orphan when it names an assessment that no longer
        exists. Responses without an assessment id and responses to any live
        assessment are left alone. The instructor's own assessments decide
        which students' scoped copies are scanned besides those whose global
        copy was orphaned.
        """
        if not instructor_id:
            raise ValidationError("Instructor ID is required", ["instructorId"])

        operation = "instructor_cleanup"
        warnings: List[PartialFailure] = []

        with LogTimer(logger, f"{operation}:{instructor_id}"):
            assessments = self.store.list(ASSESSMENTS)
            valid_ids = {doc_id for doc_id, data in assessments if data.get("createdBy") == instructor_id}
            live_ids = {doc_id for doc_id, _ in assessments}

            def is_orphan(aid):
                return bool(aid) and aid not in live_ids

            deleted_global, students = self._sweep_global(is_orphan, operation, warnings)

            for _, data in self.store.list(GLOBAL_RESPONSES):
                student_id = student_key(data)
                if student_id and assessment_key(data) in valid_ids:
                    students.add(student_id)

            deleted_user, _ = self._sweep_students(students, is_orphan, operation, warnings)

        return InstructorCleanupReport(
            global_responses=deleted_global,
            user_responses=deleted_user,
            valid_assessments=len(valid_ids),
            warnings=warnings,
        )

    def _drop_snapshots(self, students: Set[str], operation: str,
                        warnings: List[PartialFailure]) -> int:
        if self.drop_snapshot is None:
            return 0
        cleaned = 0
        for student_id in sorted(students):
            try:
                if self.drop_snapshot(student_id):
                    cleaned += 1
            except Exception as e:
                warnings.append(PartialFailure(
                    operation=operation, target=f"userAnalytics/{student_id}", detail=str(e),
                ))
        return cleaned
