"""Tests for the instructor review workflow."""
import pytest
from unittest.mock import patch

from app.core.errors import StoreUnavailable, SubmissionNotFound, ValidationError
from app.domain.response import ReviewStatus
from app.infrastructure.document_store import ASSESSMENTS, GLOBAL_RESPONSES, scoped_collection

STUDENT = "aisha@school.org"
TUTOR = "tutor@school.org"


@pytest.fixture
def submission(services, created_assessment, make_submission):
    return services.responses.submit(make_submission(created_assessment.id))


class TestUpdateStatus:
    """Test status transitions and mirroring."""

    def test_start_review(self, services, store, submission):
        result = services.review.update_status(submission.id, "in_review", reviewer_id=TUTOR)

        assert result.status == ReviewStatus.IN_REVIEW
        assert result.mirrored is True
        doc = store.get(GLOBAL_RESPONSES, submission.id)
        assert doc["status"] == "in_review"
        assert doc["reviewedBy"] == TUTOR
        assert "reviewStartedAt" in doc

    def test_complete_review_mirrors_to_scoped_copy(self, services, store, submission):
        services.review.update_status(submission.id, ReviewStatus.IN_REVIEW, reviewer_id=TUTOR)
        services.review.update_status(
            submission.id, ReviewStatus.COMPLETED, feedback="  Well done!  ", total_score=9
        )

        for collection in (GLOBAL_RESPONSES, scoped_collection(STUDENT)):
            doc = store.get(collection, submission.id)
            assert doc["status"] == "completed"
            assert doc["tutorFeedback"] == "Well done!"
            assert doc["totalScore"] == 9
            assert "reviewCompletedAt" in doc
            assert "feedbackSentAt" in doc

    def test_completion_without_feedback_stores_no_nulls(self, services, store, submission):
        services.review.update_status(submission.id, "completed")

        doc = store.get(GLOBAL_RESPONSES, submission.id)
        assert "tutorFeedback" not in doc
        assert "totalScore" not in doc

    def test_repeated_status_is_accepted(self, services, submission):
        services.review.update_status(submission.id, "in_review")
        result = services.review.update_status(submission.id, "in_review")
        assert result.status == ReviewStatus.IN_REVIEW

    def test_completed_can_be_reopened(self, services, submission):
        services.review.update_status(submission.id, "completed")
        result = services.review.update_status(submission.id, "in_review")
        assert result.status == ReviewStatus.IN_REVIEW

    def test_in_review_cannot_go_back_to_pending(self, services, submission):
        services.review.update_status(submission.id, "in_review")
        with pytest.raises(ValidationError):
            services.review.update_status(submission.id, "pending")

    def test_unknown_status_rejected(self, services, submission):
        with pytest.raises(ValidationError):
            services.review.update_status(submission.id, "graded")

    def test_missing_submission(self, services):
        with pytest.raises(SubmissionNotFound):
            services.review.update_status("missing", "in_review")

    def test_missing_scoped_copy_is_a_warning(self, services, store, submission):
        store.delete(scoped_collection(STUDENT), submission.id)

        result = services.review.update_status(submission.id, "completed")

        assert result.mirrored is False
        assert result.warnings[0].detail == "scoped copy not found"
        assert store.get(GLOBAL_RESPONSES, submission.id)["status"] == "completed"

    def test_failed_mirror_keeps_global_write(self, services, store, submission):
        real_update = store.update

        def flaky_update(collection, doc_id, patch):
            if collection != GLOBAL_RESPONSES:
                raise StoreUnavailable("down")
            return real_update(collection, doc_id, patch)

        with patch.object(store, "update", side_effect=flaky_update):
            result = services.review.update_status(submission.id, "in_review")

        assert result.mirrored is False
        assert store.get(GLOBAL_RESPONSES, submission.id)["status"] == "in_review"
        assert store.get(scoped_collection(STUDENT), submission.id)["status"] == "pending"

    def test_unexpected_mirror_error_propagates(self, services, store, submission):
        real_update = store.update

        def broken_update(collection, doc_id, patch):
            if collection != GLOBAL_RESPONSES:
                raise RuntimeError("bad patch")
            return real_update(collection, doc_id, patch)

        with patch.object(store, "update", side_effect=broken_update):
            with pytest.raises(RuntimeError):
                services.review.update_status(submission.id, "in_review")


class TestReviewQueue:
    """Test the instructor review queue."""

    def test_lists_submissions_for_instructor_assessments(self, services, submission, created_assessment):
        queue = services.review.get_review_queue(TUTOR)

        assert queue.tutor_assessment_count == 1
        assert [s.id for s in queue.submissions] == [submission.id]
        row = queue.submissions[0]
        assert row.assessment_title == "Day 3: Fractions and Equations"
        assert row.student_name == "aisha"
        assert row.question_count == 2

    def test_other_instructors_see_nothing(self, services, submission):
        queue = services.review.get_review_queue("someone@school.org")
        assert queue.tutor_assessment_count == 0
        assert queue.submissions == []

    def test_legacy_day_id_submissions_are_included(self, services, store, created_assessment):
        store.set(GLOBAL_RESPONSES, "legacy-1", {
            "dayId": created_assessment.id,
            "submittedBy": "zoe@school.org",
            "answers": {},
        })

        queue = services.review.get_review_queue(TUTOR)

        assert [s.student_email for s in queue.submissions] == ["zoe@school.org"]

    def test_orphan_responses_are_not_listed(self, services, store, submission, created_assessment):
        store.delete(ASSESSMENTS, created_assessment.id)
        assert services.review.get_review_queue(TUTOR).submissions == []

    def test_instructor_id_required(self, services):
        with pytest.raises(ValidationError):
            services.review.get_review_queue("")
