"""Tests for topic-based weakness analysis."""
import pytest
from datetime import timedelta

from app.core.errors import ValidationError
from app.domain.analytics import FocusPriority
from app.domain.response import StudentResponse
from app.infrastructure.document_store import USER_ANALYTICS, scoped_collection
from app.services.weakness import TopicBasedWeaknessAnalyzer
from app.utils.timestamps import utcnow

STUDENT = "aisha@school.org"

FRACTIONS = "number/fractions_decimals/fraction_operations"
EQUATIONS = "algebra/equations/linear_equations"
AREA = "geometry/measurement/area_2d"
AVERAGES = "statistics/data_analysis/averages"


def _response(results, response_id="r1"):
    """Build a response from (topic_path, correct) pairs."""
    answers = {
        f"q{i}": {"topicPath": path, "isCorrect": correct, "pointsEarned": 1 if correct else 0}
        for i, (path, correct) in enumerate(results)
    }
    return StudentResponse.model_validate({
        "id": response_id, "assessmentId": "a1", "studentId": STUDENT, "answers": answers,
    })


def _attempts(path, correct, total):
    return [(path, i < correct) for i in range(total)]


@pytest.fixture
def analyzer():
    return TopicBasedWeaknessAnalyzer()


class TestClassification:
    """Test weak/strong thresholds."""

    def test_exactly_sixty_percent_is_not_weak(self, analyzer):
        analysis = analyzer.analyze([_response(_attempts(FRACTIONS, 3, 5))])
        assert analysis.weak_topics == []
        assert analysis.strong_topics == []

    def test_below_sixty_percent_is_weak(self, analyzer):
        analysis = analyzer.analyze([_response(_attempts(FRACTIONS, 1, 2))])
        assert [t.topic_path for t in analysis.weak_topics] == [FRACTIONS]

    def test_exactly_eighty_percent_is_strong(self, analyzer):
        analysis = analyzer.analyze([_response(_attempts(EQUATIONS, 4, 5))])
        assert [t.topic_path for t in analysis.strong_topics] == [EQUATIONS]

    def test_single_attempt_is_excluded(self, analyzer):
        analysis = analyzer.analyze([_response([(FRACTIONS, False), (EQUATIONS, True)])])

        assert analysis.weak_topics == []
        assert analysis.strong_topics == []
        assert analysis.total_questions_attempted == 2
        assert analysis.average_accuracy == 0.5

    def test_weak_sorted_weakest_first(self, analyzer):
        analysis = analyzer.analyze([_response(
            _attempts(FRACTIONS, 2, 5) + _attempts(EQUATIONS, 0, 3) + _attempts(AREA, 1, 2)
        )])
        assert [t.topic_path for t in analysis.weak_topics] == [EQUATIONS, FRACTIONS, AREA]

    def test_strong_sorted_strongest_first(self, analyzer):
        analysis = analyzer.analyze([_response(_attempts(AREA, 4, 5) + _attempts(AVERAGES, 3, 3))])
        assert [t.topic_path for t in analysis.strong_topics] == [AVERAGES, AREA]

    def test_topics_untagged_answers_are_ignored(self, analyzer):
        response = StudentResponse.model_validate({
            "assessmentId": "a1", "studentId": STUDENT,
            "answers": {"q1": {"isCorrect": True}},
        })
        assert analyzer.analyze([response]).total_questions_attempted == 0


class TestAggregation:
    """Test per-topic and overall accuracy."""

    def test_overall_accuracy_across_responses(self, analyzer):
        responses = [
            _response(_attempts(FRACTIONS, 3, 5), "r1"),
            _response(_attempts(EQUATIONS, 4, 5), "r2"),
            _response(_attempts(AREA, 4, 5), "r3"),
        ]
        analysis = analyzer.analyze(responses)

        assert analysis.total_questions_attempted == 15
        assert analysis.average_accuracy == pytest.approx(11 / 15)

    def test_topic_counts_accumulate_across_responses(self, analyzer):
        responses = [
            _response(_attempts(FRACTIONS, 1, 2), "r1"),
            _response(_attempts(FRACTIONS, 2, 2), "r2"),
        ]
        [topic] = analyzer.topic_performance(responses)

        assert (topic.correct, topic.total, topic.questions_attempted) == (3, 4, 4)
        assert topic.accuracy == 0.75
        assert topic.strand == "number"
        assert topic.display_name == "Number → Fractions and Decimals → Fraction Operations"


class TestRecommendations:
    """Test recommendation text and focus areas."""

    def test_no_weak_topics(self, analyzer):
        analysis = analyzer.analyze([_response(_attempts(AREA, 2, 2))])
        assert analysis.recommendations[0].startswith("Great progress!")
        assert analysis.focus_areas == []

    def test_priority_and_secondary_focus(self, analyzer):
        analysis = analyzer.analyze([_response(
            _attempts(FRACTIONS, 1, 4) + _attempts(EQUATIONS, 2, 5)
        )])

        assert analysis.recommendations[0] == (
            "Priority focus: Number → Fractions and Decimals → Fraction Operations (25% accuracy)"
        )
        assert analysis.recommendations[1].startswith("Secondary focus: Algebra")
        assert any("step-by-step" in r for r in analysis.recommendations)

    def test_too_many_weak_areas(self, analyzer):
        analysis = analyzer.analyze([_response(
            _attempts(FRACTIONS, 0, 2) + _attempts(EQUATIONS, 0, 2)
            + _attempts(AREA, 0, 2) + _attempts(AVERAGES, 0, 2)
        )])
        assert any(r.startswith("Too many weak areas") for r in analysis.recommendations)
        assert len(analysis.focus_areas) == 3

    def test_focus_priority_bands(self, analyzer):
        analysis = analyzer.analyze([_response(
            _attempts(FRACTIONS, 1, 5) + _attempts(EQUATIONS, 2, 5) + _attempts(AREA, 1, 2)
        )])
        priorities = {f.topic_path: f.priority for f in analysis.focus_areas}

        assert priorities == {
            FRACTIONS: FocusPriority.HIGH,
            EQUATIONS: FocusPriority.MEDIUM,
            AREA: FocusPriority.LOW,
        }
        assert analysis.focus_areas[0].recommended_study_time == "30-45 minutes"


class TestWeaknessService:
    """Test loading responses and analytics snapshots."""

    def test_no_responses_gives_empty_analysis(self, services):
        analysis = services.weakness.get_weakness_analysis("new@school.org")

        assert analysis.weak_topics == []
        assert analysis.strong_topics == []
        assert analysis.average_accuracy == 0
        assert analysis.total_questions_attempted == 0
        assert analysis.recommendations == []

    def test_student_id_required(self, services):
        with pytest.raises(ValidationError):
            services.weakness.get_weakness_analysis("")

    def test_reads_scoped_responses(self, services, created_assessment, make_submission):
        services.responses.submit(make_submission(created_assessment.id, q1=(True, 4), q2=(False, 0)))
        services.responses.submit(make_submission(created_assessment.id, q1=(True, 4), q2=(False, 0)))

        analysis = services.weakness.get_weakness_analysis(STUDENT)

        assert analysis.total_questions_attempted == 4
        assert [t.topic_path for t in analysis.weak_topics] == [EQUATIONS]

    def test_snapshot_round_trip(self, services, store, created_assessment, make_submission):
        services.responses.submit(make_submission(created_assessment.id))

        fresh = services.weakness.refresh_snapshot(STUDENT)
        cached = services.weakness.get_snapshot(STUDENT)

        assert store.get(USER_ANALYTICS, STUDENT)["generatedAt"]
        assert cached.total_questions_attempted == fresh.total_questions_attempted

    def test_stale_snapshot_is_ignored(self, services, store):
        generated = utcnow() - timedelta(hours=48)
        store.set(USER_ANALYTICS, STUDENT, {"generatedAt": generated.isoformat(), "averageAccuracy": 0.5})

        assert services.weakness.get_snapshot(STUDENT) is None

    def test_drop_snapshot(self, services, store):
        store.set(USER_ANALYTICS, STUDENT, {})
        assert services.weakness.drop_snapshot(STUDENT) is True
        assert services.weakness.drop_snapshot(STUDENT) is False

    def test_malformed_scoped_document_is_skipped(self, services, store, created_assessment, make_submission):
        services.responses.submit(make_submission(created_assessment.id))
        store.set(scoped_collection(STUDENT), "broken", {"answers": []})

        assert services.weakness.get_weakness_analysis(STUDENT).total_questions_attempted == 2
