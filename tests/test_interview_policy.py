"""
Tests for the session policy, the interview state machine and the
structured result type.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from recruitment_interviews.config import Settings
from recruitment_interviews.errors import ConflictError, NotFoundError, UpstreamServiceError
from recruitment_interviews.orchestrator import InterviewPolicy
from recruitment_interviews.orchestrator.policy import as_utc
from recruitment_interviews.schemas import InterviewSession, InterviewStatus, QuestionConfig, ServiceResult


class TestInterviewPolicy:
    """Tests for InterviewPolicy."""

    @pytest.fixture
    def policy(self) -> InterviewPolicy:
        """Policy with two configured slots."""
        return InterviewPolicy(
            total_questions_to_ask=4,
            initial_question_count=2,
            time_limit_minutes=30,
            question_configs=[
                QuestionConfig(category="introduction", expected_time_minutes=2, marks=5),
                QuestionConfig(category="technical", expected_time_minutes=5, marks=10),
            ],
        )

    def test_slot_config_reuses_last_entry(self, policy: InterviewPolicy) -> None:
        """Test that slots beyond the configured list reuse the last config."""
        assert policy.slot_config(1).category == "introduction"
        assert policy.slot_config(2).category == "technical"
        assert policy.slot_config(7).category == "technical"

    def test_slot_config_rejects_non_positive(self, policy: InterviewPolicy) -> None:
        """Test that sequence numbers start at 1."""
        with pytest.raises(ValueError):
            policy.slot_config(0)

    def test_initial_configs(self, policy: InterviewPolicy) -> None:
        """Test that the initial batch follows the slot list."""
        assert [c.category for c in policy.initial_configs()] == ["introduction", "technical"]

    def test_total_marks_covers_the_quota(self, policy: InterviewPolicy) -> None:
        """Test that total marks sum every slot up to the quota."""
        assert policy.total_marks() == 5 + 10 + 10 + 10

    def test_quota_reached(self, policy: InterviewPolicy) -> None:
        """Test the quota check against the policy and a stored quota."""
        assert not policy.quota_reached(3)
        assert policy.quota_reached(4)
        assert policy.quota_reached(2, quota=2)

    def test_time_exceeded(self, policy: InterviewPolicy) -> None:
        """Test the time limit with aware and naive timestamps."""
        started = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

        assert not policy.time_exceeded(started, started + timedelta(minutes=30))
        assert policy.time_exceeded(started, started + timedelta(minutes=30, seconds=1))
        assert policy.time_exceeded(started.replace(tzinfo=None), started + timedelta(hours=1))
        assert not policy.time_exceeded(None, started)

    def test_resume_cache_ttl(self, policy: InterviewPolicy) -> None:
        """Test that the cache lifetime covers the time limit plus grace."""
        assert policy.resume_cache_ttl_millis() == 30 * 60 * 1000
        assert policy.resume_cache_ttl_millis(grace_seconds=60) == 31 * 60 * 1000

    def test_initial_count_cannot_exceed_quota(self) -> None:
        """Test that a seed batch larger than the quota is rejected."""
        with pytest.raises(PydanticValidationError):
            InterviewPolicy(total_questions_to_ask=2, initial_question_count=3)

    def test_from_settings(self) -> None:
        """Test building the policy from settings."""
        settings = Settings(
            total_questions_to_ask=7,
            initial_question_count=2,
            time_limit_minutes=45,
        )

        policy = InterviewPolicy.from_settings(settings)

        assert policy.total_questions_to_ask == 7
        assert policy.initial_question_count == 2
        assert policy.time_limit == timedelta(minutes=45)
        assert policy.question_configs == settings.question_configs

    def test_as_utc(self) -> None:
        """Test normalising timestamps to UTC."""
        naive = datetime(2026, 3, 1, 10, 0)
        offset = datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        assert as_utc(naive) == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert as_utc(offset) == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


class TestInterviewStatus:
    """Tests for the interview state machine."""

    @pytest.mark.parametrize(
        ("source", "target", "allowed"),
        [
            (InterviewStatus.PENDING, InterviewStatus.IN_PROGRESS, True),
            (InterviewStatus.IN_PROGRESS, InterviewStatus.COMPLETED, True),
            (InterviewStatus.PENDING, InterviewStatus.COMPLETED, False),
            (InterviewStatus.IN_PROGRESS, InterviewStatus.PENDING, False),
            (InterviewStatus.COMPLETED, InterviewStatus.IN_PROGRESS, False),
            (InterviewStatus.COMPLETED, InterviewStatus.COMPLETED, False),
        ],
    )
    def test_transitions(
        self,
        source: InterviewStatus,
        target: InterviewStatus,
        allowed: bool,
    ) -> None:
        """Test that status only moves forward."""
        assert source.can_transition_to(target) is allowed


class TestServiceResult:
    """Tests for ServiceResult."""

    def test_fail_carries_error_details(self) -> None:
        """Test that a failed result reports the error's type and messages."""
        error = NotFoundError("Application 42 not found", business_message="Application not found")

        result = ServiceResult[InterviewSession].fail(error)

        assert not result.success
        assert result.data is None
        assert result.error_type == "DataNotFoundError"
        assert result.business_message == "Application not found"
        assert result.message == "Application 42 not found"
        assert result.status_code == 404

    def test_default_business_messages(self) -> None:
        """Test error defaults and status overrides."""
        assert ConflictError("busy").business_message == "Operation not allowed in the current state"
        assert UpstreamServiceError("down", status_code=504).status_code == 504
        assert UpstreamServiceError("down").status_code == 502
