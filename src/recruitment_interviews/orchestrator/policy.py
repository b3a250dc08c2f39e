"""
Interview session policy.

Decides when an interview ends (question quota, time limit) and which
configuration each question slot gets.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field, model_validator

from recruitment_interviews.config import Settings, get_settings
from recruitment_interviews.schemas import QuestionConfig


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by some drivers) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InterviewPolicy(BaseModel):
    """Quota, time limit and per-slot configuration of an interview."""

    total_questions_to_ask: int = Field(default=5, ge=1, description="Question quota")
    initial_question_count: int = Field(default=3, ge=1, description="Questions generated at start")
    time_limit_minutes: int = Field(default=60, ge=1, description="Maximum duration in minutes")
    question_configs: list[QuestionConfig] = Field(
        default_factory=lambda: [QuestionConfig()],
        min_length=1,
        description="Slot configurations; the last one is reused for later slots",
    )

    @model_validator(mode="after")
    def _initial_within_quota(self) -> InterviewPolicy:
        if self.initial_question_count > self.total_questions_to_ask:
            raise ValueError("initial_question_count cannot exceed total_questions_to_ask")
        return self

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> InterviewPolicy:
        """Build the policy from application settings."""
        settings = settings or get_settings()
        return cls(
            total_questions_to_ask=settings.total_questions_to_ask,
            initial_question_count=settings.initial_question_count,
            time_limit_minutes=settings.time_limit_minutes,
            question_configs=settings.question_configs,
        )

    @property
    def time_limit(self) -> timedelta:
        return timedelta(minutes=self.time_limit_minutes)

    def slot_config(self, sequence_number: int) -> QuestionConfig:
        """
        Get the configuration of the slot at ``sequence_number`` (1-based).

        Args:
            sequence_number: Position of the question in the interview.

        Returns:
            The slot's configuration.
        """
        if sequence_number < 1:
            raise ValueError("sequence_number must be positive")
        index = min(sequence_number, len(self.question_configs)) - 1
        return self.question_configs[index]

    def initial_configs(self) -> list[QuestionConfig]:
        """Configurations of the questions generated when the interview starts."""
        return [self.slot_config(n) for n in range(1, self.initial_question_count + 1)]

    def total_marks(self) -> int:
        """Marks available across every slot of the quota."""
        return sum(
            self.slot_config(n).marks for n in range(1, self.total_questions_to_ask + 1)
        )

    def quota_reached(self, question_count: int, quota: int | None = None) -> bool:
        """
        Check whether ``question_count`` rows exhaust the quota.

        Args:
            question_count: Question rows of the interview, reserved ones included.
            quota: Quota stored on the interview (defaults to the policy's).
        """
        limit = self.total_questions_to_ask if quota is None else quota
        return question_count >= limit

    def time_exceeded(self, started_at: datetime | None, now: datetime) -> bool:
        """Check whether more than the time limit has passed since ``started_at``."""
        if started_at is None:
            return False
        return as_utc(now) - as_utc(started_at) > self.time_limit

    def resume_cache_ttl_millis(self, grace_seconds: int = 0) -> int:
        """Lifetime of the cached resume: the time limit plus ``grace_seconds``."""
        return int((self.time_limit.total_seconds() + grace_seconds) * 1000)
