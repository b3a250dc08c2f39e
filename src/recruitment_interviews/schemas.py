"""
Pydantic schemas shared across the interview service.

Defines status enums, the application/job context handed to the question
generator, the views returned to callers and the structured result type.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from recruitment_interviews.errors import InterviewServiceError

T = TypeVar("T")


class InterviewStatus(str, Enum):
    """Lifecycle of an interview. Status only moves forward."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    def can_transition_to(self, target: InterviewStatus) -> bool:
        """Check whether moving from this status to ``target`` is allowed."""
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[InterviewStatus, frozenset[InterviewStatus]] = {
    InterviewStatus.PENDING: frozenset({InterviewStatus.IN_PROGRESS}),
    InterviewStatus.IN_PROGRESS: frozenset({InterviewStatus.COMPLETED}),
    InterviewStatus.COMPLETED: frozenset(),
}


class QuestionStatus(str, Enum):
    """State of a single question slot."""

    RESERVED = "RESERVED"
    GENERATED = "GENERATED"
    ANSWERED = "ANSWERED"


class QuestionConfig(BaseModel):
    """Configuration of one question slot in an interview."""

    category: str = Field(default="general", description="Question category sent to the generator")
    expected_time_minutes: int = Field(default=4, ge=1, description="Expected time to answer in minutes")
    marks: int = Field(default=10, ge=0, description="Marks available for the question")


class JobContext(BaseModel):
    """Job information used to tailor generated questions."""

    job_id: UUID = Field(..., description="Job identifier")
    title: str = Field(..., description="Job title")
    objective: str = Field(default="", description="Objective of the role")
    goals: str = Field(default="", description="Goals of the role")
    job_description: str = Field(default="", description="Full job description")
    skills: list[str] = Field(default_factory=list, description="Skills the job asks for")

    def to_prompt_text(self) -> str:
        """Render the job as a plain text block for the question generator."""
        lines = [f"Title: {self.title}"]
        if self.objective:
            lines.append(f"Objective: {self.objective}")
        if self.goals:
            lines.append(f"Goals: {self.goals}")
        if self.skills:
            lines.append(f"Skills: {', '.join(self.skills)}")
        if self.job_description:
            lines.append(f"Description: {self.job_description}")
        return "\n".join(lines)


class ApplicationContext(BaseModel):
    """An application together with its job, as served by the data provider."""

    application_id: UUID = Field(..., description="Application identifier")
    candidate_id: UUID = Field(..., description="Candidate identifier")
    resume_link: str = Field(..., description="Object storage path of the uploaded resume")
    skill_description_map: dict[str, str] = Field(
        default_factory=dict,
        description="Candidate's own description of each claimed skill",
    )
    job: JobContext | None = Field(default=None, description="Linked job, if any")


class QAPair(BaseModel):
    """A previously asked question and the candidate's answer."""

    question: str
    answer: str


class GeneratedQuestion(BaseModel):
    """A question returned by the generator."""

    question: str = Field(..., min_length=1, description="Question text")
    estimated_time_minutes: int = Field(..., ge=1, description="Expected time to answer")


class QuestionView(BaseModel):
    """Question as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    interview_id: UUID
    question_text: str | None
    answer: str | None = None
    media_ref: str | None = None
    sequence_number: int
    status: QuestionStatus
    is_ai_generated: bool
    estimated_time_minutes: int
    category: str
    total_marks: int
    obtained_marks: int
    is_checked: bool


class InterviewView(BaseModel):
    """Interview as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_id: UUID
    candidate_id: UUID
    application_id: UUID
    status: InterviewStatus
    total_questions_to_ask: int
    started_at: datetime | None
    completed_at: datetime | None
    total_marks: int
    obtained_marks: int
    is_checked: bool


class InterviewSession(BaseModel):
    """An interview together with its visible (non-reserved) questions."""

    interview: InterviewView
    questions: list[QuestionView] = Field(default_factory=list)

    @property
    def status(self) -> InterviewStatus:
        """Current interview status."""
        return self.interview.status


class ServiceResult(BaseModel, Generic[T]):
    """
    Structured outcome of a service operation.

    Successful results carry ``data``; failures carry the error type, the
    business message and the status code instead of raising.
    """

    success: bool
    data: T | None = None
    error_type: str | None = None
    business_message: str = ""
    message: str = ""
    status_code: int = 200

    @classmethod
    def ok(cls, data: T, status_code: int = 200) -> ServiceResult[T]:
        """Build a successful result."""
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: InterviewServiceError) -> ServiceResult[T]:
        """Build a failed result from a service error."""
        return cls(
            success=False,
            error_type=error.error_type,
            business_message=error.business_message,
            message=str(error),
            status_code=error.status_code,
        )
