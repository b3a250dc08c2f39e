"""
SQLAlchemy models for database persistence.

Defines the schema for interviews and interview questions, plus the
read-only application and job rows the interview flow depends on.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from recruitment_interviews.schemas import InterviewStatus, QuestionStatus


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class JobModel(Base):
    """Database model for job positions."""

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    objective: Mapped[str | None] = mapped_column(Text, nullable=True)
    goals: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    skills: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

    applications: Mapped[list["ApplicationModel"]] = relationship(back_populates="job")


class ApplicationModel(Base):
    """Database model for job applications."""

    __tablename__ = "applications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    candidate_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    job_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("jobs.id"),
        nullable=True,
    )
    skill_description_map: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    resume_link: Mapped[str] = mapped_column(String(1024), nullable=False)
    cover_letter: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

    job: Mapped["JobModel | None"] = relationship(back_populates="applications")


class InterviewModel(Base):
    """Database model for interviews."""

    __tablename__ = "interviews"
    __table_args__ = (
        # At most one running interview per application.
        Index(
            "uq_interviews_in_progress_application",
            "application_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    candidate_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    application_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("applications.id"),
        nullable=False,
        index=True,
    )
    status: Mapped[InterviewStatus] = mapped_column(
        Enum(InterviewStatus, native_enum=False, length=20),
        default=InterviewStatus.PENDING,
        nullable=False,
    )
    total_questions_to_ask: Mapped[int] = mapped_column(Integer, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_marks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    obtained_marks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

    questions: Mapped[list["InterviewQuestionModel"]] = relationship(
        back_populates="interview",
        cascade="all, delete-orphan",
        order_by="InterviewQuestionModel.sequence_number",
    )


class InterviewQuestionModel(Base):
    """Database model for interview questions."""

    __tablename__ = "interview_questions"
    __table_args__ = (
        UniqueConstraint(
            "interview_id",
            "sequence_number",
            name="uq_interview_questions_sequence",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    interview_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("interviews.id"),
        nullable=False,
        index=True,
    )
    # Null while the slot is reserved.
    question_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[QuestionStatus] = mapped_column(
        Enum(QuestionStatus, native_enum=False, length=20),
        default=QuestionStatus.GENERATED,
        nullable=False,
    )
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    estimated_time_minutes: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="general", nullable=False)
    total_marks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    obtained_marks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

    interview: Mapped["InterviewModel"] = relationship(back_populates="questions")
