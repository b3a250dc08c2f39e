"""
Repository pattern for database operations.

Provides a clean abstraction over SQLAlchemy for the application data
provider and the interview and question stores.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from recruitment_interviews.db.models import (
    ApplicationModel,
    Base,
    InterviewModel,
    InterviewQuestionModel,
    JobModel,
)
from recruitment_interviews.schemas import (
    ApplicationContext,
    GeneratedQuestion,
    InterviewStatus,
    JobContext,
    QuestionConfig,
    QuestionStatus,
)

T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[T]:
        """Get the model class for this repository."""
        ...

    async def get_by_id(self, entity_id: UUID) -> T | None:
        """
        Get an entity by its ID.

        Args:
            entity_id: The entity's UUID.

        Returns:
            The entity if found, None otherwise.
        """
        return await self._session.get(self._model_class, entity_id)

    async def create(self, entity: T) -> T:
        """
        Create a new entity.

        Args:
            entity: The entity to create.

        Returns:
            The created entity.
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def update(self, entity: T) -> T:
        """
        Flush pending changes of an existing entity.

        Args:
            entity: The entity to update.

        Returns:
            The updated entity.
        """
        await self._session.flush()
        await self._session.refresh(entity)
        return entity


class ApplicationRepository(BaseRepository[ApplicationModel]):
    """Read-only provider of application and job context."""

    @property
    def _model_class(self) -> type[ApplicationModel]:
        """Get the model class."""
        return ApplicationModel

    async def find_by_params(
        self,
        id: UUID | None = None,
        candidate_id: UUID | None = None,
        job_id: UUID | None = None,
        limit: int = 100,
    ) -> list[ApplicationContext]:
        """
        Find applications matching the given fields, with their jobs embedded.

        Args:
            id: Application UUID.
            candidate_id: Candidate UUID.
            job_id: Job UUID.
            limit: Maximum number to return.

        Returns:
            Matching applications as context objects.
        """
        stmt = select(ApplicationModel).options(selectinload(ApplicationModel.job))
        if id is not None:
            stmt = stmt.where(ApplicationModel.id == id)
        if candidate_id is not None:
            stmt = stmt.where(ApplicationModel.candidate_id == candidate_id)
        if job_id is not None:
            stmt = stmt.where(ApplicationModel.job_id == job_id)
        stmt = stmt.order_by(ApplicationModel.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [self.to_context(application) for application in result.scalars().all()]

    @staticmethod
    def to_context(application: ApplicationModel) -> ApplicationContext:
        """
        Convert an ApplicationModel (job loaded) to an ApplicationContext.

        Args:
            application: Database application model.

        Returns:
            ApplicationContext schema.
        """
        job: JobModel | None = application.job
        return ApplicationContext(
            application_id=application.id,
            candidate_id=application.candidate_id,
            resume_link=application.resume_link,
            skill_description_map={
                str(skill): str(description)
                for skill, description in (application.skill_description_map or {}).items()
            },
            job=(
                JobContext(
                    job_id=job.id,
                    title=job.title,
                    objective=job.objective or "",
                    goals=job.goals or "",
                    job_description=job.job_description or "",
                    skills=list(job.skills or []),
                )
                if job is not None
                else None
            ),
        )


class InterviewRepository(BaseRepository[InterviewModel]):
    """Repository for interview operations."""

    @property
    def _model_class(self) -> type[InterviewModel]:
        """Get the model class."""
        return InterviewModel

    async def get_in_progress_for_application(
        self,
        application_id: UUID,
    ) -> InterviewModel | None:
        """
        Get the running interview of an application.

        Args:
            application_id: Application UUID.

        Returns:
            The IN_PROGRESS interview if one exists, None otherwise.
        """
        stmt = select(InterviewModel).where(
            InterviewModel.application_id == application_id,
            InterviewModel.status == InterviewStatus.IN_PROGRESS,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, interview_id: UUID) -> InterviewModel | None:
        """
        Get an interview and lock its row until the transaction ends.

        Concurrent reservations against the same interview queue on this
        lock, so the question count they read is current.

        Args:
            interview_id: Interview UUID.

        Returns:
            The locked interview if found, None otherwise.
        """
        stmt = (
            select(InterviewModel)
            .where(InterviewModel.id == interview_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_in_progress(
        self,
        application: ApplicationContext,
        job_id: UUID,
        total_questions_to_ask: int,
        total_marks: int,
        started_at: datetime,
    ) -> InterviewModel:
        """
        Create a running interview for an application.

        Args:
            application: Application context.
            job_id: Job the interview is for.
            total_questions_to_ask: Question quota.
            total_marks: Marks available across all slots.
            started_at: Start timestamp.

        Returns:
            The created interview model.
        """
        interview = InterviewModel(
            job_id=job_id,
            candidate_id=application.candidate_id,
            application_id=application.application_id,
            status=InterviewStatus.IN_PROGRESS,
            total_questions_to_ask=total_questions_to_ask,
            started_at=started_at,
            total_marks=total_marks,
            obtained_marks=0,
            is_checked=False,
        )
        return await self.create(interview)

    async def mark_completed(
        self,
        interview: InterviewModel,
        completed_at: datetime,
    ) -> InterviewModel:
        """
        Move an interview to COMPLETED and stamp completed_at.

        Args:
            interview: Interview to complete.
            completed_at: Completion timestamp.

        Returns:
            The updated interview.

        Raises:
            ValueError: If the interview cannot move to COMPLETED.
        """
        if not interview.status.can_transition_to(InterviewStatus.COMPLETED):
            raise ValueError(f"Cannot complete interview in status {interview.status.value}")
        interview.status = InterviewStatus.COMPLETED
        interview.completed_at = completed_at
        return await self.update(interview)


class InterviewQuestionRepository(BaseRepository[InterviewQuestionModel]):
    """Repository for interview question operations."""

    @property
    def _model_class(self) -> type[InterviewQuestionModel]:
        """Get the model class."""
        return InterviewQuestionModel

    async def count_for_interview(self, interview_id: UUID) -> int:
        """
        Count every question row of an interview, reserved ones included.

        Args:
            interview_id: Interview UUID.

        Returns:
            Number of question rows.
        """
        stmt = select(func.count(InterviewQuestionModel.id)).where(
            InterviewQuestionModel.interview_id == interview_id
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def count_unanswered(self, interview_id: UUID) -> int:
        """
        Count the question rows of an interview still waiting for an answer.

        Args:
            interview_id: Interview UUID.

        Returns:
            Number of reserved or generated questions.
        """
        stmt = select(func.count(InterviewQuestionModel.id)).where(
            InterviewQuestionModel.interview_id == interview_id,
            InterviewQuestionModel.status != QuestionStatus.ANSWERED,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def list_for_interview(
        self,
        interview_id: UUID,
        include_reserved: bool = False,
    ) -> list[InterviewQuestionModel]:
        """
        List the questions of an interview ordered by sequence number.

        Args:
            interview_id: Interview UUID.
            include_reserved: Whether to include slots still awaiting text.

        Returns:
            List of questions.
        """
        stmt = select(InterviewQuestionModel).where(
            InterviewQuestionModel.interview_id == interview_id
        )
        if not include_reserved:
            stmt = stmt.where(InterviewQuestionModel.status != QuestionStatus.RESERVED)
        stmt = stmt.order_by(InterviewQuestionModel.sequence_number)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create_batch(
        self,
        interview_id: UUID,
        questions: Sequence[GeneratedQuestion],
        configs: Sequence[QuestionConfig],
        first_sequence_number: int = 1,
    ) -> list[InterviewQuestionModel]:
        """
        Persist generated questions with consecutive sequence numbers.

        Args:
            interview_id: Interview UUID.
            questions: Generated questions, one per config.
            configs: Slot configurations matching ``questions``.
            first_sequence_number: Sequence number of the first question.

        Returns:
            The created question models.
        """
        models = [
            InterviewQuestionModel(
                interview_id=interview_id,
                question_text=question.question,
                sequence_number=first_sequence_number + offset,
                status=QuestionStatus.GENERATED,
                is_ai_generated=True,
                estimated_time_minutes=question.estimated_time_minutes,
                category=config.category,
                total_marks=config.marks,
                obtained_marks=0,
                is_checked=False,
            )
            for offset, (question, config) in enumerate(zip(questions, configs, strict=True))
        ]
        self._session.add_all(models)
        await self._session.flush()
        return models

    async def reserve(
        self,
        interview_id: UUID,
        sequence_number: int,
        config: QuestionConfig,
    ) -> InterviewQuestionModel:
        """
        Insert a reserved slot that claims ``sequence_number``.

        Args:
            interview_id: Interview UUID.
            sequence_number: Sequence number to claim.
            config: Configuration of the slot.

        Returns:
            The reserved question model.
        """
        reserved = InterviewQuestionModel(
            interview_id=interview_id,
            question_text=None,
            sequence_number=sequence_number,
            status=QuestionStatus.RESERVED,
            is_ai_generated=True,
            estimated_time_minutes=config.expected_time_minutes,
            category=config.category,
            total_marks=config.marks,
            obtained_marks=0,
            is_checked=False,
        )
        return await self.create(reserved)

    async def fulfil(
        self,
        question: InterviewQuestionModel,
        question_text: str,
        estimated_time_minutes: int,
        is_ai_generated: bool = True,
    ) -> InterviewQuestionModel:
        """
        Fill a reserved slot in place, keeping its id and sequence number.

        Args:
            question: The reserved question.
            question_text: Generated question text.
            estimated_time_minutes: Expected time to answer.
            is_ai_generated: Whether the text came from the generator.

        Returns:
            The updated question.

        Raises:
            ValueError: If the question is not reserved.
        """
        if question.status != QuestionStatus.RESERVED:
            raise ValueError(f"Question {question.id} is not reserved")
        question.question_text = question_text
        question.estimated_time_minutes = estimated_time_minutes
        question.is_ai_generated = is_ai_generated
        question.status = QuestionStatus.GENERATED
        return await self.update(question)

    async def record_answer(
        self,
        question: InterviewQuestionModel,
        answer: str,
        media_ref: str | None = None,
    ) -> InterviewQuestionModel:
        """
        Store the candidate's answer on a question.

        Args:
            question: The answered question.
            answer: Answer text.
            media_ref: Optional reference to uploaded media.

        Returns:
            The updated question.
        """
        question.answer = answer
        question.media_ref = media_ref
        question.status = QuestionStatus.ANSWERED
        return await self.update(question)
