"""
Interview orchestrator.

Coordinates the interview session: seeds an interview together with its
first AI-generated questions, records answers, reserves the next question
slot and hands its generation to the background worker, and ends the
session when the question quota or the time limit is reached.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recruitment_interviews.config import Settings, get_settings
from recruitment_interviews.db.models import InterviewModel
from recruitment_interviews.db.repository import (
    ApplicationRepository,
    InterviewQuestionRepository,
    InterviewRepository,
)
from recruitment_interviews.db.session import transaction
from recruitment_interviews.errors import (
    ConflictError,
    InfrastructureError,
    InterviewServiceError,
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from recruitment_interviews.models.llm_client import LLMClient
from recruitment_interviews.models.llm_question_generator import LLMQuestionGenerator
from recruitment_interviews.models.question_client import HttpQuestionClient, QuestionGenerationClient
from recruitment_interviews.orchestrator.background import GenerationWorker
from recruitment_interviews.orchestrator.locks import KeyedLocks
from recruitment_interviews.orchestrator.policy import InterviewPolicy
from recruitment_interviews.resume.cache import ResumeCache, create_resume_cache, resume_cache_key
from recruitment_interviews.resume.extractor import HttpResumeExtractor, ResumeExtractor
from recruitment_interviews.schemas import (
    ApplicationContext,
    GeneratedQuestion,
    InterviewSession,
    InterviewStatus,
    InterviewView,
    JobContext,
    QAPair,
    QuestionConfig,
    QuestionStatus,
    QuestionView,
    ServiceResult,
)

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_QUESTION = (
    "Is there anything else about your experience that is relevant to this role "
    "and that you would like to tell us about?"
)

FALLBACK_QUESTIONS: dict[str, str] = {
    "introduction": "Tell me about yourself and your professional background.",
    "technical": "Can you describe a challenging technical problem you solved recently?",
    "problem_solving": "Walk me through how you approached the hardest problem in your last project.",
    "behavioral": "Tell me about a time when you had to work under pressure.",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Reservation:
    """A question slot claimed during a submission, awaiting its text."""

    interview_id: UUID
    question_id: UUID
    sequence_number: int
    config: QuestionConfig


class InterviewOrchestrator:
    """
    Orchestrates interview sessions.

    Store access happens in short transactions created from
    ``session_factory``. Follow-up questions are produced by the
    background worker, so answer submission never waits on the AI
    service.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        question_client: QuestionGenerationClient,
        resume_extractor: ResumeExtractor,
        resume_cache: ResumeCache,
        policy: InterviewPolicy | None = None,
        worker: GenerationWorker | None = None,
        clock: Callable[[], datetime] = _utcnow,
        max_generation_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
        cache_grace_seconds: int | None = None,
    ) -> None:
        """
        Initialize the interview orchestrator.

        Args:
            session_factory: Factory for database sessions.
            question_client: AI question generator.
            resume_extractor: Source of resume text at interview start.
            resume_cache: Cache of resume text for follow-up generation.
            policy: Session policy (built from config if not provided).
            worker: Background worker (created from config if not provided).
            clock: Source of the current UTC time.
            max_generation_attempts: Follow-up attempts before falling back.
            retry_delay_seconds: Base delay between follow-up attempts.
            cache_grace_seconds: Resume cache lifetime beyond the time limit.
        """
        settings = get_settings()
        self._session_factory = session_factory
        self._question_client = question_client
        self._resume_extractor = resume_extractor
        self._resume_cache = resume_cache
        self._policy = policy or InterviewPolicy.from_settings(settings)
        self._worker = worker or GenerationWorker(settings.background_concurrency)
        self._clock = clock
        self._max_generation_attempts = (
            max_generation_attempts or settings.background_max_attempts
        )
        self._retry_delay_seconds = (
            settings.background_retry_delay_seconds
            if retry_delay_seconds is None
            else retry_delay_seconds
        )
        self._cache_grace_seconds = (
            settings.resume_cache_grace_seconds
            if cache_grace_seconds is None
            else cache_grace_seconds
        )
        self._application_locks = KeyedLocks()
        self._interview_locks = KeyedLocks()

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> InterviewOrchestrator:
        """
        Build an orchestrator with the collaborators selected by configuration.

        Args:
            session_factory: Factory for database sessions.
            settings: Application settings (uses cached settings if None).

        Returns:
            A ready orchestrator.
        """
        settings = settings or get_settings()
        question_client: QuestionGenerationClient
        if settings.ai_backend == "llm":
            question_client = LLMQuestionGenerator(
                LLMClient(
                    model=settings.llm_model_name,
                    base_url=settings.llm_base_url,
                    timeout=settings.llm_timeout,
                )
            )
        else:
            question_client = HttpQuestionClient(
                base_url=settings.ai_service_url,
                timeout=settings.ai_timeout,
                max_retries=settings.ai_max_retries,
            )

        return cls(
            session_factory=session_factory,
            question_client=question_client,
            resume_extractor=HttpResumeExtractor(
                base_url=settings.resume_storage_base_url,
                timeout=settings.resume_download_timeout,
            ),
            resume_cache=create_resume_cache(settings),
            policy=InterviewPolicy.from_settings(settings),
            worker=GenerationWorker(settings.background_concurrency),
            max_generation_attempts=settings.background_max_attempts,
            retry_delay_seconds=settings.background_retry_delay_seconds,
            cache_grace_seconds=settings.resume_cache_grace_seconds,
        )

    @property
    def policy(self) -> InterviewPolicy:
        """Get the session policy."""
        return self._policy

    @property
    def worker(self) -> GenerationWorker:
        """Get the background generation worker."""
        return self._worker

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start_interview(self, application_id: UUID) -> ServiceResult[InterviewSession]:
        """
        Start the interview of an application, or return the running one.

        Args:
            application_id: Application to interview for.

        Returns:
            Result holding the interview and its seeded questions.
        """
        return await self._run_operation(
            "start interview",
            lambda: self._start_interview(application_id),
            success_status=201,
        )

    async def submit_and_generate_question(
        self,
        question_id: UUID,
        answer_text: str,
        media_ref: str | None = None,
    ) -> ServiceResult[InterviewSession]:
        """
        Record an answer and line up the next question.

        Returns as soon as the next slot is reserved; its text is generated
        in the background.

        Args:
            question_id: Question being answered.
            answer_text: The candidate's answer.
            media_ref: Optional reference to an uploaded recording.

        Returns:
            Result holding the interview status and its visible questions.
        """
        return await self._run_operation(
            "submit answer",
            lambda: self._submit_answer(question_id, answer_text, media_ref),
        )

    async def get_interview(self, interview_id: UUID) -> ServiceResult[InterviewSession]:
        """
        Get an interview with its visible questions.

        Args:
            interview_id: Interview UUID.

        Returns:
            Result holding the interview session.
        """
        return await self._run_operation("get interview", lambda: self._get_interview(interview_id))

    async def close(self, cancel_pending: bool = True) -> None:
        """
        Stop the background worker and release client resources.

        Args:
            cancel_pending: Cancel follow-up generations still running.
        """
        await self._worker.shutdown(cancel=cancel_pending)
        await self._question_client.close()
        await self._resume_extractor.close()
        await self._resume_cache.close()

    async def _run_operation(
        self,
        name: str,
        operation: Callable[[], Awaitable[InterviewSession]],
        success_status: int = 200,
    ) -> ServiceResult[InterviewSession]:
        """Run an operation, turning service errors into a failed result."""
        try:
            session = await operation()
        except InterviewServiceError as e:
            log = logger.error if e.status_code >= 500 else logger.info
            log(f"Failed to {name}: {e}")
            return ServiceResult[InterviewSession].fail(e)
        except SQLAlchemyError as e:
            logger.error(f"Database error during {name}: {e}", exc_info=True)
            return ServiceResult[InterviewSession].fail(
                InfrastructureError(f"Database error during {name}")
            )
        except Exception as e:
            logger.error(f"Unexpected error during {name}: {e}", exc_info=True)
            return ServiceResult[InterviewSession].fail(
                InfrastructureError(f"Unexpected error during {name}")
            )
        return ServiceResult[InterviewSession].ok(session, status_code=success_status)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def _start_interview(self, application_id: UUID) -> InterviewSession:
        async with self._application_locks.hold(application_id):
            try:
                return await self._create_interview(application_id)
            except IntegrityError:
                # Another process created the running interview first.
                logger.info(f"Interview for application {application_id} was started concurrently")
                existing = await self._load_running_interview(application_id)
                if existing is None:
                    raise
                return existing

    async def _load_running_interview(self, application_id: UUID) -> InterviewSession | None:
        async with self._session_factory() as session:
            interview = await InterviewRepository(session).get_in_progress_for_application(
                application_id
            )
            if interview is None:
                return None
            return await self._session_view(session, interview)

    async def _create_interview(self, application_id: UUID) -> InterviewSession:
        cache_key = resume_cache_key(application_id)
        cache_written = False
        try:
            async with transaction(self._session_factory) as session:
                interviews = InterviewRepository(session)

                existing = await interviews.get_in_progress_for_application(application_id)
                if existing is not None:
                    logger.info(f"Returning running interview {existing.id} for application {application_id}")
                    return await self._session_view(session, existing)

                application, job = await self._load_application(session, application_id)

                interview = await interviews.create_in_progress(
                    application=application,
                    job_id=job.job_id,
                    total_questions_to_ask=self._policy.total_questions_to_ask,
                    total_marks=self._policy.total_marks(),
                    started_at=self._clock(),
                )

                resume_text = await self._resume_extractor.extract(application.resume_link)
                await self._resume_cache.set(
                    cache_key,
                    resume_text,
                    ttl_millis=self._policy.resume_cache_ttl_millis(self._cache_grace_seconds),
                )
                cache_written = True

                configs = self._policy.initial_configs()
                generated = await self._question_client.generate_interview_questions(
                    resume_text=resume_text,
                    skill_map=application.skill_description_map,
                    job_context=job,
                    prior_qa_pairs=[],
                    question_configs=configs,
                )
                if len(generated) != len(configs):
                    raise UpstreamServiceError(
                        f"Expected {len(configs)} initial questions, got {len(generated)}",
                        business_message="Invalid Response from AI Service",
                    )

                questions = await InterviewQuestionRepository(session).create_batch(
                    interview.id, generated, configs
                )
                result = InterviewSession(
                    interview=InterviewView.model_validate(interview),
                    questions=[QuestionView.model_validate(q) for q in questions],
                )
        except BaseException:
            if cache_written:
                await self._discard_cached_resume(cache_key)
            raise

        logger.info(
            f"Started interview {result.interview.id} for application {application_id} "
            f"with {len(result.questions)} questions"
        )
        return result

    async def _load_application(
        self,
        session: AsyncSession,
        application_id: UUID,
    ) -> tuple[ApplicationContext, JobContext]:
        matches = await ApplicationRepository(session).find_by_params(id=application_id)
        if not matches:
            raise NotFoundError(
                f"Application {application_id} not found",
                business_message="Application not found",
            )
        application = matches[0]
        job = application.job
        if job is None:
            raise NotFoundError(
                f"Application {application_id} has no job",
                business_message="Job not found for application",
            )
        return application, job

    async def _discard_cached_resume(self, cache_key: str) -> None:
        try:
            await self._resume_cache.delete(cache_key)
        except InterviewServiceError as e:
            logger.warning(f"Could not remove {cache_key} after failed start: {e}")

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def _submit_answer(
        self,
        question_id: UUID,
        answer_text: str,
        media_ref: str | None,
    ) -> InterviewSession:
        if not answer_text or not answer_text.strip():
            raise ValidationError(
                "Answer text must not be empty",
                business_message="Question ID and Answer Text are required",
            )

        async with self._session_factory() as session:
            question = await InterviewQuestionRepository(session).get_by_id(question_id)
            if question is None:
                raise NotFoundError(
                    f"Question {question_id} not found",
                    business_message="Question not found",
                )
            interview_id = question.interview_id

        async with self._interview_locks.hold(interview_id):
            result, reservation = await self._record_answer_and_reserve(
                question_id, answer_text, media_ref
            )

        if reservation is not None:
            self._worker.submit(
                f"follow-up:{reservation.interview_id}:{reservation.sequence_number}",
                lambda: self._generate_follow_up(reservation),
            )
        return result

    async def _record_answer_and_reserve(
        self,
        question_id: UUID,
        answer_text: str,
        media_ref: str | None,
    ) -> tuple[InterviewSession, Reservation | None]:
        """Record the answer, then complete the interview or reserve the next slot."""
        async with transaction(self._session_factory) as session:
            questions = InterviewQuestionRepository(session)
            interviews = InterviewRepository(session)

            question = await questions.get_by_id(question_id)
            if question is None:
                raise NotFoundError(
                    f"Question {question_id} not found",
                    business_message="Question not found",
                )
            interview = await interviews.get_for_update(question.interview_id)
            if interview is None:
                raise NotFoundError(
                    f"Interview {question.interview_id} not found",
                    business_message="Interview not found",
                )
            if interview.status != InterviewStatus.IN_PROGRESS:
                raise ConflictError(
                    f"Interview {interview.id} is {interview.status.value}",
                    business_message="Interview is not in progress",
                )
            if question.status == QuestionStatus.RESERVED:
                raise ConflictError(
                    f"Question {question_id} has not been generated yet",
                    business_message="Question is not ready yet",
                )
            if question.status == QuestionStatus.ANSWERED:
                raise ConflictError(
                    f"Question {question_id} was already answered",
                    business_message="Question already answered",
                )

            await questions.record_answer(question, answer_text, media_ref)

            now = self._clock()
            question_count = await questions.count_for_interview(interview.id)
            quota_reached = self._policy.quota_reached(
                question_count, interview.total_questions_to_ask
            )
            if quota_reached and await questions.count_unanswered(interview.id) == 0:
                await self._complete(interviews, interview, now, "question quota reached")
                return await self._session_view(session, interview), None
            if self._policy.time_exceeded(interview.started_at, now):
                await self._complete(interviews, interview, now, "time limit exceeded")
                return await self._session_view(session, interview), None
            if quota_reached:
                # Every slot exists already; the remaining ones await answers.
                return await self._session_view(session, interview), None

            next_sequence = question_count + 1
            config = self._policy.slot_config(next_sequence)
            try:
                reserved = await questions.reserve(interview.id, next_sequence, config)
            except IntegrityError as e:
                raise ConflictError(
                    f"Sequence number {next_sequence} of interview {interview.id} is taken",
                    business_message="Concurrent submission detected, please retry",
                ) from e

            logger.info(f"Reserved question {next_sequence} of interview {interview.id}")
            result = await self._session_view(session, interview)

        return result, Reservation(
            interview_id=interview.id,
            question_id=reserved.id,
            sequence_number=next_sequence,
            config=config,
        )

    async def _complete(
        self,
        interviews: InterviewRepository,
        interview: InterviewModel,
        now: datetime,
        reason: str,
    ) -> None:
        await interviews.mark_completed(interview, now)
        logger.info(f"Interview {interview.id} completed: {reason}")

    # ------------------------------------------------------------------
    # Background follow-up generation
    # ------------------------------------------------------------------

    async def _generate_follow_up(self, reservation: Reservation) -> str:
        """
        Fill a reserved slot. Runs on the background worker.

        An unexpected failure falls back to a canned question. If even that
        cannot be written the interview is completed, so a hidden reserved
        row never blocks it.

        Returns:
            Outcome label: "generated", "fallback", "force_completed" or "skipped".
        """
        try:
            return await self._fill_reserved_slot(reservation)
        except Exception as e:
            logger.error(
                f"Follow-up generation for interview {reservation.interview_id} failed unexpectedly: {e}",
                exc_info=True,
            )

        try:
            return await self._fulfil_with_fallback(reservation)
        except Exception as e:
            logger.error(
                f"Could not write a fallback question for interview {reservation.interview_id}: {e}",
                exc_info=True,
            )

        completed = await self._force_complete(reservation.interview_id, "follow-up generation failed")
        return "force_completed" if completed else "skipped"

    async def _fill_reserved_slot(self, reservation: Reservation) -> str:
        async with self._session_factory() as session:
            interview = await InterviewRepository(session).get_by_id(reservation.interview_id)
            if interview is None or interview.status != InterviewStatus.IN_PROGRESS:
                return "skipped"
            application_id = interview.application_id
            matches = await ApplicationRepository(session).find_by_params(id=application_id)
            answered = await InterviewQuestionRepository(session).list_for_interview(interview.id)

        prior_pairs = [
            QAPair(question=q.question_text, answer=q.answer)
            for q in answered
            if q.question_text and q.answer
        ]

        try:
            resume_text = await self._resume_cache.get(resume_cache_key(application_id))
        except InfrastructureError as e:
            logger.error(f"Resume cache unavailable for interview {reservation.interview_id}: {e}")
            return await self._fulfil_with_fallback(reservation)

        if not resume_text:
            logger.warning(
                f"Resume text for application {application_id} expired or missing; "
                f"completing interview {reservation.interview_id}"
            )
            completed = await self._force_complete(reservation.interview_id, "resume cache miss")
            return "force_completed" if completed else "skipped"

        application = matches[0] if matches else None
        job = application.job if application is not None else None
        if application is None or job is None:
            logger.warning(f"Application {application_id} or its job disappeared; using fallback")
            return await self._fulfil_with_fallback(reservation)

        generated = await self._request_follow_up(reservation, application, job, resume_text, prior_pairs)
        if generated is None:
            return await self._fulfil_with_fallback(reservation)

        written = await self._fulfil(
            reservation,
            generated.question,
            generated.estimated_time_minutes,
            is_ai_generated=True,
        )
        return "generated" if written else "skipped"

    async def _request_follow_up(
        self,
        reservation: Reservation,
        application: ApplicationContext,
        job: JobContext,
        resume_text: str,
        prior_pairs: list[QAPair],
    ) -> GeneratedQuestion | None:
        """Ask the generator for one question, retrying upstream failures."""
        for attempt in range(1, self._max_generation_attempts + 1):
            try:
                questions = await self._question_client.generate_interview_questions(
                    resume_text=resume_text,
                    skill_map=application.skill_description_map,
                    job_context=job,
                    prior_qa_pairs=prior_pairs,
                    question_configs=[reservation.config],
                )
            except UpstreamServiceError as e:
                logger.warning(
                    f"Follow-up generation for interview {reservation.interview_id} "
                    f"failed (attempt {attempt}/{self._max_generation_attempts}): {e}"
                )
                if attempt < self._max_generation_attempts:
                    self._worker.stats.outcomes["retry"] += 1
                    await asyncio.sleep(self._retry_delay_seconds * attempt)
                continue
            if len(questions) == 1:
                return questions[0]
            logger.warning(f"Generator returned {len(questions)} follow-up questions, expected 1")
        return None

    async def _fulfil_with_fallback(self, reservation: Reservation) -> str:
        text = FALLBACK_QUESTIONS.get(reservation.config.category, DEFAULT_FALLBACK_QUESTION)
        written = await self._fulfil(
            reservation,
            text,
            reservation.config.expected_time_minutes,
            is_ai_generated=False,
        )
        if written:
            logger.warning(
                f"Question {reservation.sequence_number} of interview {reservation.interview_id} "
                f"filled with a fallback question"
            )
        return "fallback" if written else "skipped"

    async def _fulfil(
        self,
        reservation: Reservation,
        question_text: str,
        estimated_time_minutes: int,
        is_ai_generated: bool,
    ) -> bool:
        """Write text into the reserved slot unless the interview has ended."""
        async with self._interview_locks.hold(reservation.interview_id):
            async with transaction(self._session_factory) as session:
                interview = await InterviewRepository(session).get_for_update(
                    reservation.interview_id
                )
                if interview is None or interview.status != InterviewStatus.IN_PROGRESS:
                    logger.info(
                        f"Interview {reservation.interview_id} ended before question "
                        f"{reservation.sequence_number} was generated"
                    )
                    return False

                questions = InterviewQuestionRepository(session)
                question = await questions.get_by_id(reservation.question_id)
                if question is None or question.status != QuestionStatus.RESERVED:
                    return False
                await questions.fulfil(
                    question,
                    question_text,
                    estimated_time_minutes,
                    is_ai_generated=is_ai_generated,
                )

        logger.info(
            f"Question {reservation.sequence_number} of interview {reservation.interview_id} ready"
        )
        return True

    async def _force_complete(self, interview_id: UUID, reason: str) -> bool:
        async with self._interview_locks.hold(interview_id):
            async with transaction(self._session_factory) as session:
                interviews = InterviewRepository(session)
                interview = await interviews.get_for_update(interview_id)
                if interview is None or interview.status != InterviewStatus.IN_PROGRESS:
                    return False
                await self._complete(interviews, interview, self._clock(), reason)
        return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def _get_interview(self, interview_id: UUID) -> InterviewSession:
        async with self._session_factory() as session:
            interview = await InterviewRepository(session).get_by_id(interview_id)
            if interview is None:
                raise NotFoundError(
                    f"Interview {interview_id} not found",
                    business_message="Interview not found",
                )
            return await self._session_view(session, interview)

    @staticmethod
    async def _session_view(session: AsyncSession, interview: InterviewModel) -> InterviewSession:
        """Build the caller-facing view; reserved slots are left out."""
        questions = await InterviewQuestionRepository(session).list_for_interview(interview.id)
        return InterviewSession(
            interview=InterviewView.model_validate(interview),
            questions=[QuestionView.model_validate(q) for q in questions],
        )
