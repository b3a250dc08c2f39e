"""
Shared fixtures for the interview service tests.

Database tests run against SQLite (aiosqlite) in a temporary file; the AI
generator and resume extractor are replaced with in-process fakes.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from recruitment_interviews.db import (
    ApplicationModel,
    JobModel,
    create_engine,
    create_session_factory,
    init_models,
    transaction,
)
from recruitment_interviews.errors import UpstreamServiceError
from recruitment_interviews.models.question_client import QuestionGenerationClient
from recruitment_interviews.orchestrator import GenerationWorker, InterviewOrchestrator, InterviewPolicy
from recruitment_interviews.resume import InMemoryResumeCache, ResumeExtractor
from recruitment_interviews.schemas import (
    GeneratedQuestion,
    JobContext,
    QAPair,
    QuestionConfig,
)

RESUME_TEXT = "Backend engineer, 6 years of Python, PostgreSQL and Kubernetes."

SLOT_CONFIGS = [
    QuestionConfig(category="introduction", expected_time_minutes=3, marks=5),
    QuestionConfig(category="technical", expected_time_minutes=5, marks=10),
    QuestionConfig(category="technical", expected_time_minutes=5, marks=10),
    QuestionConfig(category="problem_solving", expected_time_minutes=6, marks=15),
    QuestionConfig(category="behavioral", expected_time_minutes=4, marks=10),
]


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeQuestionClient(QuestionGenerationClient):
    """Question generator returning canned questions, with failure switches."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail_times = 0
        self.fail_always = False
        self.wrong_count = False
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.closed = False

    def pause(self) -> asyncio.Event:
        """Block later calls until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    async def generate_interview_questions(
        self,
        resume_text: str,
        skill_map: dict[str, str],
        job_context: JobContext,
        prior_qa_pairs: Sequence[QAPair],
        question_configs: Sequence[QuestionConfig],
    ) -> list[GeneratedQuestion]:
        self.calls.append(
            {
                "resume_text": resume_text,
                "skill_map": dict(skill_map),
                "job_id": job_context.job_id,
                "prior_qa_pairs": list(prior_qa_pairs),
                "question_configs": list(question_configs),
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.fail_always:
            raise UpstreamServiceError("AI service returned HTTP 503")
        if self.fail_times > 0:
            self.fail_times -= 1
            raise UpstreamServiceError("AI service returned HTTP 500")

        questions = [
            GeneratedQuestion(
                question=f"Generated {config.category} question #{len(self.calls)}.{index}",
                estimated_time_minutes=config.expected_time_minutes,
            )
            for index, config in enumerate(question_configs, start=1)
        ]
        if self.wrong_count:
            questions = questions[:-1]
        return questions

    async def close(self) -> None:
        self.closed = True


class FakeResumeExtractor(ResumeExtractor):
    """Resume extractor returning fixed text."""

    def __init__(self, text: str = RESUME_TEXT) -> None:
        self.text = text
        self.fail = False
        self.links: list[str] = []

    async def extract(self, resume_link: str) -> str:
        self.links.append(resume_link)
        if self.fail:
            raise UpstreamServiceError(
                f"Resume download returned HTTP 404 for {resume_link}",
                business_message="Failed to fetch candidate resume",
            )
        return self.text


@pytest.fixture
def clock() -> ManualClock:
    """Create a manual clock."""
    return ManualClock()


@pytest.fixture
def question_client() -> FakeQuestionClient:
    """Create a fake question generator."""
    return FakeQuestionClient()


@pytest.fixture
def resume_extractor() -> FakeResumeExtractor:
    """Create a fake resume extractor."""
    return FakeResumeExtractor()


@pytest.fixture
def resume_cache() -> InMemoryResumeCache:
    """Create an in-memory resume cache."""
    return InMemoryResumeCache()


@pytest.fixture
def policy() -> InterviewPolicy:
    """Five-question policy seeded with three questions."""
    return InterviewPolicy(
        total_questions_to_ask=5,
        initial_question_count=3,
        time_limit_minutes=60,
        question_configs=SLOT_CONFIGS,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create a SQLite engine with the schema in place."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'interviews.db'}", echo=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def job_id(session_factory: async_sessionmaker[AsyncSession]) -> UUID:
    """Insert a job and return its id."""
    async with transaction(session_factory) as session:
        job = JobModel(
            title="Backend Engineer",
            objective="Own the payments platform",
            goals="Ship a reliable ledger",
            job_description="Design and run Python services on PostgreSQL.",
            skills=["Python", "PostgreSQL"],
        )
        session.add(job)
        await session.flush()
        return job.id


@pytest_asyncio.fixture
async def application_id(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: UUID,
) -> UUID:
    """Insert an application for the job and return its id."""
    async with transaction(session_factory) as session:
        application = ApplicationModel(
            candidate_id=uuid4(),
            job_id=job_id,
            skill_description_map={"Python": "Six years building APIs"},
            resume_link="resumes/candidate.pdf",
        )
        session.add(application)
        await session.flush()
        return application.id


@pytest_asyncio.fixture
async def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    question_client: FakeQuestionClient,
    resume_extractor: FakeResumeExtractor,
    resume_cache: InMemoryResumeCache,
    policy: InterviewPolicy,
    clock: ManualClock,
) -> AsyncIterator[Callable[..., InterviewOrchestrator]]:
    """Factory building orchestrators over the fakes; closes them afterwards."""
    created: list[InterviewOrchestrator] = []

    def build(
        session_policy: InterviewPolicy | None = None,
        max_generation_attempts: int = 3,
        generator: QuestionGenerationClient | None = None,
    ) -> InterviewOrchestrator:
        orchestrator = InterviewOrchestrator(
            session_factory=session_factory,
            question_client=generator or question_client,
            resume_extractor=resume_extractor,
            resume_cache=resume_cache,
            policy=session_policy or policy,
            worker=GenerationWorker(concurrency=2),
            clock=clock,
            max_generation_attempts=max_generation_attempts,
            retry_delay_seconds=0.0,
            cache_grace_seconds=0,
        )
        created.append(orchestrator)
        return orchestrator

    yield build

    for orchestrator in created:
        await orchestrator.close()


@pytest.fixture
def orchestrator(build_orchestrator: Callable[..., InterviewOrchestrator]) -> InterviewOrchestrator:
    """Orchestrator using the default five-question policy."""
    return build_orchestrator()

