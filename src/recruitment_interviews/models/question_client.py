"""
AI question generation client.

Requests interview questions from the external AI service. Every request
carries one slot configuration per wanted question, and the response must
contain exactly one question per configuration.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from recruitment_interviews.config import get_settings
from recruitment_interviews.errors import UpstreamServiceError
from recruitment_interviews.schemas import (
    GeneratedQuestion,
    JobContext,
    QAPair,
    QuestionConfig,
)

logger = logging.getLogger(__name__)


class GenerateQuestionsResponse(BaseModel):
    """Response body of the question generation endpoint."""

    questions: list[GeneratedQuestion] = Field(default_factory=list)


def parse_generated_questions(
    payload: Any,
    expected_count: int,
) -> list[GeneratedQuestion]:
    """
    Validate a generator response and return its questions.

    Args:
        payload: Decoded response body.
        expected_count: Number of questions that were requested.

    Returns:
        The validated questions, in request order.

    Raises:
        UpstreamServiceError: If the payload is missing, malformed or
            holds the wrong number of questions.
    """
    if not payload:
        raise UpstreamServiceError(
            "Empty response from AI service",
            business_message="Invalid Response from AI Service",
        )
    try:
        response = GenerateQuestionsResponse.model_validate(payload)
    except PydanticValidationError as e:
        raise UpstreamServiceError(
            f"Malformed response from AI service: {e.error_count()} validation errors",
            business_message="Invalid Response from AI Service",
        ) from e

    if len(response.questions) != expected_count:
        raise UpstreamServiceError(
            f"AI service returned {len(response.questions)} questions, expected {expected_count}",
            business_message="Invalid Response from AI Service",
        )
    return response.questions


class QuestionGenerationClient(ABC):
    """Abstract base class for interview question generators."""

    @abstractmethod
    async def generate_interview_questions(
        self,
        resume_text: str,
        skill_map: dict[str, str],
        job_context: JobContext,
        prior_qa_pairs: Sequence[QAPair],
        question_configs: Sequence[QuestionConfig],
    ) -> list[GeneratedQuestion]:
        """
        Generate one question per slot configuration.

        Args:
            resume_text: Extracted resume text of the candidate.
            skill_map: Candidate's description of each claimed skill.
            job_context: Job the candidate applied for.
            prior_qa_pairs: Questions already asked with their answers.
            question_configs: One configuration per wanted question.

        Returns:
            Exactly ``len(question_configs)`` questions.

        Raises:
            UpstreamServiceError: On transport failure or invalid response.
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None


class HttpQuestionClient(QuestionGenerationClient):
    """
    Question generator backed by the AI service's HTTP API.

    Posts to ``/generate-questions`` and validates the response shape and
    question count before returning.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the AI service client.

        Args:
            base_url: AI service base URL (uses config if not provided).
            timeout: Request timeout in seconds (uses config if not provided).
            max_retries: Retries on transport failure (uses config if not provided).
            transport: Optional httpx transport, e.g. for tests.
        """
        settings = get_settings()
        self._base_url = base_url or settings.ai_service_url
        self._timeout = timeout or settings.ai_timeout
        self._max_retries = settings.ai_max_retries if max_retries is None else max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _build_payload(
        resume_text: str,
        skill_map: dict[str, str],
        job_context: JobContext,
        prior_qa_pairs: Sequence[QAPair],
        question_configs: Sequence[QuestionConfig],
    ) -> dict[str, Any]:
        return {
            "cv_data": resume_text,
            "job_description": job_context.to_prompt_text(),
            "skill_description_map": skill_map,
            "previous_questions": [pair.model_dump() for pair in prior_qa_pairs],
            "expected_questions_config": [
                {
                    "category": config.category,
                    "expectedTimeToAnswer": config.expected_time_minutes,
                    "marks": config.marks,
                }
                for config in question_configs
            ],
        }

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        """
        POST the payload, retrying transport failures.

        Raises:
            UpstreamServiceError: If every attempt fails at transport level.
        """
        client = await self._get_client()
        last_error: Exception | None = None
        attempts = 0

        while attempts <= self._max_retries:
            attempts += 1
            try:
                return await client.post("/generate-questions", json=payload)
            except httpx.TransportError as e:
                logger.warning(f"AI service request failed (attempt {attempts}): {e}")
                last_error = e
                if attempts <= self._max_retries:
                    await asyncio.sleep(0.5 * attempts)

        raise UpstreamServiceError(
            f"AI service unreachable after {attempts} attempts: {last_error}",
            business_message="AI Service Failed",
        ) from last_error

    async def generate_interview_questions(
        self,
        resume_text: str,
        skill_map: dict[str, str],
        job_context: JobContext,
        prior_qa_pairs: Sequence[QAPair],
        question_configs: Sequence[QuestionConfig],
    ) -> list[GeneratedQuestion]:
        """
        Generate one question per slot configuration via the AI service.

        Args:
            resume_text: Extracted resume text of the candidate.
            skill_map: Candidate's description of each claimed skill.
            job_context: Job the candidate applied for.
            prior_qa_pairs: Questions already asked with their answers.
            question_configs: One configuration per wanted question.

        Returns:
            Exactly ``len(question_configs)`` questions.
        """
        payload = self._build_payload(
            resume_text, skill_map, job_context, prior_qa_pairs, question_configs
        )
        logger.debug(
            f"Requesting {len(question_configs)} questions "
            f"({len(prior_qa_pairs)} prior answers) for job {job_context.job_id}"
        )

        response = await self._post(payload)
        if response.status_code != httpx.codes.OK:
            raise UpstreamServiceError(
                f"AI service returned HTTP {response.status_code}",
                business_message="AI Service Returned an Error",
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamServiceError(
                "AI service returned a non-JSON body",
                business_message="Invalid Response from AI Service",
            ) from e

        return parse_generated_questions(body, expected_count=len(question_configs))
