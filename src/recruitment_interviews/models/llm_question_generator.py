"""
Question generator backed by a local LLM.

Builds an interview-question prompt from the resume, the job and the
answers given so far, and validates the model's JSON the same way the AI
service response is validated.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from recruitment_interviews.errors import UpstreamServiceError
from recruitment_interviews.models.llm_client import LLMClient, Message
from recruitment_interviews.models.question_client import (
    QuestionGenerationClient,
    parse_generated_questions,
)
from recruitment_interviews.schemas import (
    GeneratedQuestion,
    JobContext,
    QAPair,
    QuestionConfig,
)

logger = logging.getLogger(__name__)


class LLMQuestionGenerator(QuestionGenerationClient):
    """Generates interview questions with an Ollama-served model."""

    GENERATION_PROMPT = """You are interviewing a candidate for the job below.
Write exactly {count} interview questions, one for each slot listed, in the same order.

Job:
{job_text}

Candidate's description of their skills:
{skill_text}

Candidate resume:
\"\"\"
{resume_text}
\"\"\"

Questions already asked and the candidate's answers:
{history_text}

Slots (category, expected answer time in minutes):
{slot_text}

RULES:
1. Each question must match its slot's category and be answerable in the expected time.
2. Build on the resume and on previous answers; never repeat a question already asked.
3. Ask one thing per question.

Return JSON:
{{
    "questions": [
        {{"question": "<question text>", "estimated_time_minutes": <integer minutes>}}
    ]
}}"""

    MAX_RESUME_CHARS = 6000
    MAX_ANSWER_CHARS = 600

    def __init__(self, llm_client: LLMClient | None = None) -> None:
        """
        Initialize the generator.

        Args:
            llm_client: LLM client used for generation. Creates default if None.
        """
        self._llm_client = llm_client or LLMClient()

    def _build_history(self, prior_qa_pairs: Sequence[QAPair]) -> str:
        if not prior_qa_pairs:
            return "(Interview just started)"
        lines = []
        for index, pair in enumerate(prior_qa_pairs, start=1):
            lines.append(f"Q{index}: {pair.question}")
            lines.append(f"A{index}: {pair.answer[: self.MAX_ANSWER_CHARS]}")
        return "\n".join(lines)

    def build_prompt(
        self,
        resume_text: str,
        skill_map: dict[str, str],
        job_context: JobContext,
        prior_qa_pairs: Sequence[QAPair],
        question_configs: Sequence[QuestionConfig],
    ) -> str:
        """Render the generation prompt."""
        skill_text = (
            "\n".join(f"- {skill}: {description}" for skill, description in skill_map.items())
            or "Not provided"
        )
        slot_text = "\n".join(
            f"{index}. {config.category}, {config.expected_time_minutes} min"
            for index, config in enumerate(question_configs, start=1)
        )
        return self.GENERATION_PROMPT.format(
            count=len(question_configs),
            job_text=job_context.to_prompt_text(),
            skill_text=skill_text,
            resume_text=resume_text[: self.MAX_RESUME_CHARS],
            history_text=self._build_history(prior_qa_pairs),
            slot_text=slot_text,
        )

    async def generate_interview_questions(
        self,
        resume_text: str,
        skill_map: dict[str, str],
        job_context: JobContext,
        prior_qa_pairs: Sequence[QAPair],
        question_configs: Sequence[QuestionConfig],
    ) -> list[GeneratedQuestion]:
        """
        Generate one question per slot configuration with the LLM.

        Raises:
            UpstreamServiceError: If the model output is empty, malformed
                or has the wrong number of questions.
        """
        prompt = self.build_prompt(
            resume_text, skill_map, job_context, prior_qa_pairs, question_configs
        )
        data = await self._llm_client.chat_with_json(
            messages=[Message(role="user", content=prompt)],
        )
        if not data:
            raise UpstreamServiceError(
                "LLM returned no usable JSON",
                business_message="Invalid Response from AI Service",
            )

        # Some models return the list bare.
        if "questions" not in data and "items" in data:
            data = {"questions": data["items"]}

        questions = parse_generated_questions(data, expected_count=len(question_configs))
        logger.debug(f"LLM generated {len(questions)} questions")
        return questions

    async def close(self) -> None:
        """Close the underlying LLM client."""
        await self._llm_client.close()
