"""
Models module for AI question generation.

Provides the question generation client interface, the AI service
implementation and a local LLM implementation.
"""

from recruitment_interviews.models.llm_client import (
    DEFAULT_OLLAMA_MODEL,
    LLMClient,
    LLMResponse,
    Message,
    OllamaError,
)
from recruitment_interviews.models.llm_question_generator import LLMQuestionGenerator
from recruitment_interviews.models.question_client import (
    HttpQuestionClient,
    QuestionGenerationClient,
    parse_generated_questions,
)

__all__ = [
    "DEFAULT_OLLAMA_MODEL",
    "HttpQuestionClient",
    "LLMClient",
    "LLMQuestionGenerator",
    "LLMResponse",
    "Message",
    "OllamaError",
    "QuestionGenerationClient",
    "parse_generated_questions",
]
