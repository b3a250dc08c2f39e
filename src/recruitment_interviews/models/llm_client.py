"""
LLM client for a local Ollama server.

Talks to the Ollama chat API over HTTP and repairs the loosely formatted
JSON that local models tend to produce.
"""

import ast
import asyncio
import json
import logging
import re
from typing import Any

import httpx
from pydantic import BaseModel, Field

from recruitment_interviews.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODEL = "gpt-oss:20b"


class Message(BaseModel):
    """A message in a conversation."""

    role: str = Field(..., description="Role of the speaker (system, user, assistant)")
    content: str = Field(..., description="Message content")


class LLMResponse(BaseModel):
    """Response from an LLM."""

    content: str = Field(..., description="Generated text content")
    finish_reason: str = Field(default="stop", description="Reason for completion")
    model: str = Field(default="", description="Model used for generation")


class OllamaError(Exception):
    """Exception raised when the Ollama server fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMClient:
    """
    Ollama chat client.

    Sends non-streaming requests to ``/api/chat``. Transport failures and
    non-200 responses are retried up to ``max_retries`` times.
    """

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        max_retries: int = 1,
        timeout: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Ollama LLM client.

        Args:
            model: Model name (uses config if not provided).
            base_url: Ollama server URL (uses config if not provided).
            max_retries: Number of retries on failure (default 1).
            timeout: Request timeout in seconds (uses config if not provided).
            transport: Optional httpx transport, e.g. for tests.
        """
        settings = get_settings()
        self._model = model or settings.llm_model_name or DEFAULT_OLLAMA_MODEL
        self._base_url = base_url or settings.llm_base_url
        self._max_retries = max_retries
        self._timeout = timeout or settings.llm_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized Ollama LLM client with model: {self._model}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _post_chat(self, body: dict[str, Any]) -> dict[str, Any]:
        """
        Send a chat request with retry logic.

        Raises:
            OllamaError: If the request fails after all retries.
        """
        client = await self._get_client()
        last_error: OllamaError | None = None
        attempts = 0

        while attempts <= self._max_retries:
            attempts += 1
            try:
                response = await client.post("/api/chat", json=body)
            except httpx.TimeoutException:
                logger.warning(f"Ollama timed out after {self._timeout}s (attempt {attempts})")
                last_error = OllamaError(f"Ollama timed out after {self._timeout} seconds")
                await self._backoff(attempts)
                continue
            except httpx.TransportError as e:
                logger.warning(f"Ollama unreachable (attempt {attempts}): {e}")
                last_error = OllamaError(str(e))
                await self._backoff(attempts)
                continue

            if response.status_code != httpx.codes.OK:
                logger.warning(f"Ollama failed (attempt {attempts}): HTTP {response.status_code}")
                last_error = OllamaError(
                    f"Ollama returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
                await self._backoff(attempts)
                continue

            try:
                data = response.json()
            except ValueError as e:
                # A proxy in front of Ollama can answer 200 with an HTML page
                logger.error(f"Ollama returned a non-JSON body: {response.text[:200]!r}")
                raise OllamaError("Ollama returned a non-JSON body") from e
            if not isinstance(data, dict):
                raise OllamaError(f"Ollama returned {type(data).__name__} instead of an object")
            return data

        raise last_error or OllamaError("Ollama failed after all retries")

    async def _backoff(self, attempts: int) -> None:
        if attempts <= self._max_retries:
            await asyncio.sleep(0.5 * attempts)

    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Conversation history.
            temperature: Sampling temperature.
            json_mode: Ask the server to constrain output to JSON.

        Returns:
            Generated response; ``finish_reason`` is "error" on failure.
        """
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [message.model_dump() for message in messages],
            "stream": False,
            "options": {"temperature": temperature},
        }
        if json_mode:
            body["format"] = "json"

        try:
            data = await self._post_chat(body)
        except OllamaError as e:
            logger.error(f"Ollama chat failed: {e}")
            return LLMResponse(content="", finish_reason="error", model=self._model)

        message = data.get("message") or {}
        return LLMResponse(
            content=str(message.get("content", "")).strip(),
            finish_reason=str(data.get("done_reason") or "stop"),
            model=str(data.get("model") or self._model),
        )

    async def chat_with_json(
        self,
        messages: list[Message],
        temperature: float = 0.2,
    ) -> dict[str, Any]:
        """
        Generate a chat completion and parse it as a JSON object.

        Args:
            messages: Conversation history.
            temperature: Sampling temperature (lower for more deterministic).

        Returns:
            Parsed JSON object (top-level arrays are wrapped as
            ``{"items": [...]}``), or an empty dict when nothing parses.
        """
        json_instruction = Message(
            role="system",
            content="You must respond with valid JSON only. No additional text or explanation.",
        )
        response = await self.chat([json_instruction, *messages], temperature, json_mode=True)

        if response.finish_reason == "error" or not response.content:
            logger.warning("JSON chat failed, returning empty dict")
            return {}

        parsed = self._parse_json_loose(self._extract_json_block(response.content))
        if parsed is None:
            parsed = self._parse_json_loose(response.content)
        if isinstance(parsed, dict):
            return parsed
        if isinstance(parsed, list):
            return {"items": parsed}

        logger.warning("Failed to parse JSON from response")
        logger.debug(f"Response content: {response.content[:500]}")
        return {}

    @staticmethod
    def _extract_json_block(content: str) -> str:
        """Cut the first balanced JSON object or array out of ``content``."""
        starts = [idx for idx in (content.find("{"), content.find("[")) if idx != -1]
        if not starts:
            return content
        start_idx = min(starts)

        open_bracket = content[start_idx]
        close_bracket = "}" if open_bracket == "{" else "]"
        depth = 0
        for i, char in enumerate(content[start_idx:], start=start_idx):
            if char == open_bracket:
                depth += 1
            elif char == close_bracket:
                depth -= 1
                if depth == 0:
                    return content[start_idx : i + 1]
        return content[start_idx:]

    @staticmethod
    def _fix_json_string(json_str: str) -> str:
        """Repair common JSON mistakes in model output."""
        result = json_str.strip()

        result = re.sub(r"^```(?:json)?\s*", "", result, flags=re.IGNORECASE)
        result = re.sub(r"\s*```$", "", result)
        result = (
            result.replace("“", '"')
            .replace("”", '"')
            .replace("‘", "'")
            .replace("’", "'")
        )
        result = re.sub(r",(\s*[}\]])", r"\1", result)
        result = re.sub(r"\bNone\b", "null", result)
        result = re.sub(r"\bTrue\b", "true", result)
        result = re.sub(r"\bFalse\b", "false", result)
        # Bare object keys right after { or ,
        result = re.sub(
            r"([\{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)",
            r'\1"\2"\3',
            result,
        )
        if "'" in result and '"' not in result:
            result = result.replace("'", '"')
        return result

    @classmethod
    def _parse_json_loose(cls, raw: str) -> dict[str, Any] | list[Any] | None:
        """Parse JSON with best-effort repair; None when nothing parses."""
        if not raw:
            return None

        cleaned = cls._fix_json_string(raw)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError:
            pass

        # Python-literal fallback for single-quoted dicts.
        for candidate in (raw.strip(), cleaned):
            try:
                obj = ast.literal_eval(candidate)
            except (ValueError, SyntaxError):
                continue
            if isinstance(obj, (dict, list, tuple)):
                try:
                    return json.loads(json.dumps(obj, default=str))
                except (TypeError, ValueError):
                    return None
        return None

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
