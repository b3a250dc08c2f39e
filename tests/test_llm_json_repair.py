import json
from uuid import uuid4

import httpx
import pytest

from recruitment_interviews.errors import UpstreamServiceError
from recruitment_interviews.models import llm_client as llm_client_module
from recruitment_interviews.models.llm_client import LLMClient, LLMResponse, Message
from recruitment_interviews.models.llm_question_generator import LLMQuestionGenerator
from recruitment_interviews.schemas import JobContext, QAPair, QuestionConfig


def _client_returning(content: str) -> LLMClient:
    client = LLMClient(model="test-model")

    async def fake_chat(messages: list[Message], temperature: float = 0.7, **kwargs):
        return LLMResponse(content=content, finish_reason="stop", model="test-model")

    # Monkeypatch instance method
    client.chat = fake_chat  # type: ignore[assignment]
    return client


@pytest.mark.asyncio
async def test_chat_with_json_repairs_single_quotes_and_trailing_commas() -> None:
    client = _client_returning("{'question': 'Why Python?', 'estimated_time_minutes': 3,}")

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"question": "Why Python?", "estimated_time_minutes": 3}


@pytest.mark.asyncio
async def test_chat_with_json_repairs_unquoted_keys_and_fenced_json() -> None:
    client = _client_returning(
        """```json
        {a: 1, b: true, c: null,}
        ```"""
    )

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"a": 1, "b": True, "c": None}


@pytest.mark.asyncio
async def test_chat_with_json_wraps_top_level_lists() -> None:
    client = _client_returning('Sure! [{"question": "Q1", "estimated_time_minutes": 2}]')

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"items": [{"question": "Q1", "estimated_time_minutes": 2}]}


@pytest.mark.asyncio
async def test_chat_with_json_returns_empty_dict_on_garbage() -> None:
    client = _client_returning("I cannot help with that.")

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {}


@pytest.mark.asyncio
async def test_chat_posts_to_ollama_and_retries_server_errors() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if len(requests) == 1:
            return httpx.Response(503)
        return httpx.Response(
            200,
            json={"model": "test-model", "message": {"role": "assistant", "content": " ok "}, "done_reason": "stop"},
        )

    client = LLMClient(
        model="test-model",
        base_url="http://ollama.test",
        max_retries=1,
        transport=httpx.MockTransport(handler),
    )
    response = await client.chat([Message(role="user", content="hi")], json_mode=True)
    await client.close()

    assert response.content == "ok"
    assert response.finish_reason == "stop"
    assert len(requests) == 2
    body = json.loads(requests[-1].content)
    assert requests[-1].url.path == "/api/chat"
    assert body["model"] == "test-model"
    assert body["stream"] is False
    assert body["format"] == "json"


@pytest.mark.asyncio
async def test_chat_reports_error_when_server_is_down() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = LLMClient(
        base_url="http://ollama.test",
        max_retries=0,
        transport=httpx.MockTransport(handler),
    )
    response = await client.chat([Message(role="user", content="hi")])
    await client.close()

    assert response.finish_reason == "error"
    assert response.content == ""


@pytest.mark.asyncio
async def test_llm_generator_accepts_bare_question_lists() -> None:
    client = _client_returning(
        "[{'question': 'How do you size a Spark cluster?', 'estimated_time_minutes': 5,}]"
    )
    generator = LLMQuestionGenerator(client)

    questions = await generator.generate_interview_questions(
        resume_text="Spark engineer",
        skill_map={"Spark": "Five years"},
        job_context=JobContext(job_id=uuid4(), title="Data Engineer"),
        prior_qa_pairs=[QAPair(question="Intro?", answer="Hi")],
        question_configs=[QuestionConfig(category="technical", expected_time_minutes=5)],
    )

    assert [q.question for q in questions] == ["How do you size a Spark cluster?"]


@pytest.mark.asyncio
async def test_llm_generator_rejects_unusable_output() -> None:
    generator = LLMQuestionGenerator(_client_returning("no json here"))

    with pytest.raises(UpstreamServiceError):
        await generator.generate_interview_questions(
            resume_text="cv",
            skill_map={},
            job_context=JobContext(job_id=uuid4(), title="Data Engineer"),
            prior_qa_pairs=[],
            question_configs=[QuestionConfig(), QuestionConfig()],
        )


def test_llm_generator_prompt_lists_history_and_slots() -> None:
    generator = LLMQuestionGenerator(LLMClient(model="test-model"))

    prompt = generator.build_prompt(
        resume_text="cv text",
        skill_map={"SQL": "Reporting"},
        job_context=JobContext(job_id=uuid4(), title="Analyst", skills=["SQL"]),
        prior_qa_pairs=[QAPair(question="Favourite query?", answer="A window function")],
        question_configs=[QuestionConfig(category="technical", expected_time_minutes=4)],
    )

    assert "Write exactly 1 interview questions" in prompt
    assert "Q1: Favourite query?" in prompt
    assert "A1: A window function" in prompt
    assert "1. technical, 4 min" in prompt
    assert "- SQL: Reporting" in prompt


@pytest.mark.asyncio
async def test_chat_backs_off_between_transport_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    requests: list[httpx.Request] = []
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if len(requests) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        if len(requests) == 2:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "ok"}})

    monkeypatch.setattr(llm_client_module.asyncio, "sleep", fake_sleep)
    client = LLMClient(
        base_url="http://ollama.test",
        max_retries=2,
        transport=httpx.MockTransport(handler),
    )
    response = await client.chat([Message(role="user", content="hi")])
    await client.close()

    assert response.content == "ok"
    assert len(requests) == 3
    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>Bad gateway page</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_chat_reports_error_on_unusable_body(response: httpx.Response) -> None:
    client = LLMClient(
        base_url="http://ollama.test",
        max_retries=0,
        transport=httpx.MockTransport(lambda request: response),
    )
    result = await client.chat([Message(role="user", content="hi")])
    await client.close()

    assert result.finish_reason == "error"
    assert result.content == ""


@pytest.mark.asyncio
async def test_llm_generator_surfaces_html_body_as_upstream_error() -> None:
    client = LLMClient(
        base_url="http://ollama.test",
        max_retries=0,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>")),
    )
    generator = LLMQuestionGenerator(client)

    with pytest.raises(UpstreamServiceError) as exc_info:
        await generator.generate_interview_questions(
            resume_text="cv",
            skill_map={},
            job_context=JobContext(job_id=uuid4(), title="Data Engineer"),
            prior_qa_pairs=[],
            question_configs=[QuestionConfig()],
        )
    await generator.close()

    assert exc_info.value.status_code == 502
