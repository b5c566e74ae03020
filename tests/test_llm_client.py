from __future__ import annotations

import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pagepersona.core.errors import StageTimeout, TransformFailed
from pagepersona.core.personas import get_persona, list_personas
from pagepersona.core.prompts import FORMATTING_REQUIREMENTS, build_prompt
from pagepersona.infrastructure.llm import OpenAIChatClient


def _client(handler, api_key: str = "sk-test") -> OpenAIChatClient:
    return OpenAIChatClient(
        api_key,
        model="gpt-test",
        api_base="https://llm.example.com/v1/",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def _prompt():
    return build_prompt(get_persona("robot"), "Plants turn sunlight into sugar.", title="Photosynthesis")


def test_complete_posts_chat_request_and_parses_usage():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "  BEEP. PLANTS EAT LIGHT.  "}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
            },
        )

    result = _client(handler).complete(_prompt())

    assert captured["url"] == "https://llm.example.com/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    body = captured["body"]
    assert body["model"] == "gpt-test"
    assert body["max_tokens"] == 2500
    assert body["temperature"] == 0.7
    assert [message["role"] for message in body["messages"]] == ["system", "user"]
    assert "PERSONA SPECIFIC INSTRUCTIONS" in body["messages"][0]["content"]
    assert "Photosynthesis" in body["messages"][1]["content"]

    assert result.content == "BEEP. PLANTS EAT LIGHT."
    assert result.usage == {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150}
    assert result.finish_reason == "stop"


def test_complete_requires_api_key():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("no request expected")

    with pytest.raises(TransformFailed):
        _client(handler, api_key="").complete(_prompt())


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}),
        httpx.Response(429, json={"error": {"message": "rate limited"}}),
        httpx.Response(500, json={"error": {"message": "boom"}}),
    ],
)
def test_complete_failures_raise_transform_failed(response):
    with pytest.raises(TransformFailed):
        _client(lambda request: response).complete(_prompt())


def test_complete_timeout_maps_to_stage_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(StageTimeout):
        _client(handler).complete(_prompt())


def test_prompt_builder_distinguishes_text_input():
    persona = get_persona("medieval-knight")
    webpage = build_prompt(persona, "Body text", title="A Title", word_count=2)
    text = build_prompt(persona, "Body text", from_webpage=False)

    assert "WEBPAGE TITLE: A Title" in webpage.user_prompt
    assert "TEXT INPUT:" in text.user_prompt
    assert FORMATTING_REQUIREMENTS in webpage.system_prompt
    assert webpage.estimated_tokens == -(-webpage.total_length // 4)


def test_persona_catalogue():
    ids = {persona.id for persona in list_personas()}
    assert ids == {"eli5", "medieval-knight", "anime-hacker", "plague-doctor", "robot"}
    assert get_persona(" ELI5 ").id == "eli5"
    assert get_persona("pirate") is None
