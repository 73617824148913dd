import asyncio
import json
from dataclasses import replace

import pytest
import requests

from homeostat.cortex.speech.speech_gate import ExpressionContext
from homeostat.cortex.thinking import generator as generator_module
from homeostat.cortex.thinking.generator import GenerationRequest, LlmConfig, LlmGenerator
from homeostat.errors import GeneratorError
from homeostat.kernel.state import ConversationTurn, Goal


class FakeResponse:
    def __init__(self, body=None, status_code=200, text=None):
        self._body = body
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(body)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


def chat_body(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeBackend:
    def __init__(self):
        self.calls = []
        self.replies = []

    def post(self, url, headers=None, data=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "body": json.loads(data), "timeout": timeout})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend()
    monkeypatch.setattr(generator_module.requests, "post", fake.post)
    return fake


def generate(request, config=None):
    return asyncio.run(LlmGenerator(config or LlmConfig(base_url="http://llm.test/v1/chat")).generate(request))


def test_json_reply_is_parsed(backend, fresh_state):
    backend.replies.append(FakeResponse(chat_body(json.dumps({
        "response_text": " Hello there. ",
        "internal_thought": "be brief",
        "mood_shift": {"fear_delta": -0.1, "curiosity_delta": "a lot"},
    }))))

    result = generate(GenerationRequest(fresh_state, ExpressionContext.USER_REPLY, user_text="hi"))

    assert result.response_text == "Hello there."
    assert result.internal_thought == "be brief"
    assert result.mood_shift == {"fear_delta": -0.1}

    call = backend.calls[0]
    assert call["url"] == "http://llm.test/v1/chat"
    assert call["body"]["messages"][-1] == {"role": "user", "content": "hi"}
    assert call["body"]["temperature"] == 0.7
    assert "Authorization" not in call["headers"]


def test_fenced_json_is_unwrapped(backend, fresh_state):
    fenced = '```json\n{"response_text": "Fenced.", "internal_thought": ""}\n```'
    backend.replies.append(FakeResponse(chat_body(fenced)))
    result = generate(GenerationRequest(fresh_state, ExpressionContext.AUTONOMOUS))
    assert result.response_text == "Fenced."
    assert result.mood_shift is None


def test_plain_text_reply_is_used_verbatim(backend, fresh_state):
    backend.replies.append(FakeResponse(chat_body("  Just words, no JSON.  ")))
    result = generate(GenerationRequest(fresh_state, ExpressionContext.AUTONOMOUS))
    assert result.response_text == "Just words, no JSON."
    assert result.internal_thought == ""


@pytest.mark.parametrize("reply", [
    FakeResponse({"error": "overloaded"}, status_code=503),
    FakeResponse(None, text="<html>"),
    FakeResponse({"choices": []}),
    requests.ConnectionError("refused"),
])
def test_backend_failures_raise_generator_error(backend, fresh_state, reply):
    backend.replies.append(reply)
    with pytest.raises(GeneratorError):
        generate(GenerationRequest(fresh_state, ExpressionContext.USER_REPLY, user_text="hi"))


def test_messages_carry_state_memories_and_history(fresh_state):
    state = replace(fresh_state, conversation=(
        ConversationTurn("user", "hi"),
        ConversationTurn("assistant", "Generator failed", "thought"),
        ConversationTurn("assistant", "hello"),
        ConversationTurn("user", "what is a tide?"),
    ))
    request = GenerationRequest(state, ExpressionContext.USER_REPLY, user_text="what is a tide?",
                                memories=["the moon pulls the sea"])
    messages = LlmGenerator().build_messages(request)

    assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "user"]
    assert "the moon pulls the sea" in messages[1]["content"]
    assert "Energy: 100/100" in messages[1]["content"]
    assert all("Generator failed" not in m["content"] for m in messages)


def test_goal_prompt(fresh_state):
    goal = Goal(id="g", description="Ask about volcanoes", created_at=1)
    messages = LlmGenerator().build_messages(GenerationRequest(fresh_state, ExpressionContext.GOAL_EXECUTED, goal=goal))
    assert messages[-1]["role"] == "user"
    assert "Ask about volcanoes" in messages[-1]["content"]


def test_api_key_header(backend, fresh_state):
    backend.replies.append(FakeResponse(chat_body("ok")))
    generate(GenerationRequest(fresh_state, ExpressionContext.AUTONOMOUS),
             LlmConfig(api_key="sk-test", extra_headers={"X-Trace": "1"}))
    headers = backend.calls[0]["headers"]
    assert headers["Authorization"] == "Bearer sk-test"
    assert headers["X-Trace"] == "1"


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("HOMEOSTAT_LLM_URL", "http://example.test/v1/chat/completions")
    monkeypatch.setenv("HOMEOSTAT_LLM_MODEL", "tiny")
    monkeypatch.setenv("HOMEOSTAT_LLM_TIMEOUT", "soon")
    cfg = LlmConfig.from_env()
    assert cfg.base_url == "http://example.test/v1/chat/completions"
    assert cfg.model == "tiny"
    assert cfg.timeout_seconds == 60

    monkeypatch.setenv("HOMEOSTAT_LLM_TIMEOUT", "5")
    assert LlmConfig.from_env().timeout_seconds == 5
