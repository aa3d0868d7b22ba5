from types import SimpleNamespace

import pytest

from studyforge.exceptions import LLMUnavailable
from studyforge.generation.llm_client import LLMClient


def _response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class ScriptedCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _response(outcome)


def client_with(*outcomes):
    completions = ScriptedCompletions(outcomes)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return LLMClient(client=fake, model="test-model", backoff_base=0), completions


@pytest.mark.asyncio
async def test_returns_message_content():
    llm, completions = client_with('{"questions": []}')
    text = await llm.complete("prompt", system="system", temperature=0.8)

    assert text == '{"questions": []}'
    request = completions.requests[0]
    assert request["model"] == "test-model"
    assert request["temperature"] == 0.8
    assert request["response_format"] == {"type": "json_object"}
    assert request["messages"][0] == {"role": "system", "content": "system"}


@pytest.mark.asyncio
async def test_json_mode_can_be_disabled():
    llm, completions = client_with("plain")
    await llm.complete("prompt", system="system", json_mode=False)
    assert "response_format" not in completions.requests[0]


@pytest.mark.asyncio
async def test_transport_errors_and_empty_replies_are_retried():
    llm, completions = client_with(ConnectionError("reset"), "   ", '{"ok": true}')
    assert await llm.complete("prompt", system="system") == '{"ok": true}'
    assert len(completions.requests) == 3


@pytest.mark.asyncio
async def test_unavailable_after_retries():
    llm, _ = client_with(TimeoutError("slow"), TimeoutError("slow"), TimeoutError("still slow"))
    with pytest.raises(LLMUnavailable) as exc:
        await llm.complete("prompt", system="system")
    assert exc.value.attempts == 3
    assert "still slow" in str(exc.value)


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        LLMClient()
