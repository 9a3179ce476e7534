"""Groq chat client request shaping and response parsing (SDK faked)."""
import httpx
import groq
import pytest

from contractorai.core.errors import ConfigurationError, UpstreamServiceError
from contractorai.features.assistant.llm import GroqChatClient, LazyLLMClient, ToolChoice
from contractorai.tests.mocks import FakeGroq, groq_response


TOOLS = [{"type": "function", "function": {"name": "get_clients", "parameters": {"type": "object"}}}]
MESSAGES = [{"role": "user", "content": "hi"}]


def _client(fake):
    return GroqChatClient(model="test-model", temperature=0.2, max_tokens=256, client=fake)


def test_request_carries_tools_and_choice():
    fake = FakeGroq(groq_response(content="hello"))
    reply = _client(fake).complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.REQUIRED)

    kwargs = fake.chat.completions.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["messages"][0] == {"role": "system", "content": "SYSTEM"}
    assert kwargs["messages"][1:] == MESSAGES
    assert kwargs["tools"] == TOOLS
    assert kwargs["tool_choice"] == "required"
    assert kwargs["parallel_tool_calls"] is False
    assert reply.text == "hello"
    assert reply.tool_calls == []


def test_tool_choice_none_omits_tools():
    fake = FakeGroq(groq_response(content="narration"))
    _client(fake).complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.NONE)

    kwargs = fake.chat.completions.kwargs
    assert "tools" not in kwargs
    assert "tool_choice" not in kwargs


def test_tool_calls_are_parsed_and_echoed():
    fake = FakeGroq(groq_response(tool_calls=[("call_1", "get_clients", {"status": "active"})]))
    reply = _client(fake).complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.AUTO)

    assert reply.text is None
    assert reply.tool_calls[0].call_id == "call_1"
    assert reply.tool_calls[0].name == "get_clients"
    assert reply.tool_calls[0].arguments == '{"status": "active"}'
    assert reply.raw_message["role"] == "assistant"
    assert reply.raw_message["tool_calls"][0]["function"]["name"] == "get_clients"


def test_api_errors_become_upstream_errors():
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    fake = FakeGroq(error=groq.APIConnectionError(request=request))

    with pytest.raises(UpstreamServiceError) as exc:
        _client(fake).complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.AUTO)
    assert exc.value.service == "groq"


def test_malformed_response_becomes_upstream_error():
    with pytest.raises(UpstreamServiceError):
        _client(FakeGroq(object())).complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.AUTO)


def test_missing_api_key(monkeypatch):
    from contractorai.core.config import settings

    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    with pytest.raises(ConfigurationError):
        GroqChatClient()


def test_lazy_client_builds_on_first_completion():
    fake = FakeGroq(groq_response(content="hello"))
    built = []

    def factory():
        built.append(True)
        return _client(fake)

    lazy = LazyLLMClient(factory)
    assert built == []

    lazy.complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.AUTO)
    reply = lazy.complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.AUTO)

    assert reply.text == "hello"
    assert built == [True]


def test_lazy_client_defers_missing_api_key(monkeypatch):
    from contractorai.core.config import settings

    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    lazy = LazyLLMClient()
    with pytest.raises(ConfigurationError):
        lazy.complete("SYSTEM", MESSAGES, TOOLS, ToolChoice.AUTO)
