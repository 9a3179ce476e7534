"""
Language model client for the assistants.

The orchestrator talks to an LLMClient; GroqChatClient is the production
implementation over the groq SDK's OpenAI-compatible chat completions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol
import logging

import groq

from contractorai.core.config import settings
from contractorai.core.errors import ConfigurationError, UpstreamServiceError
from contractorai.models.assistant import ToolInvocation


logger = logging.getLogger("contractorai")


class ToolChoice(str, Enum):
    AUTO = "auto"
    REQUIRED = "required"
    # Narration only: tool declarations are omitted from the request
    NONE = "none"


@dataclass
class ModelReply:
    text: Optional[str]
    tool_calls: List[ToolInvocation] = field(default_factory=list)
    raw_message: Dict[str, Any] = field(default_factory=dict)


class LLMClient(Protocol):

    def complete(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_choice: ToolChoice,
    ) -> ModelReply:
        ...


def _assistant_message(text: Optional[str], tool_calls: List[ToolInvocation]) -> Dict[str, Any]:
    """The reply in the shape it must be echoed back on the follow-up call."""
    message: Dict[str, Any] = {"role": "assistant", "content": text or ""}
    if tool_calls:
        message["tool_calls"] = [
            {
                "id": call.call_id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in tool_calls
        ]
    return message


class GroqChatClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Any = None,
    ):
        self.model = model or settings.LLM_MODEL
        self.temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        if client is None:
            key = api_key or settings.GROQ_API_KEY
            if not key:
                raise ConfigurationError("GROQ_API_KEY is not configured")
            client = groq.Groq(api_key=key, timeout=timeout or settings.LLM_TIMEOUT_SECONDS)
        self._client = client

    def complete(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_choice: ToolChoice,
    ) -> ModelReply:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, *messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools and tool_choice is not ToolChoice.NONE:
            request["tools"] = tools
            request["tool_choice"] = tool_choice.value
            request["parallel_tool_calls"] = False

        try:
            completion = self._client.chat.completions.create(**request)
        except groq.APIError as e:
            logger.warning("assistant.llm_failed", extra={"error_code": type(e).__name__})
            raise UpstreamServiceError(f"Language model request failed: {e}", service="groq")

        try:
            message = completion.choices[0].message
            text = message.content or None
            tool_calls = [
                ToolInvocation(
                    call_id=call.id,
                    name=call.function.name,
                    arguments=call.function.arguments or "{}",
                )
                for call in (message.tool_calls or [])
            ]
        except (AttributeError, IndexError, TypeError) as e:
            raise UpstreamServiceError(f"Malformed language model response: {e}", service="groq")

        return ModelReply(text=text, tool_calls=tool_calls, raw_message=_assistant_message(text, tool_calls))


class LazyLLMClient:
    """
    Defers building the real client until the first completion.

    Lets the API validate a request (persona, transcript) before a missing
    GROQ_API_KEY turns into a ConfigurationError.
    """

    def __init__(self, factory: Callable[[], LLMClient] = GroqChatClient):
        self._factory = factory
        self._client: Optional[LLMClient] = None

    def complete(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_choice: ToolChoice,
    ) -> ModelReply:
        if self._client is None:
            self._client = self._factory()
        return self._client.complete(system, messages, tools, tool_choice)
