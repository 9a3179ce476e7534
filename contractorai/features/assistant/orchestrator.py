"""
Conversation orchestrator: one assistant turn.

A turn is at most two model calls. The first may request tools; those run
strictly in the order the model emitted them. If the first reply carried no
text, a single follow-up call (tools omitted) narrates the results.
"""

from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
import json
import logging

from contractorai.core.errors import (
    AppError,
    AuthorizationError,
    ConfigurationError,
    ToolExecutionError,
    ValidationError,
)
from contractorai.features.assistant.executors import ToolContext, build_tool_context
from contractorai.features.assistant.llm import LLMClient, ModelReply, ToolChoice
from contractorai.features.assistant.prompts import system_prompt
from contractorai.features.assistant.tools import ToolRegistry
from contractorai.models.assistant import (
    ChatMessage,
    ConversationResult,
    MessageRole,
    Persona,
    ToolInvocation,
    ToolResult,
)
from contractorai.models.estimate import Estimate


logger = logging.getLogger("contractorai")

DRAFT_REVIEW_TEXT = (
    "I've drafted an email for you. Please review it above and click "
    "'Approve & Send' if it looks good, or 'Cancel' to revise."
)
TOOLS_USED_TEXT = "I've processed your request using: {names}. Let me know if you need anything else!"
EMPTY_REPLY_TEXT = "I'm not sure how to help with that. Could you rephrase your request?"

ContextFactory = Callable[[str, Persona, Optional[Estimate]], ToolContext]


def _default_context_factory(user_id: str, persona: Persona, estimate: Optional[Estimate]) -> ToolContext:
    return build_tool_context(user_id, persona, estimate=estimate)


def _normalize_transcript(transcript: Sequence[Any]) -> List[Dict[str, Any]]:
    messages = []
    for entry in transcript:
        if isinstance(entry, ChatMessage):
            role, content = entry.role.value, entry.content
        elif isinstance(entry, dict):
            role, content = entry.get("role"), entry.get("content")
        else:
            raise ValidationError("Transcript entries must be messages")
        if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
            raise ValidationError(f"Unsupported message role: {role}")
        if not isinstance(content, str):
            raise ValidationError("Message content must be text")
        messages.append({"role": role, "content": content})
    if not messages:
        raise ValidationError("At least one message is required")
    return messages


class ConversationOrchestrator:
    def __init__(
        self,
        llm: LLMClient,
        registries: Mapping[Persona, ToolRegistry],
        context_factory: Optional[ContextFactory] = None,
    ):
        self.llm = llm
        self.registries = dict(registries)
        self.context_factory = context_factory or _default_context_factory

    def _execute(self, registry: ToolRegistry, ctx: ToolContext, invocation: ToolInvocation) -> ToolResult:
        try:
            definition, arguments = registry.validate(invocation)
        except ValidationError as e:
            logger.info(
                "assistant.tool_rejected",
                extra={"user_id": ctx.user_id, "tool": invocation.name, "call_id": invocation.call_id},
            )
            return ToolResult(call_id=invocation.call_id, name=invocation.name, success=False, error=e.message)

        executor = registry.executor(definition.name)
        try:
            data = executor(ctx, arguments)
        except (AuthorizationError, ConfigurationError):
            raise
        except AppError as e:
            error = e.message
        except Exception as e:
            failure = ToolExecutionError(f"{definition.name.value} failed: {e}")
            logger.exception(
                "assistant.tool_failed",
                extra={
                    "user_id": ctx.user_id,
                    "tool": invocation.name,
                    "call_id": invocation.call_id,
                    "error_code": failure.code,
                },
            )
            error = failure.message
        else:
            logger.info(
                "assistant.tool_executed",
                extra={"user_id": ctx.user_id, "tool": invocation.name, "call_id": invocation.call_id},
            )
            return ToolResult(call_id=invocation.call_id, name=invocation.name, success=True, data=data)

        return ToolResult(call_id=invocation.call_id, name=invocation.name, success=False, error=error)

    def run_conversation_turn(
        self,
        user_id: str,
        transcript: Sequence[Any],
        persona: Persona,
        estimate: Optional[Estimate] = None,
        today: Optional[date] = None,
    ) -> ConversationResult:
        if not user_id:
            raise AuthorizationError("User ID is required")
        persona = Persona(persona)
        registry = self.registries.get(persona)
        if registry is None:
            raise ConfigurationError(f"No tool registry for persona {persona.value}")

        messages = _normalize_transcript(transcript)
        system = system_prompt(persona, today)
        ctx = self.context_factory(user_id, persona, estimate)

        reply = self.llm.complete(system, messages, registry.schemas(), registry.tool_choice)

        results: List[ToolResult] = []
        for invocation in reply.tool_calls:
            results.append(self._execute(registry, ctx, invocation))

        text = reply.text
        if not text and results:
            text = self._follow_up(system, messages, reply, results)

        pending = ctx.pending_approvals[-1] if ctx.pending_approvals else None
        if not text:
            if pending is not None:
                text = DRAFT_REVIEW_TEXT
            elif results:
                text = TOOLS_USED_TEXT.format(names=", ".join(result.name for result in results))
            else:
                text = EMPTY_REPLY_TEXT

        logger.info(
            "assistant.turn_complete",
            extra={"user_id": user_id, "persona": persona.value, "status": f"{len(results)} tools"},
        )
        return ConversationResult(
            text=text,
            tool_results=results,
            pending_approval=pending,
            estimate=list(ctx.estimate.items) if persona is Persona.ESTIMATING else None,
        )

    def _follow_up(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        reply: ModelReply,
        results: List[ToolResult],
    ) -> Optional[str]:
        follow_up = list(messages)
        follow_up.append(reply.raw_message)
        for result in results:
            follow_up.append({
                "role": "tool",
                "tool_call_id": result.call_id,
                "content": json.dumps(result.to_model_content(), default=str),
            })
        narration = self.llm.complete(system, follow_up, [], ToolChoice.NONE)
        return narration.text
