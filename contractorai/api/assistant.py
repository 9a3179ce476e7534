"""
Assistant chat API.

POST /api/assistant/{persona}/chat
    {"messages": [{"role", "content"}], "estimate"?: [line items]}
 -> {"message", "toolResults", "pendingApproval"?, "estimate"?}
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from contractorai.core.auth import get_current_user_id
from contractorai.core.errors import UpstreamServiceError
from contractorai.core.logging import get_request_id
from contractorai.features.assistant.llm import LazyLLMClient
from contractorai.features.assistant.orchestrator import ConversationOrchestrator
from contractorai.features.assistant.personas import build_registries
from contractorai.models.assistant import Persona
from contractorai.models.estimate import Estimate, EstimateLineItem


router = APIRouter(prefix="/api/assistant", tags=["assistant"])

ASSISTANT_UNAVAILABLE_MESSAGE = (
    "Sorry, I'm having trouble reaching the assistant right now. Please try again in a moment."
)


@lru_cache(maxsize=1)
def _registries():
    return build_registries()


def get_orchestrator() -> ConversationOrchestrator:
    return ConversationOrchestrator(LazyLLMClient(), _registries())


class ChatTurn(BaseModel):
    # Role is checked by the orchestrator so unsupported roles get the 400 contract
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatTurn] = Field(default_factory=list)
    estimate: Optional[List[EstimateLineItem]] = None


@router.post("/{persona}/chat")
def chat(
    persona: Persona,
    body: ChatRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    rid = getattr(request.state, "request_id", None) or get_request_id()
    estimate = Estimate(items=body.estimate) if body.estimate is not None else None

    try:
        result = orchestrator.run_conversation_turn(
            user_id,
            [turn.model_dump() for turn in body.messages],
            persona,
            estimate=estimate,
        )
    except UpstreamServiceError as e:
        raise UpstreamServiceError(ASSISTANT_UNAVAILABLE_MESSAGE, service=e.service, request_id=rid)

    response: Dict[str, Any] = {
        "message": result.text,
        "toolResults": [item.model_dump(by_alias=True, mode="json") for item in result.tool_results],
    }
    if result.pending_approval is not None:
        response["pendingApproval"] = result.pending_approval.model_dump(by_alias=True, mode="json")
    if result.estimate is not None:
        response["estimate"] = [item.model_dump(by_alias=True, mode="json") for item in result.estimate]
    return response
