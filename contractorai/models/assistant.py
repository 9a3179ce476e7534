"""
contractorai/models/assistant.py
Conversation models shared by the orchestrator and the assistant API.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from contractorai.models.estimate import EstimateLineItem


class Persona(str, Enum):
    ESTIMATING = "estimating"
    PROJECTS = "projects"
    CRM = "crm"
    FINANCE = "finance"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A prior turn supplied by the caller; only user and assistant roles are accepted."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str


class ToolInvocation(BaseModel):
    """One tool call as emitted by the model; arguments are the raw JSON text."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    name: str
    arguments: str = "{}"


class PendingApproval(BaseModel):
    """A drafted outbound email awaiting explicit user approval. Never sent by the assistant."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    draft_id: str
    kind: str = "email"
    recipients: List[str] = Field(default_factory=list)
    subject: str
    body: str
    client_id: Optional[str] = None
    requires_approval: bool = True


class ToolResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    call_id: str
    name: str
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    def to_model_content(self) -> Dict[str, Any]:
        """Payload fed back to the model in the follow-up call."""
        payload: Dict[str, Any] = {"tool": self.name, "success": self.success}
        if self.success:
            payload["data"] = self.data
        else:
            payload["error"] = self.error
        return payload


class ConversationResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    tool_results: List[ToolResult] = Field(default_factory=list)
    pending_approval: Optional[PendingApproval] = None
    estimate: Optional[List[EstimateLineItem]] = None
