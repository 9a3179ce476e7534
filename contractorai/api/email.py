"""
Email approval API. The only path by which an assistant draft is sent.

- POST /api/email/drafts/{draft_id}/approve   optional edits: recipients, subject, body
- POST /api/email/drafts/{draft_id}/discard
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from contractorai.core.auth import get_current_user_id
from contractorai.features.email.service import EmailDraftService


router = APIRouter(prefix="/api/email", tags=["email"])


def get_email_service() -> EmailDraftService:
    return EmailDraftService()


class ApproveRequest(BaseModel):
    recipients: Optional[List[str]] = None
    subject: Optional[str] = None
    body: Optional[str] = None


@router.post("/drafts/{draft_id}/approve")
def approve_draft(
    draft_id: str,
    body: Optional[ApproveRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: EmailDraftService = Depends(get_email_service),
):
    overrides = body.model_dump(exclude_none=True) if body else None
    return {"draft": service.approve_and_send(user_id, draft_id, overrides)}


@router.post("/drafts/{draft_id}/discard")
def discard_draft(
    draft_id: str,
    user_id: str = Depends(get_current_user_id),
    service: EmailDraftService = Depends(get_email_service),
):
    return {"draft": service.discard(user_id, draft_id)}
