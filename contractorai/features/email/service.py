"""
Email drafts and the approval boundary.

Assistants may only save drafts. A draft leaves the system solely through
approve_and_send(), invoked by the user; a sent or discarded draft cannot
be sent again.
"""

from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Protocol
import base64
import logging

import httpx
from sqlalchemy import select, insert, update

from contractorai.core.config import settings
from contractorai.core.database import get_db_session, email_drafts, email_connections
from contractorai.core.errors import ConflictError, NotFoundError, UpstreamServiceError, ValidationError
from contractorai.core.serialization import new_id, row_to_dict
from contractorai.models.assistant import PendingApproval


logger = logging.getLogger("contractorai")

DRAFT_PENDING = "pending"
DRAFT_SENDING = "sending"
DRAFT_SENT = "sent"
DRAFT_DISCARDED = "discarded"


class EmailSender(Protocol):

    def send(self, user_id: str, recipients: List[str], subject: str, body: str) -> Optional[str]:
        """Deliver one message; returns the provider message id."""
        ...


class GmailSender:
    """Sends through the Gmail API with the user's stored OAuth access token."""

    def __init__(
        self,
        session_factory=None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._session_factory = session_factory or get_db_session
        self.base_url = (base_url or settings.GMAIL_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.EMAIL_TIMEOUT_SECONDS
        self._transport = transport

    def _connection(self, user_id: str):
        with self._session_factory() as session:
            row = session.execute(
                select(email_connections)
                .where(email_connections.c.user_id == user_id)
                .where(email_connections.c.provider == "gmail")
            ).first()
        if row is None:
            raise ValidationError("No Gmail account connected")
        return row

    def send(self, user_id: str, recipients: List[str], subject: str, body: str) -> Optional[str]:
        connection = self._connection(user_id)

        message = EmailMessage()
        message["To"] = ", ".join(recipients)
        message["From"] = connection.email_address
        message["Subject"] = subject
        message.set_content(body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/users/me/messages/send",
                    json={"raw": raw},
                    headers={"Authorization": f"Bearer {connection.access_token}"},
                )
                response.raise_for_status()
                return response.json().get("id")
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(f"Gmail returned {e.response.status_code}", service="gmail")
        except httpx.HTTPError as e:
            raise UpstreamServiceError(f"Gmail request failed: {e}", service="gmail")


class EmailDraftService:
    def __init__(self, sender: Optional[EmailSender] = None, session_factory=None):
        self._session_factory = session_factory or get_db_session
        self.sender = sender or GmailSender(session_factory=self._session_factory)

    def save_draft(
        self,
        user_id: str,
        persona: str,
        recipients: List[str],
        subject: str,
        body: str,
        client_id: Optional[str] = None,
    ) -> PendingApproval:
        draft_id = new_id()
        with self._session_factory() as session:
            session.execute(
                insert(email_drafts).values(
                    id=draft_id,
                    user_id=user_id,
                    persona=persona,
                    recipients=list(recipients),
                    subject=subject,
                    body=body,
                    client_id=client_id,
                    status=DRAFT_PENDING,
                )
            )
        logger.info("email.draft_saved", extra={"user_id": user_id, "persona": persona})
        return PendingApproval(
            draft_id=draft_id,
            recipients=list(recipients),
            subject=subject,
            body=body,
            client_id=client_id,
        )

    def get_draft(self, user_id: str, draft_id: str) -> Dict[str, Any]:
        with self._session_factory() as session:
            row = session.execute(
                select(email_drafts)
                .where(email_drafts.c.user_id == user_id)
                .where(email_drafts.c.id == draft_id)
            ).first()
        if row is None:
            raise NotFoundError("Draft not found")
        return row_to_dict(row)

    def _transition(self, user_id: str, draft_id: str, from_status: str, **values) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                update(email_drafts)
                .where(email_drafts.c.user_id == user_id)
                .where(email_drafts.c.id == draft_id)
                .where(email_drafts.c.status == from_status)
                .values(**values)
            )
        return result.rowcount == 1

    def approve_and_send(self, user_id: str, draft_id: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a pending draft, optionally with user edits to recipients/subject/body."""
        draft = self.get_draft(user_id, draft_id)
        if draft["status"] != DRAFT_PENDING:
            raise ConflictError(f"Draft is already {draft['status']}")

        edits = {key: value for key, value in (overrides or {}).items() if value is not None}
        recipients = list(edits.get("recipients") or draft["recipients"] or [])
        subject = edits.get("subject") or draft["subject"]
        body = edits.get("body") or draft["body"]
        recipients = [address for address in recipients if address]
        if not recipients:
            raise ValidationError("Draft has no recipients")

        # Claim the draft so a concurrent approval cannot send it twice
        if not self._transition(user_id, draft_id, DRAFT_PENDING, status=DRAFT_SENDING):
            raise ConflictError("Draft is no longer pending")

        try:
            message_id = self.sender.send(user_id, recipients, subject, body)
        except Exception:
            self._transition(user_id, draft_id, DRAFT_SENDING, status=DRAFT_PENDING)
            logger.warning("email.send_failed", extra={"user_id": user_id}, exc_info=True)
            raise

        self._transition(
            user_id,
            draft_id,
            DRAFT_SENDING,
            status=DRAFT_SENT,
            recipients=recipients,
            subject=subject,
            body=body,
            provider_message_id=message_id,
            sent_at=datetime.now(timezone.utc),
        )
        logger.info("email.sent", extra={"user_id": user_id})
        return self.get_draft(user_id, draft_id)

    def discard(self, user_id: str, draft_id: str) -> Dict[str, Any]:
        draft = self.get_draft(user_id, draft_id)
        if draft["status"] != DRAFT_PENDING:
            raise ConflictError(f"Draft is already {draft['status']}")
        if not self._transition(user_id, draft_id, DRAFT_PENDING, status=DRAFT_DISCARDED):
            raise ConflictError("Draft is no longer pending")
        return self.get_draft(user_id, draft_id)
