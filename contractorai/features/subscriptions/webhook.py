"""
RevenueCat webhook ingestion.

1. Verify the shared bearer secret
2. Check idempotency on event.id (skip if already recorded)
3. Map store and event type onto an entitlement record
4. Upsert the record and run the cross-platform link pass
5. Mark the event processed (or record the error and re-raise)
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import hashlib
import hmac
import json

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from contractorai.core.config import settings
from contractorai.core.database import get_db_session, billing_webhook_events
from contractorai.core.errors import AuthorizationError, ConfigurationError, ValidationError
from contractorai.core.logging import get_request_id, log_event
from contractorai.features.subscriptions.models import EntitlementRecord, Platform
from contractorai.features.subscriptions.service import SubscriptionReconciler
from contractorai.features.subscriptions.store import EntitlementStore


STORE_PLATFORMS = {
    "APP_STORE": Platform.NATIVE,
    "MAC_APP_STORE": Platform.NATIVE,
    "PLAY_STORE": Platform.NATIVE,
    "STRIPE": Platform.WEB,
    "RC_BILLING": Platform.WEB,
}

ACTIVATING_EVENTS = {
    "INITIAL_PURCHASE",
    "RENEWAL",
    "UNCANCELLATION",
    "NON_RENEWING_PURCHASE",
    "PRODUCT_CHANGE",
}
# Access continues until expiry, but renewal intent is gone
NON_RENEWING_EVENTS = {"CANCELLATION", "BILLING_ISSUE"}
DEACTIVATING_EVENTS = {"EXPIRATION", "SUBSCRIPTION_PAUSED"}


def verify_authorization(authorization: Optional[str], secret: Optional[str] = None) -> None:
    expected_secret = secret or settings.REVENUECAT_WEBHOOK_SECRET
    if not expected_secret:
        raise ConfigurationError("REVENUECAT_WEBHOOK_SECRET not configured")
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {expected_secret}"):
        raise AuthorizationError("Invalid webhook authorization")


def _parse_event(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    event = payload.get("event") if isinstance(payload, dict) else None
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise ValidationError("Webhook payload missing event id or type")
    return event


def event_to_record(event: Dict[str, Any], entitlement_id: Optional[str] = None) -> Optional[EntitlementRecord]:
    """Map a RevenueCat event to the record it implies, or None when ignored."""
    platform = STORE_PLATFORMS.get(event.get("store") or "")
    event_type = event.get("type")
    user_id = event.get("app_user_id")
    if platform is None or not user_id:
        return None
    if event_type not in ACTIVATING_EVENTS | NON_RENEWING_EVENTS | DEACTIVATING_EVENTS:
        return None

    pro_entitlement = entitlement_id or settings.PRO_ENTITLEMENT_ID
    entitlement_ids = event.get("entitlement_ids") or (
        [event["entitlement_id"]] if event.get("entitlement_id") else []
    )
    if pro_entitlement in entitlement_ids:
        entitlement = pro_entitlement
    elif platform is Platform.NATIVE and entitlement_ids:
        # Add-on purchases on the native store never grant pro access
        entitlement = None
    else:
        entitlement = entitlement_ids[0] if entitlement_ids else pro_entitlement

    is_active = event_type not in DEACTIVATING_EVENTS and entitlement is not None
    expiration_ms = event.get("expiration_at_ms")
    expires_at = datetime.fromtimestamp(expiration_ms / 1000, timezone.utc) if expiration_ms else None

    return EntitlementRecord(
        user_id=user_id,
        platform=platform,
        is_active=is_active,
        product_id=event.get("product_id"),
        entitlement_id=entitlement if is_active else None,
        expires_at=expires_at,
        will_renew=is_active and event_type in ACTIVATING_EVENTS and expires_at is not None,
        app_user_id=event.get("original_app_user_id"),
    )


def _mark_event(event_id: str, **values) -> None:
    with get_db_session() as session:
        session.execute(
            update(billing_webhook_events)
            .where(billing_webhook_events.c.event_id == event_id)
            .values(**values)
        )


def process_revenuecat_event(
    body: bytes,
    authorization: Optional[str],
    store: Optional[EntitlementStore] = None,
) -> Dict[str, Any]:
    """
    Process a RevenueCat webhook delivery (idempotent on event.id).

    Returns:
        {"received": True, "processed": bool, "reason"?: str, "user_id"?: str}

    Raises:
        AuthorizationError: Bearer secret mismatch
        ValidationError: Malformed payload
    """
    verify_authorization(authorization)
    event = _parse_event(body)
    event_id = str(event["id"])
    payload_hash = hashlib.sha256(body).hexdigest()

    with get_db_session() as session:
        existing = session.execute(
            select(billing_webhook_events.c.id).where(billing_webhook_events.c.event_id == event_id)
        ).fetchone()
        if existing:
            return {"received": True, "processed": False, "reason": "duplicate"}
        try:
            session.execute(
                insert(billing_webhook_events).values(
                    event_id=event_id,
                    event_type=event["type"],
                    user_id=event.get("app_user_id"),
                    payload_hash=payload_hash,
                    processed=False,
                )
            )
            session.commit()
        except IntegrityError:
            # Another delivery of the same event won the insert
            session.rollback()
            return {"received": True, "processed": False, "reason": "duplicate"}

    try:
        record = event_to_record(event)
        if record is None:
            _mark_event(event_id, processed=True, processed_at=datetime.now(timezone.utc))
            log_event(
                "info",
                "subscriptions.webhook_ignored",
                request_id=get_request_id(),
                user_id=event.get("app_user_id"),
                event_type=event["type"],
                extra={"store": event.get("store")},
            )
            return {"received": True, "processed": False, "reason": "ignored"}

        entitlement_store = store or EntitlementStore()
        entitlement_store.upsert(record)
        SubscriptionReconciler(entitlement_store, {}).link_cross_platform(record.user_id)
        _mark_event(event_id, processed=True, processed_at=datetime.now(timezone.utc))
    except Exception as e:
        _mark_event(event_id, error=str(e))
        log_event(
            "error",
            "subscriptions.webhook_failed",
            request_id=get_request_id(),
            user_id=event.get("app_user_id"),
            event_type=event["type"],
            error_code=getattr(e, "code", type(e).__name__),
            extra={"error_message": e},
        )
        raise

    log_event(
        "info",
        "subscriptions.webhook_processed",
        request_id=get_request_id(),
        user_id=record.user_id,
        event_type=event["type"],
        extra={"platform": record.platform.value},
    )
    return {"received": True, "processed": True, "user_id": record.user_id}
