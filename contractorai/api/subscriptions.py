"""
Subscription access API.

- GET  /api/subscriptions/access?platform=native|web
- POST /api/subscriptions/refresh   (restore / re-sync, then check)
- POST /api/subscriptions/session   (session start: configure, sync, link, check)
- GET  /api/subscriptions/details
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from contractorai.core.auth import get_current_user_id
from contractorai.features.subscriptions.models import Platform
from contractorai.features.subscriptions.service import SubscriptionReconciler, build_reconciler


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


def get_reconciler() -> SubscriptionReconciler:
    """Adapters hold the configured identity, so one reconciler per request."""
    return build_reconciler()


class AccessResponse(BaseModel):
    has_access: bool


class PlatformRequest(BaseModel):
    platform: Platform


class RefreshRequest(PlatformRequest):
    fetch_token: Optional[str] = None


@router.get("/access", response_model=AccessResponse)
def get_access(
    platform: Platform = Query(Platform.WEB),
    user_id: str = Depends(get_current_user_id),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
):
    return AccessResponse(has_access=reconciler.check_access(user_id, platform))


@router.post("/refresh", response_model=AccessResponse)
def refresh_access(
    body: RefreshRequest,
    user_id: str = Depends(get_current_user_id),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
):
    return AccessResponse(has_access=reconciler.refresh_access(user_id, body.platform, body.fetch_token))


@router.post("/session", response_model=AccessResponse)
def start_session(
    body: PlatformRequest,
    user_id: str = Depends(get_current_user_id),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
):
    return AccessResponse(has_access=reconciler.start_session(user_id, body.platform))


@router.get("/details")
def get_details(
    user_id: str = Depends(get_current_user_id),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
):
    """Most recently updated active record, or null."""
    return reconciler.get_subscription_details(user_id)
