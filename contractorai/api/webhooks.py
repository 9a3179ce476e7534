"""RevenueCat webhook endpoint. Authenticated by the shared Bearer secret, not a user token."""

from typing import Optional

from fastapi import APIRouter, Header, Request

from contractorai.features.subscriptions.webhook import process_revenuecat_event


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/revenuecat")
async def revenuecat_webhook(request: Request, authorization: Optional[str] = Header(None)):
    body = await request.body()
    return process_revenuecat_event(body, authorization)
