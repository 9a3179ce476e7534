"""
RevenueCat REST v1 client.

Implements the BillingSDK protocol over httpx:
- GET  /subscribers/{app_user_id}  current customer info
- POST /receipts                   restore from a stored fetch token
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote
import logging

import httpx

from contractorai.core.config import settings
from contractorai.core.errors import ConfigurationError, UpstreamServiceError
from contractorai.features.subscriptions.models import CustomerSnapshot, EntitlementInfo


logger = logging.getLogger("contractorai")

# X-Platform header values understood by RevenueCat
NATIVE_PLATFORM_HEADER = "ios"
WEB_PLATFORM_HEADER = "stripe"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_subscriber(payload: Dict[str, Any], now: Optional[datetime] = None) -> CustomerSnapshot:
    """Map a RevenueCat subscriber payload to a CustomerSnapshot.

    An entitlement is active when its expires_date is absent (lifetime) or in
    the future. Renewal intent is dropped once the backing subscription shows
    an unsubscribe or a billing issue.
    """
    subscriber = payload.get("subscriber")
    if not isinstance(subscriber, dict):
        raise UpstreamServiceError("Malformed subscriber response", service="revenuecat")

    current = now or datetime.now(timezone.utc)
    subscriptions = subscriber.get("subscriptions") or {}
    active: Dict[str, EntitlementInfo] = {}

    for identifier, entitlement in (subscriber.get("entitlements") or {}).items():
        expires_at = _parse_timestamp(entitlement.get("expires_date"))
        if expires_at is not None and expires_at <= current:
            continue
        product_id = entitlement.get("product_identifier")
        subscription = subscriptions.get(product_id) or {}
        will_renew = (
            expires_at is not None
            and not subscription.get("unsubscribe_detected_at")
            and not subscription.get("billing_issues_detected_at")
        )
        active[identifier] = EntitlementInfo(
            identifier=identifier,
            product_id=product_id,
            expires_at=expires_at,
            will_renew=will_renew,
        )

    return CustomerSnapshot(
        app_user_id=subscriber.get("original_app_user_id"),
        active_entitlements=active,
    )


class RevenueCatClient:
    """RevenueCat implementation of the BillingSDK protocol."""

    def __init__(
        self,
        api_key: Optional[str],
        platform_header: str = NATIVE_PLATFORM_HEADER,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.platform_header = platform_header
        self.base_url = (base_url or settings.REVENUECAT_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REVENUECAT_TIMEOUT_SECONDS
        self._transport = transport
        self.app_user_id: Optional[str] = None

    def configure(self, app_user_id: str) -> None:
        if not self.api_key:
            raise ConfigurationError("RevenueCat API key not configured")
        if not app_user_id:
            raise ConfigurationError("RevenueCat requires an app user id")
        self.app_user_id = app_user_id

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "X-Platform": self.platform_header,
                "Content-Type": "application/json",
            },
        )

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.app_user_id:
            raise ConfigurationError("RevenueCat client used before configure()")
        try:
            with self._client() as client:
                response = client.request(method, path, json=json)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(
                f"RevenueCat returned {e.response.status_code}", service="revenuecat"
            )
        except httpx.HTTPError as e:
            raise UpstreamServiceError(f"RevenueCat request failed: {e}", service="revenuecat")
        except ValueError:
            raise UpstreamServiceError("RevenueCat returned invalid JSON", service="revenuecat")

    def get_customer_info(self) -> CustomerSnapshot:
        payload = self._request("GET", f"/subscribers/{quote(self.app_user_id or '', safe='')}")
        return parse_subscriber(payload)

    def restore_purchases(self, fetch_token: Optional[str] = None) -> CustomerSnapshot:
        """Post a stored receipt when one is supplied, else re-read the subscriber."""
        if not fetch_token:
            return self.get_customer_info()
        payload = self._request(
            "POST",
            "/receipts",
            json={"app_user_id": self.app_user_id, "fetch_token": fetch_token},
        )
        return parse_subscriber(payload)
