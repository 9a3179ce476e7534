"""
Stripe web billing client.

Implements the BillingSDK protocol directly on the Stripe API for
deployments that bill web customers without RevenueCat. Customers are
located by metadata.user_id; active and trialing subscriptions become
entitlements through the configured price map.
"""
from datetime import datetime, timezone
from typing import Dict, Optional
import logging

import stripe

from contractorai.core.config import settings
from contractorai.core.errors import ConfigurationError, UpstreamServiceError
from contractorai.features.subscriptions.models import CustomerSnapshot, EntitlementInfo


logger = logging.getLogger("contractorai")

ACTIVE_STATUSES = ("active", "trialing")


class StripeBillingClient:
    """Stripe implementation of the BillingSDK protocol."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        price_entitlements: Optional[Dict[str, str]] = None,
        default_entitlement: Optional[str] = None,
    ):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.price_entitlements = (
            price_entitlements if price_entitlements is not None else settings.stripe_price_entitlements()
        )
        self.default_entitlement = default_entitlement or settings.PRO_ENTITLEMENT_ID
        self.app_user_id: Optional[str] = None

    def configure(self, app_user_id: str) -> None:
        if not self.secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY not configured")
        stripe.api_key = self.secret_key
        self.app_user_id = app_user_id

    def _find_customer_id(self) -> Optional[str]:
        result = stripe.Customer.search(query=f"metadata['user_id']:'{self.app_user_id}'", limit=1)
        if not result.data:
            return None
        return result.data[0].id

    def _entitlement_for(self, subscription) -> EntitlementInfo:
        items = subscription["items"].data
        item = items[0] if items else None
        price_id = item.price.id if item is not None else None
        period_end = getattr(subscription, "current_period_end", None)
        if period_end is None and item is not None:
            # Newer API versions carry the period on the item
            period_end = getattr(item, "current_period_end", None)
        return EntitlementInfo(
            identifier=self.price_entitlements.get(price_id, self.default_entitlement),
            product_id=price_id,
            expires_at=datetime.fromtimestamp(period_end, timezone.utc) if period_end else None,
            will_renew=not getattr(subscription, "cancel_at_period_end", False),
        )

    def get_customer_info(self) -> CustomerSnapshot:
        if not self.app_user_id:
            raise ConfigurationError("Stripe client used before configure()")
        try:
            customer_id = self._find_customer_id()
            if customer_id is None:
                return CustomerSnapshot(app_user_id=None)
            subscriptions = stripe.Subscription.list(customer=customer_id, status="all", limit=20)
        except stripe.StripeError as e:
            raise UpstreamServiceError(f"Stripe lookup failed: {e}", service="stripe")

        active: Dict[str, EntitlementInfo] = {}
        for subscription in subscriptions.data:
            if subscription.status not in ACTIVE_STATUSES:
                continue
            info = self._entitlement_for(subscription)
            active.setdefault(info.identifier, info)
        return CustomerSnapshot(app_user_id=customer_id, active_entitlements=active)

    def restore_purchases(self, fetch_token: Optional[str] = None) -> CustomerSnapshot:
        # Stripe state is server-side; restoring is a re-read
        return self.get_customer_info()
