"""
Subscription reconciliation service.

Answers "does this user have access" consistently across the native store
and web billing:

1. Store-first: any active record grants access with no SDK call.
2. Cross-platform override: a native record of any state grants access.
3. Live fallback (no records at all): ask the caller's platform adapter;
   an active entitlement is synced to the store before answering.
4. Otherwise denied.

Every external step is fault-isolated. A decision degrades toward denial
only when every source is unreachable and no stored record grants access.
"""

from typing import Any, Dict, List, Mapping, Optional
import logging

from contractorai.core.config import settings
from contractorai.core.errors import AuthorizationError, ConfigurationError
from contractorai.features.subscriptions.adapters import (
    NativeStoreAdapter,
    PlatformEntitlementAdapter,
    WebBillingAdapter,
)
from contractorai.features.subscriptions.models import (
    AccessDecision,
    AccessReason,
    EntitlementRecord,
    Platform,
)
from contractorai.features.subscriptions.revenuecat_client import (
    NATIVE_PLATFORM_HEADER,
    WEB_PLATFORM_HEADER,
    RevenueCatClient,
)
from contractorai.features.subscriptions.store import EntitlementStore
from contractorai.features.subscriptions.stripe_client import StripeBillingClient


logger = logging.getLogger("contractorai")


class SubscriptionReconciler:
    def __init__(self, store: EntitlementStore, adapters: Mapping[Platform, PlatformEntitlementAdapter]):
        self.store = store
        self.adapters = dict(adapters)

    def _adapter(self, platform: Platform) -> PlatformEntitlementAdapter:
        adapter = self.adapters.get(platform)
        if adapter is None:
            raise ConfigurationError(f"No entitlement adapter registered for platform '{platform.value}'")
        return adapter

    def _load_records(self, user_id: str) -> Optional[List[EntitlementRecord]]:
        try:
            return self.store.list_by_user(user_id)
        except Exception as e:
            logger.warning(
                "subscriptions.store_read_failed",
                extra={"user_id": user_id, "error_message": str(e)},
            )
            return None

    def evaluate_access(self, user_id: str, platform: Platform) -> AccessDecision:
        if not user_id:
            raise AuthorizationError("Access check requires an authenticated user")

        records = self._load_records(user_id)
        if records:
            for record in records:
                # Expiry is not consulted here; stale records are corrected by sync and link writes
                if record.is_active:
                    return AccessDecision(True, AccessReason.ACTIVE_RECORD, record.platform)
            if any(record.platform is Platform.NATIVE for record in records):
                # Deliberate: existence of a native purchase outranks its is_active flag
                return AccessDecision(True, AccessReason.CROSS_PLATFORM_OVERRIDE, Platform.NATIVE)
            return AccessDecision(False, AccessReason.NO_ENTITLEMENT)

        adapter = self._adapter(platform)
        adapter.initialize(user_id)
        snapshot = adapter.fetch_snapshot()
        if snapshot is None:
            return AccessDecision(False, AccessReason.UNKNOWN)
        if adapter.has_access(snapshot):
            adapter.sync_to_entitlement_store(snapshot)
            return AccessDecision(True, AccessReason.LIVE_ENTITLEMENT, platform)
        return AccessDecision(False, AccessReason.NO_ENTITLEMENT)

    def check_access(self, user_id: str, platform: Platform) -> bool:
        decision = self.evaluate_access(user_id, platform)
        logger.info(
            "subscriptions.access_checked",
            extra={
                "user_id": user_id,
                "platform": platform.value,
                "status": decision.reason.value,
            },
        )
        return decision.granted

    def link_cross_platform(self, user_id: str) -> List[EntitlementRecord]:
        """Synthesize the missing platform's record from the other one.

        A record synthesized from platform X is never copied back onto X, so
        an expired source cannot be resurrected by its own link.
        """
        records = self._load_records(user_id)
        if not records:
            return []
        by_platform = {record.platform: record for record in records}
        native = by_platform.get(Platform.NATIVE)
        web = by_platform.get(Platform.WEB)

        source: Optional[EntitlementRecord] = None
        if native is not None and not (web is not None and web.is_active):
            if native.linked_from_platform is not Platform.WEB:
                source = native
        elif web is not None and web.is_active and not (native is not None and native.is_active):
            if web.linked_from_platform is not Platform.NATIVE:
                source = web
        if source is None:
            return []

        target = source.platform.other
        try:
            written = self.store.upsert(source.linked_copy(target))
        except Exception as e:
            logger.warning(
                "subscriptions.link_failed",
                extra={"user_id": user_id, "platform": target.value, "error_message": str(e)},
            )
            return []
        logger.info(
            "subscriptions.linked",
            extra={"user_id": user_id, "platform": target.value},
        )
        return [written]

    def refresh_access(self, user_id: str, platform: Platform, fetch_token: Optional[str] = None) -> bool:
        """Restore (native) or re-sync (web), link, then answer from the store."""
        if not user_id:
            raise AuthorizationError("Refresh requires an authenticated user")
        adapter = self._adapter(platform)
        adapter.initialize(user_id)
        if isinstance(adapter, NativeStoreAdapter):
            snapshot = adapter.restore_purchases(fetch_token)
        else:
            snapshot = adapter.fetch_snapshot()
        if snapshot is not None:
            adapter.sync_to_entitlement_store(snapshot)
        self.link_cross_platform(user_id)
        return self.check_access(user_id, platform)

    def start_session(self, user_id: str, platform: Platform) -> bool:
        """Session start: configure the adapter, sync, link, then check."""
        if not user_id:
            raise AuthorizationError("Session requires an authenticated user")
        adapter = self._adapter(platform)
        adapter.initialize(user_id)
        adapter.sync_to_entitlement_store()
        self.link_cross_platform(user_id)
        return self.check_access(user_id, platform)

    def get_subscription_details(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            record = self.store.get_active(user_id)
        except Exception as e:
            logger.warning(
                "subscriptions.details_failed",
                extra={"user_id": user_id, "error_message": str(e)},
            )
            return None
        if record is None:
            return None
        return {
            "platform": record.platform.value,
            "is_active": record.is_active,
            "product_id": record.product_id,
            "entitlement_id": record.entitlement_id,
            "expires_at": record.expires_at.isoformat() if record.expires_at else None,
            "will_renew": record.will_renew,
            "linked_from_platform": record.linked_from_platform.value if record.linked_from_platform else None,
            "updated_at": record.updated_at.isoformat() if record.updated_at else None,
        }


def build_web_sdk():
    provider = (settings.WEB_BILLING_PROVIDER or "revenuecat").lower()
    if provider == "stripe":
        return StripeBillingClient()
    return RevenueCatClient(settings.REVENUECAT_WEB_API_KEY, platform_header=WEB_PLATFORM_HEADER)


def build_reconciler(store: Optional[EntitlementStore] = None) -> SubscriptionReconciler:
    """Request-scoped reconciler wired from settings."""
    entitlement_store = store or EntitlementStore()
    entitlement_id = settings.PRO_ENTITLEMENT_ID
    native = NativeStoreAdapter(
        RevenueCatClient(settings.REVENUECAT_NATIVE_API_KEY, platform_header=NATIVE_PLATFORM_HEADER),
        entitlement_store,
        entitlement_id,
    )
    web = WebBillingAdapter(build_web_sdk(), entitlement_store, entitlement_id)
    return SubscriptionReconciler(entitlement_store, {Platform.NATIVE: native, Platform.WEB: web})
