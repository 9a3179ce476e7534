"""
Platform entitlement adapters.

Each adapter owns one billing SDK and one platform tag. Adapter methods
never raise except initialize() on a fatal configuration error; SDK
failures are logged and reported as "unknown" (None) or "none" (empty set).
"""

from typing import Dict, Optional, Set
import logging

from contractorai.core.errors import ConfigurationError
from contractorai.features.subscriptions.models import (
    CustomerSnapshot,
    EntitlementInfo,
    EntitlementRecord,
    Platform,
)
from contractorai.features.subscriptions.provider import BillingSDK
from contractorai.features.subscriptions.store import EntitlementStore


logger = logging.getLogger("contractorai")

MARKETING_PREMIUM_ENTITLEMENT = "Marketing Premium"
MARKETING_ADS_ENTITLEMENT = "Marketing Ads"


class PlatformEntitlementAdapter:
    platform: Platform

    def __init__(self, sdk: BillingSDK, store: EntitlementStore, entitlement_id: str):
        self.sdk = sdk
        self.store = store
        self.entitlement_id = entitlement_id
        self.user_id: Optional[str] = None
        self.initialized = False

    def _log_failure(self, operation: str, exc: Exception) -> None:
        logger.warning(
            f"subscriptions.{operation}_failed",
            extra={
                "user_id": self.user_id,
                "platform": self.platform.value,
                "error_message": str(exc),
            },
        )

    def initialize(self, user_id: str) -> None:
        """Configure the SDK for `user_id`; a no-op when already configured for it."""
        if self.initialized and self.user_id == user_id:
            return
        self.user_id = user_id
        self.initialized = False
        try:
            self.sdk.configure(user_id)
        except ConfigurationError:
            raise
        except Exception as e:
            self._log_failure("initialize", e)
            return
        self.initialized = True

    def fetch_snapshot(self) -> Optional[CustomerSnapshot]:
        """Current customer snapshot, or None when the provider is unreachable."""
        if not self.initialized:
            return None
        try:
            return self.sdk.get_customer_info()
        except Exception as e:
            self._log_failure("fetch_snapshot", e)
            return None

    def query_active_entitlements(self) -> Set[str]:
        snapshot = self.fetch_snapshot()
        if snapshot is None:
            return set()
        return set(snapshot.entitlement_ids)

    def has_access(self, snapshot: Optional[CustomerSnapshot]) -> bool:
        if snapshot is None:
            return False
        return self.entitlement_id in snapshot.entitlement_ids

    def _granting_entitlement(self, snapshot: CustomerSnapshot) -> Optional[EntitlementInfo]:
        return snapshot.active_entitlements.get(self.entitlement_id)

    def sync_to_entitlement_store(self, snapshot: Optional[CustomerSnapshot] = None) -> Optional[EntitlementRecord]:
        """Write the provider's current belief for this platform to the store."""
        if not self.initialized or not self.user_id:
            return None
        current = snapshot if snapshot is not None else self.fetch_snapshot()
        if current is None:
            return None

        info = self._granting_entitlement(current) if self.has_access(current) else None
        record = EntitlementRecord(
            user_id=self.user_id,
            platform=self.platform,
            is_active=info is not None,
            product_id=info.product_id if info else None,
            entitlement_id=info.identifier if info else None,
            expires_at=info.expires_at if info else None,
            will_renew=info.will_renew if info else False,
            app_user_id=current.app_user_id,
        )
        try:
            return self.store.upsert(record)
        except Exception as e:
            self._log_failure("sync", e)
            return None

    def marketing_status(self, snapshot: Optional[CustomerSnapshot] = None) -> Dict[str, bool]:
        current = snapshot if snapshot is not None else self.fetch_snapshot()
        ids = current.entitlement_ids if current is not None else frozenset()
        return {
            "premium": MARKETING_PREMIUM_ENTITLEMENT in ids,
            "ads": MARKETING_ADS_ENTITLEMENT in ids,
        }


class NativeStoreAdapter(PlatformEntitlementAdapter):
    """App Store purchases via RevenueCat; only the pro entitlement grants access."""

    platform = Platform.NATIVE

    def restore_purchases(self, fetch_token: Optional[str] = None) -> Optional[CustomerSnapshot]:
        if not self.initialized:
            return None
        try:
            return self.sdk.restore_purchases(fetch_token)
        except Exception as e:
            self._log_failure("restore", e)
            return None


class WebBillingAdapter(PlatformEntitlementAdapter):
    """Web billing; web products carry their own entitlement names, so any active one grants access."""

    platform = Platform.WEB

    def has_access(self, snapshot: Optional[CustomerSnapshot]) -> bool:
        if snapshot is None:
            return False
        return self.entitlement_id in snapshot.entitlement_ids or bool(snapshot.entitlement_ids)

    def _granting_entitlement(self, snapshot: CustomerSnapshot) -> Optional[EntitlementInfo]:
        info = snapshot.active_entitlements.get(self.entitlement_id)
        if info is not None:
            return info
        for identifier in sorted(snapshot.active_entitlements):
            return snapshot.active_entitlements[identifier]
        return None
