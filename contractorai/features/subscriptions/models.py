"""
Subscription domain types.

An EntitlementRecord is the durable belief about one user's access on one
billing platform. At most one exists per (user_id, platform).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from contractorai.core.serialization import as_utc


class Platform(str, Enum):
    NATIVE = "native"
    WEB = "web"

    @property
    def other(self) -> "Platform":
        return Platform.WEB if self is Platform.NATIVE else Platform.NATIVE


class AccessReason(str, Enum):
    ACTIVE_RECORD = "active_record"
    CROSS_PLATFORM_OVERRIDE = "cross_platform_override"
    LIVE_ENTITLEMENT = "live_entitlement"
    NO_ENTITLEMENT = "no_entitlement"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class EntitlementRecord:
    user_id: str
    platform: Platform
    is_active: bool
    product_id: Optional[str] = None
    entitlement_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    will_renew: bool = False
    linked_from_platform: Optional[Platform] = None
    app_user_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def fields(self) -> Dict[str, object]:
        """Mutable columns, used for upsert comparisons."""
        return {
            "is_active": self.is_active,
            "product_id": self.product_id,
            "entitlement_id": self.entitlement_id,
            "expires_at": as_utc(self.expires_at),
            "will_renew": self.will_renew,
            "linked_from_platform": self.linked_from_platform.value if self.linked_from_platform else None,
            "app_user_id": self.app_user_id,
        }

    def linked_copy(self, platform: Platform) -> "EntitlementRecord":
        """Synthesize the record for `platform` from this one."""
        return replace(
            self,
            platform=platform,
            is_active=True,
            linked_from_platform=self.platform,
            updated_at=None,
        )


@dataclass(frozen=True)
class EntitlementInfo:
    identifier: str
    product_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    will_renew: bool = True


@dataclass(frozen=True)
class CustomerSnapshot:
    """A billing provider's current view of one customer."""
    app_user_id: Optional[str]
    active_entitlements: Dict[str, EntitlementInfo] = field(default_factory=dict)

    @property
    def entitlement_ids(self) -> FrozenSet[str]:
        return frozenset(self.active_entitlements)


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: AccessReason
    platform: Optional[Platform] = None

    def __bool__(self) -> bool:
        return self.granted
