"""
Billing SDK protocol.

Each platform adapter talks to exactly one implementation of this
interface (RevenueCat for the native store, RevenueCat Web Billing or
Stripe for web). Implementations raise UpstreamServiceError on transport
or provider failures and ConfigurationError when credentials are missing.
"""
from typing import Protocol, Optional

from contractorai.features.subscriptions.models import CustomerSnapshot


class BillingSDK(Protocol):

    def configure(self, app_user_id: str) -> None:
        """
        Bind the SDK to an app-user identity.

        Raises:
            ConfigurationError: If the API key is not configured
        """
        ...

    def get_customer_info(self) -> CustomerSnapshot:
        """
        Fetch the provider's current view of the configured customer.

        Raises:
            UpstreamServiceError: If the provider cannot be reached
        """
        ...

    def restore_purchases(self, fetch_token: Optional[str] = None) -> CustomerSnapshot:
        """
        Replay purchase restoration and return the refreshed snapshot.

        Raises:
            UpstreamServiceError: If the provider cannot be reached
        """
        ...
