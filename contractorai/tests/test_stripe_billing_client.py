"""Stripe web billing client with the Stripe API patched out."""
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from contractorai.core.errors import ConfigurationError, UpstreamServiceError
from contractorai.features.subscriptions.stripe_client import StripeBillingClient


PERIOD_END = 1783296000  # 2026-07-06T00:00:00Z


def _subscription(status, price_id, cancel_at_period_end=False):
    return stripe.Subscription.construct_from(
        {
            "id": f"sub_{price_id}",
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "current_period_end": PERIOD_END,
            "items": {"object": "list", "data": [{"id": "si_1", "price": {"id": price_id}}]},
        },
        "sk_test",
    )


def _client():
    client = StripeBillingClient(
        secret_key="sk_test",
        price_entitlements={"price_pro": "ContractorAI Pro"},
        default_entitlement="ContractorAI Pro",
    )
    client.configure("u1")
    return client


def test_active_subscription_maps_to_entitlement():
    customers = SimpleNamespace(data=[SimpleNamespace(id="cus_1")])
    subscriptions = SimpleNamespace(data=[
        _subscription("canceled", "price_old"),
        _subscription("active", "price_pro", cancel_at_period_end=True),
    ])
    with patch.object(stripe.Customer, "search", return_value=customers) as search, \
            patch.object(stripe.Subscription, "list", return_value=subscriptions):
        snapshot = _client().get_customer_info()

    assert "u1" in search.call_args.kwargs["query"]
    assert snapshot.app_user_id == "cus_1"
    info = snapshot.active_entitlements["ContractorAI Pro"]
    assert info.product_id == "price_pro"
    assert info.will_renew is False
    assert info.expires_at == datetime.fromtimestamp(PERIOD_END, timezone.utc)


def test_unknown_customer_has_no_entitlements():
    with patch.object(stripe.Customer, "search", return_value=SimpleNamespace(data=[])):
        snapshot = _client().get_customer_info()
    assert snapshot.entitlement_ids == frozenset()


def test_stripe_errors_become_upstream_errors():
    with patch.object(stripe.Customer, "search", side_effect=stripe.APIConnectionError("boom")):
        with pytest.raises(UpstreamServiceError) as exc:
            _client().get_customer_info()
    assert exc.value.service == "stripe"


def test_configure_requires_secret_key():
    with patch("contractorai.features.subscriptions.stripe_client.settings") as fake_settings:
        fake_settings.STRIPE_SECRET_KEY = None
        fake_settings.PRO_ENTITLEMENT_ID = "ContractorAI Pro"
        fake_settings.stripe_price_entitlements.return_value = {}
        client = StripeBillingClient()
    with pytest.raises(ConfigurationError):
        client.configure("u1")
