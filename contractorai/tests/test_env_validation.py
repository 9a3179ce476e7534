import logging
from types import SimpleNamespace

import pytest

from contractorai.core.config import Settings, validate_config
from contractorai.core.validation import EnvValidationError, validate_env


def _cfg(**overrides):
    values = {
        "ENV": "production",
        "DATABASE_URL": "postgresql://user:pass@db:5432/contractorai",
        "TEST_DATABASE_URL": None,
        "SUPABASE_JWT_SECRET": "secret",
        "GROQ_API_KEY": "gsk",
        "REVENUECAT_NATIVE_API_KEY": "rc",
        "ALLOW_USER_ID_HEADER": False,
        "WEB_BILLING_PROVIDER": "revenuecat",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture(autouse=True)
def enforce_validation(monkeypatch):
    monkeypatch.delenv("SKIP_ENV_VALIDATION", raising=False)


def test_production_config_passes():
    assert validate_env(settings_obj=_cfg()) is True


def test_production_requires_secrets():
    with pytest.raises(EnvValidationError) as exc:
        validate_env(settings_obj=_cfg(GROQ_API_KEY=None))
    assert "GROQ_API_KEY" in str(exc.value)


def test_production_rejects_header_identity():
    with pytest.raises(EnvValidationError):
        validate_env(settings_obj=_cfg(ALLOW_USER_ID_HEADER=True))


def test_test_database_only_in_test_mode():
    with pytest.raises(EnvValidationError):
        validate_env(settings_obj=_cfg(ENV="development", TEST_DATABASE_URL="sqlite://"))
    assert validate_env(settings_obj=_cfg(ENV="test", TEST_DATABASE_URL="sqlite://")) is True


def test_invalid_database_url():
    with pytest.raises(EnvValidationError):
        validate_env(settings_obj=_cfg(DATABASE_URL="not a url"))


def test_unknown_billing_provider():
    with pytest.raises(EnvValidationError):
        validate_env(settings_obj=_cfg(ENV="development", WEB_BILLING_PROVIDER="paddle"))


def test_skip_flag(monkeypatch):
    monkeypatch.setenv("SKIP_ENV_VALIDATION", "1")
    assert validate_env(settings_obj=_cfg(DATABASE_URL="not a url")) is True


def test_validate_config_strict_and_lenient(caplog):
    cfg = Settings(_env_file=None, WEB_BILLING_PROVIDER="stripe", DATABASE_URL="sqlite://")
    with pytest.raises(RuntimeError) as exc:
        validate_config(strict=True, settings_obj=cfg)
    assert "STRIPE_SECRET_KEY" in str(exc.value)

    with caplog.at_level(logging.WARNING, logger="contractorai"):
        assert validate_config(strict=False, settings_obj=cfg) is True
    assert "Missing required configuration" in caplog.text


def test_stripe_price_entitlements_parsing():
    cfg = Settings(_env_file=None, STRIPE_PRICE_ENTITLEMENTS="price_a:Pro, price_b : Ads ,broken,:x")
    assert cfg.stripe_price_entitlements() == {"price_a": "Pro", "price_b": "Ads"}
