import time

import jwt
import pytest

from contractorai.core.auth import verify_supabase_jwt
from contractorai.core.errors import AuthorizationError, ConfigurationError


SECRET = "test-jwt-secret-with-at-least-32-bytes"


def _token(sub="user_1", exp_offset=3600, audience="authenticated", secret=SECRET):
    claims = {"aud": audience, "exp": int(time.time()) + exp_offset}
    if sub is not None:
        claims["sub"] = sub
    return jwt.encode(claims, secret, algorithm="HS256")


def test_valid_token_returns_subject():
    assert verify_supabase_jwt(_token()) == "user_1"


def test_expired_token():
    with pytest.raises(AuthorizationError) as exc:
        verify_supabase_jwt(_token(exp_offset=-60))
    assert exc.value.message == "Token expired"


def test_wrong_signature_or_audience():
    with pytest.raises(AuthorizationError):
        verify_supabase_jwt(_token(secret="another-secret-that-is-also-32-bytes-long"))
    with pytest.raises(AuthorizationError):
        verify_supabase_jwt(_token(audience="anon"))


def test_token_without_subject():
    with pytest.raises(AuthorizationError):
        verify_supabase_jwt(_token(sub=None))


def test_missing_secret(monkeypatch):
    from contractorai.core.config import settings

    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)
    with pytest.raises(ConfigurationError):
        verify_supabase_jwt(_token())


def test_bearer_token_wins_over_header():
    from fastapi.testclient import TestClient
    from contractorai.main import app

    client = TestClient(app)
    resp = client.get(
        "/api/subscriptions/details",
        headers={"Authorization": "Bearer not-a-jwt", "X-User-Id": "user_1"},
    )
    assert resp.status_code == 401


def test_header_identity_disabled(monkeypatch):
    from fastapi.testclient import TestClient
    from contractorai.core.config import settings
    from contractorai.main import app

    monkeypatch.setattr(settings, "ALLOW_USER_ID_HEADER", False)
    resp = TestClient(app).get("/api/subscriptions/details", headers={"X-User-Id": "user_1"})
    assert resp.status_code == 401
