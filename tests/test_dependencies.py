import time

import jwt
import pytest
from fastapi.testclient import TestClient

from skillswap.core import config
from skillswap.core.dependencies import TokenIdentityProvider
from skillswap.main import create_app


SECRET = "test-jwt-secret-with-enough-bytes-for-hs256"
SUPABASE_URL = "https://project.supabase.co"


@pytest.fixture(autouse=True)
def jwt_config(monkeypatch):
    monkeypatch.setattr(config, "JWT_SIGN_KEY", SECRET)
    monkeypatch.setattr(config, "SUPABASE_URL", SUPABASE_URL)


def make_token(sub="uid-A", secret=SECRET, issuer=f"{SUPABASE_URL}/auth/v1", expires_in=3600):
    now = int(time.time())
    claims = {"sub": sub, "iss": issuer, "aud": "authenticated", "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


def test_valid_token_yields_subject():
    assert TokenIdentityProvider(make_token()).current_caller_id() == "uid-A"


def test_recently_expired_token_within_leeway():
    assert TokenIdentityProvider(make_token(expires_in=-30)).current_caller_id() == "uid-A"


@pytest.mark.parametrize(
    "token",
    [
        None,
        "",
        "not-a-jwt",
        make_token(secret="some-other-secret-with-enough-bytes"),
        make_token(issuer="https://elsewhere.example/auth/v1"),
        make_token(expires_in=-3600),
        make_token(sub=""),
    ],
)
def test_invalid_tokens_have_no_identity(token):
    assert TokenIdentityProvider(token).current_caller_id() is None


def test_missing_secret_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr(config, "JWT_SIGN_KEY", None)

    with pytest.raises(RuntimeError):
        TokenIdentityProvider(make_token()).current_caller_id()


def test_routes_require_bearer_token(store):
    with TestClient(create_app(store)) as client:
        assert client.get("/connections").status_code == 401
        assert client.get("/notifications", headers={"Authorization": "Bearer junk"}).status_code == 401

        response = client.get("/connections", headers={"Authorization": f"Bearer {make_token()}"})
        assert response.status_code == 200
        assert response.json() == {"requests": []}


def test_websocket_token_from_query(store):
    with TestClient(create_app(store)) as client:
        with client.websocket_connect(f"/notifications/ws?token={make_token(sub='uid-B')}") as ws:
            assert ws.receive_json() == {"type": "notifications", "notifications": []}
