"""
Tests for app startup: building the bridge from env config, the lifespan and the rate limiter.
"""
from unittest.mock import patch

import httpx
from fastapi.testclient import TestClient

from bridge_server import main as main_module
from bridge_server.database import SessionLocal
from bridge_server.errors import InvalidToken, OAuthError, TokenExpired
from bridge_server.models import AuditLog
from bridge_server.provider import BridgingAuthorizationServer
from bridge_server.rate_limit import SlidingWindowLimiter
from bridge_server.upstream import ProviderMetadata

DISCOVERY_DOC = {
    "issuer": "https://idp.example",
    "authorization_endpoint": "https://idp.example/authorize",
    "token_endpoint": "https://idp.example/token",
    "jwks_uri": "https://idp.example/jwks",
}


def test_build_bridge_without_config_returns_none():
    with patch.object(main_module, "OIDC_DISCOVERY_ENDPOINT", None):
        assert main_module.build_bridge_from_env() is None


def test_build_bridge_discovers_provider():
    metadata = ProviderMetadata.from_discovery(DISCOVERY_DOC)
    with patch.object(main_module, "OIDC_DISCOVERY_ENDPOINT", "https://idp.example"), patch.object(
        main_module, "OIDC_CLIENT_ID", "bridge-client"
    ), patch("bridge_server.upstream.discover", return_value=metadata):
        bridge = main_module.build_bridge_from_env()
    assert isinstance(bridge, BridgingAuthorizationServer)
    assert bridge.idp.client_id == "bridge-client"
    assert bridge.upstream_scopes == ["openid", "profile", "email"]


def test_build_bridge_discovery_failure_returns_none():
    with patch.object(main_module, "OIDC_DISCOVERY_ENDPOINT", "https://idp.example"), patch.object(
        main_module, "OIDC_CLIENT_ID", "bridge-client"
    ), patch("bridge_server.upstream.httpx.get", side_effect=httpx.ConnectError("refused")):
        assert main_module.build_bridge_from_env() is None


def test_build_bridge_non_object_discovery_document_returns_none():
    resp = httpx.Response(
        200,
        content=b'"oops"',
        headers={"content-type": "application/json"},
        request=httpx.Request("GET", "https://idp.example/.well-known/openid-configuration"),
    )
    with patch.object(main_module, "OIDC_DISCOVERY_ENDPOINT", "https://idp.example"), patch.object(
        main_module, "OIDC_CLIENT_ID", "bridge-client"
    ), patch("bridge_server.upstream.httpx.get", return_value=resp):
        assert main_module.build_bridge_from_env() is None
        with TestClient(main_module.create_app()) as client:
            assert client.get("/health").json()["oauth_ready"] is False


def test_lifespan_reports_not_ready_without_config():
    with patch.object(main_module, "OIDC_DISCOVERY_ENDPOINT", None):
        with TestClient(main_module.create_app()) as client:
            r = client.get("/health")
            assert r.json()["oauth_ready"] is False
            assert client.post("/token", data={"grant_type": "authorization_code"}).status_code == 503


def test_lifespan_keeps_injected_bridge(bridge):
    app = main_module.create_app(bridge)
    with TestClient(app) as client:
        assert client.get("/health").json()["oauth_ready"] is True
    assert app.state.bridge is bridge


def test_rejected_bearer_is_audited(client):
    client.get("/me", headers={"Authorization": "Bearer bogus"})
    db = SessionLocal()
    try:
        row = (
            db.query(AuditLog)
            .filter(AuditLog.event_type == "token_rejected")
            .order_by(AuditLog.id.desc())
            .first()
        )
    finally:
        db.close()
    assert row is not None
    assert row.outcome == "fail"
    assert row.detail == "unknown"


def test_error_hierarchy():
    assert TokenExpired("x").status_code == 401
    assert isinstance(TokenExpired("x"), InvalidToken)
    err = OAuthError("bad", error="invalid_scope", status_code=403)
    assert err.to_dict() == {"error": "invalid_scope", "error_description": "bad"}
    assert err.status_code == 403


def test_sliding_window_limiter():
    limiter = SlidingWindowLimiter(2)
    assert limiter.check_and_consume("1.2.3.4") == (True, None)
    assert limiter.check_and_consume("1.2.3.4") == (True, None)
    allowed, retry_after = limiter.check_and_consume("1.2.3.4")
    assert allowed is False
    assert 1 <= retry_after <= 60
    # Keys are independent
    assert limiter.check_and_consume("5.6.7.8")[0] is True
    limiter.reset()
    assert limiter.check_and_consume("1.2.3.4")[0] is True


def test_limit_zero_disables_limiting():
    limiter = SlidingWindowLimiter(0)
    assert all(limiter.check_and_consume("k")[0] for _ in range(100))
