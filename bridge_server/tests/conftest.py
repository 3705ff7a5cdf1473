"""
Pytest configuration for bridge_server. In-memory SQLite for the audit log, a fake upstream IdP
and a controllable clock so expiry can be tested without sleeping.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["BRIDGE_DATABASE_URL"] = "sqlite:///:memory:"
for _var in ("OIDC_DISCOVERY_ENDPOINT", "OIDC_CLIENT_ID", "OIDC_CLIENT_SECRET"):
    os.environ.pop(_var, None)

from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from bridge_server.database import init_db
from bridge_server.main import create_app
from bridge_server.provider import BridgingAuthorizationServer
from bridge_server.upstream import UpstreamTokens

UPSTREAM_REDIRECT_URI = "http://localhost:3001/auth/callback"
IDP_AUTHORIZE_URL = "https://idp.example/as/authorize"


class FakeIdP:
    """Records what the bridge sends upstream and answers with canned tokens."""

    def __init__(self):
        self.authorization_requests: list[dict] = []
        self.exchanges: list[dict] = []
        self.exchange_error: Exception | None = None
        self.claims = {"sub": "user-42", "name": "Woody", "email": "woody@example.com"}

    def build_authorization_url(self, *, scopes, state, code_challenge, redirect_uri):
        self.authorization_requests.append(
            {"scopes": scopes, "state": state, "code_challenge": code_challenge, "redirect_uri": redirect_uri}
        )
        params = {
            "scope": " ".join(scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "redirect_uri": redirect_uri,
        }
        return f"{IDP_AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, *, code, code_verifier, redirect_uri):
        self.exchanges.append({"code": code, "code_verifier": code_verifier, "redirect_uri": redirect_uri})
        if self.exchange_error is not None:
            raise self.exchange_error
        return UpstreamTokens(access_token=f"upstream-at-{code}", id_token="upstream.id.token")

    def extract_claims(self, tokens):
        if not tokens.id_token:
            return None
        return dict(self.claims)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_idp():
    return FakeIdP()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bridge(fake_idp, clock):
    return BridgingAuthorizationServer(fake_idp, UPSTREAM_REDIRECT_URI, clock=clock)


@pytest.fixture
def app(bridge):
    init_db()
    return create_app(bridge)


@pytest.fixture
def client(app):
    return TestClient(app)
