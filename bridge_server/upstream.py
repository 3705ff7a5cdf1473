"""
Client for the upstream OpenID Connect provider: discovery, authorization URL,
PKCE code exchange and ID token claim extraction.

The bridge only depends on the IdentityProviderClient protocol so tests can swap in a fake IdP.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx
import jwt
from jwt import PyJWKClient

from bridge_server.errors import UpstreamExchangeFailed

logger = logging.getLogger(__name__)

# Claims copied from the upstream ID token onto the bridge's code/token records
USER_CLAIMS = ("sub", "name", "email", "given_name", "family_name")

_WELL_KNOWN_SUFFIX = "/.well-known/openid-configuration"


@dataclass(frozen=True)
class UpstreamTokens:
    access_token: str
    id_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


class IdentityProviderClient(Protocol):
    def build_authorization_url(
        self, *, scopes: list[str], state: str, code_challenge: str, redirect_uri: str
    ) -> str: ...

    def exchange_code(self, *, code: str, code_verifier: str, redirect_uri: str) -> UpstreamTokens: ...

    def extract_claims(self, tokens: UpstreamTokens) -> dict[str, Any] | None: ...


@dataclass(frozen=True)
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str | None = None
    userinfo_endpoint: str | None = None

    @classmethod
    def from_discovery(cls, doc: dict) -> "ProviderMetadata":
        if not isinstance(doc, dict):
            raise ValueError("Discovery document is not a JSON object")
        missing = [k for k in ("issuer", "authorization_endpoint", "token_endpoint") if not doc.get(k)]
        if missing:
            raise ValueError(f"Discovery document missing: {', '.join(missing)}")
        return cls(
            issuer=doc["issuer"],
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            jwks_uri=doc.get("jwks_uri"),
            userinfo_endpoint=doc.get("userinfo_endpoint"),
        )


def discovery_url_for(endpoint: str) -> str:
    """Accept either the issuer URL or the full discovery URL."""
    endpoint = endpoint.strip()
    if "/.well-known/" in endpoint:
        return endpoint
    return endpoint.rstrip("/") + _WELL_KNOWN_SUFFIX


def discover(endpoint: str, timeout: float = 10.0) -> ProviderMetadata:
    """Fetch and parse the provider's discovery document. Raises httpx.HTTPError or ValueError."""
    url = discovery_url_for(endpoint)
    r = httpx.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    r.raise_for_status()
    metadata = ProviderMetadata.from_discovery(r.json())
    logger.info("Discovered OIDC provider issuer=%s", metadata.issuer)
    return metadata


class OIDCProviderClient:
    """Confidential (or public, without secret) OIDC client using client_secret_post."""

    def __init__(
        self,
        metadata: ProviderMetadata,
        client_id: str,
        client_secret: str | None = None,
        *,
        timeout: float = 10.0,
    ):
        self.metadata = metadata
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._jwks_client: PyJWKClient | None = None

    @classmethod
    def from_discovery(
        cls, endpoint: str, client_id: str, client_secret: str | None = None, *, timeout: float = 10.0
    ) -> "OIDCProviderClient":
        return cls(discover(endpoint, timeout=timeout), client_id, client_secret, timeout=timeout)

    def build_authorization_url(
        self, *, scopes: list[str], state: str, code_challenge: str, redirect_uri: str
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        endpoint = self.metadata.authorization_endpoint
        sep = "&" if "?" in endpoint else "?"
        return f"{endpoint}{sep}{urlencode(params)}"

    def exchange_code(self, *, code: str, code_verifier: str, redirect_uri: str) -> UpstreamTokens:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "code_verifier": code_verifier,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        try:
            r = httpx.post(
                self.metadata.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Upstream token endpoint unreachable: %s", e)
            raise UpstreamExchangeFailed("Identity provider unreachable") from e

        if r.status_code != 200:
            err = {}
            if r.headers.get("content-type", "").startswith("application/json"):
                try:
                    err = r.json()
                except ValueError:
                    err = {}
            if not isinstance(err, dict):
                err = {}
            desc = err.get("error_description") or err.get("error") or f"HTTP {r.status_code}"
            logger.warning("Upstream code exchange rejected: %s", desc)
            raise UpstreamExchangeFailed(f"Identity provider rejected the code exchange: {desc}")

        try:
            body = r.json()
        except ValueError as e:
            raise UpstreamExchangeFailed("Identity provider returned a non-JSON token response") from e
        if not isinstance(body, dict):
            raise UpstreamExchangeFailed("Identity provider token response is not a JSON object")
        access_token = body.get("access_token")
        if not access_token:
            raise UpstreamExchangeFailed("Identity provider response has no access_token")
        return UpstreamTokens(
            access_token=access_token,
            id_token=body.get("id_token"),
            token_type=body.get("token_type", "Bearer"),
            expires_in=body.get("expires_in"),
            raw=body,
        )

    def _get_jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            if not self.metadata.jwks_uri:
                raise UpstreamExchangeFailed("Identity provider does not publish jwks_uri")
            self._jwks_client = PyJWKClient(self.metadata.jwks_uri, cache_jwk_set=True, lifespan=300)
        return self._jwks_client

    def extract_claims(self, tokens: UpstreamTokens) -> dict[str, Any] | None:
        """Verify the ID token (signature, iss, aud, exp) and return the user claims, or None without one."""
        if not tokens.id_token:
            return None
        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(tokens.id_token)
            claims = jwt.decode(
                tokens.id_token,
                signing_key.key,
                algorithms=["RS256", "RS384", "RS512", "ES256", "PS256"],
                audience=self.client_id,
                issuer=self.metadata.issuer,
                leeway=60,
            )
        except jwt.PyJWTError as e:
            logger.warning("Upstream ID token rejected: %s", e)
            raise UpstreamExchangeFailed("Identity provider returned an invalid ID token") from e
        return {k: claims[k] for k in USER_CLAIMS if claims.get(k) is not None}
