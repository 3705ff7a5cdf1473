"""
Bridging authorization server.

To the downstream (MCP) client this is an ordinary OAuth 2.0 authorization server with PKCE:
it issues its own codes and opaque bearer tokens. Real authentication is delegated to an
upstream OIDC provider through a second, independent PKCE flow. Upstream tokens and the
upstream code_verifier never leave this object.

Flow:
  authorize()                  downstream params stored under a fresh upstream state; returns IdP URL
  complete_upstream_callback() upstream state consumed, upstream code exchanged, bridge code minted
  challenge_for_code()         lets /token verify the downstream PKCE verifier
  exchange_code()              bridge code consumed, bearer token minted
  verify_token()               per-request bearer check
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from bridge_server.clients import ClientRegistry, RegisteredClient
from bridge_server.config import ACCESS_TOKEN_EXPIRES, CODE_TTL_SECONDS, PENDING_AUTH_TTL_SECONDS
from bridge_server.errors import (
    ClientMismatch,
    InvalidCode,
    InvalidState,
    InvalidToken,
    TokenExpired,
    Unsupported,
)
from bridge_server.pkce import generate_pkce, generate_token
from bridge_server.stores import (
    AuthorizationServerState,
    IssuedCode,
    IssuedToken,
    PendingAuthorization,
)
from bridge_server.upstream import IdentityProviderClient

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_SCOPES = ("openid", "profile", "email")


@dataclass(frozen=True)
class AuthorizationParams:
    """Downstream /authorize parameters, already validated by the HTTP layer."""

    redirect_uri: str
    code_challenge: str
    state: str | None = None


@dataclass(frozen=True)
class CallbackResult:
    """Where to send the browser after upstream login, and with which bridge code."""

    code: str
    redirect_uri: str
    state: str | None
    client_id: str
    user: dict[str, Any] | None = None


@dataclass(frozen=True)
class AccessTokenInfo:
    token: str
    client_id: str
    scopes: tuple[str, ...]
    expires_at: int  # seconds since epoch
    user: dict[str, Any] | None = None


class BridgingAuthorizationServer:
    def __init__(
        self,
        idp: IdentityProviderClient,
        upstream_redirect_uri: str,
        upstream_scopes: list[str] | tuple[str, ...] = DEFAULT_UPSTREAM_SCOPES,
        *,
        registry: ClientRegistry | None = None,
        state: AuthorizationServerState | None = None,
        pending_ttl: float = PENDING_AUTH_TTL_SECONDS,
        code_ttl: float = CODE_TTL_SECONDS,
        token_ttl: int = ACCESS_TOKEN_EXPIRES,
        clock: Callable[[], float] = time.time,
    ):
        self.idp = idp
        self.upstream_redirect_uri = upstream_redirect_uri
        self.upstream_scopes = list(upstream_scopes)
        self.clients = registry if registry is not None else ClientRegistry()
        self.state = state if state is not None else AuthorizationServerState()
        self.pending_ttl = pending_ttl
        self.code_ttl = code_ttl
        self.token_ttl = token_ttl
        self.clock = clock

    def authorize(self, client: RegisteredClient, params: AuthorizationParams) -> str:
        """
        Record the downstream request and return the upstream authorization URL.
        The pending record is stored before this returns, so the callback can never
        arrive for an unknown state.
        """
        upstream_verifier, upstream_challenge = generate_pkce()
        upstream_state = generate_token()
        now = self.clock()

        self.state.pending.put(
            upstream_state,
            PendingAuthorization(
                client_id=client.client_id,
                redirect_uri=params.redirect_uri,
                code_challenge=params.code_challenge,
                state=params.state,
                upstream_code_verifier=upstream_verifier,
                created_at=now,
                expires_at=now + self.pending_ttl,
            ),
        )
        swept = self.state.pending.sweep(now)
        if swept:
            logger.debug("Dropped %d stale pending authorizations", swept)

        url = self.idp.build_authorization_url(
            scopes=self.upstream_scopes,
            state=upstream_state,
            code_challenge=upstream_challenge,
            redirect_uri=self.upstream_redirect_uri,
        )
        logger.info("Redirecting client_id=%s to upstream IdP", client.client_id)
        return url

    def _take_pending(self, upstream_state: str) -> PendingAuthorization:
        # Atomic lookup-and-delete: a replayed or concurrent callback gets None here
        pending = self.state.pending.pop(upstream_state)
        if pending is None:
            raise InvalidState("Invalid or expired OIDC state parameter")
        if pending.expired(self.clock()):
            raise InvalidState("Invalid or expired OIDC state parameter")
        return pending

    def complete_upstream_callback(self, code: str, state: str) -> CallbackResult:
        """
        Consume the pending authorization for state, exchange the upstream code and
        mint the bridge's own authorization code for the downstream client.
        """
        pending = self._take_pending(state)

        # No store lock is held during the network round trip
        tokens = self.idp.exchange_code(
            code=code,
            code_verifier=pending.upstream_code_verifier,
            redirect_uri=self.upstream_redirect_uri,
        )
        user = self.idp.extract_claims(tokens)

        now = self.clock()
        bridge_code = generate_token()
        self.state.codes.put(
            bridge_code,
            IssuedCode(
                client_id=pending.client_id,
                code_challenge=pending.code_challenge,
                upstream_access_token=tokens.access_token,
                upstream_id_token=tokens.id_token,
                user=user,
                issued_at=now,
                expires_at=now + self.code_ttl,
            ),
        )
        self.state.codes.sweep(now)
        logger.info("Upstream login successful, issuing auth code for client_id=%s", pending.client_id)
        return CallbackResult(
            code=bridge_code,
            redirect_uri=pending.redirect_uri,
            state=pending.state,
            client_id=pending.client_id,
            user=user,
        )

    def reject_upstream_callback(self, state: str) -> PendingAuthorization:
        """Upstream returned an error: drop the pending request and hand back where to report it."""
        pending = self._take_pending(state)
        logger.info("Upstream login failed for client_id=%s", pending.client_id)
        return pending

    def challenge_for_code(self, code: str) -> str:
        record = self.state.codes.get(code)
        if record is None or record.expired(self.clock()):
            raise InvalidCode("Invalid authorization code")
        return record.code_challenge

    def exchange_code(self, client: RegisteredClient, code: str) -> dict:
        """
        Redeem a bridge code (caller has verified PKCE). Single use; a code presented by
        another client is rejected and left for its owner.
        """
        now = self.clock()

        def _check(record: IssuedCode) -> None:
            if record.expired(now):
                raise InvalidCode("Authorization code expired")
            if record.client_id != client.client_id:
                raise ClientMismatch("Authorization code was not issued to this client")

        try:
            record = self.state.codes.pop(code, check=_check)
        except InvalidCode:
            self.state.codes.discard(code)
            raise
        if record is None:
            raise InvalidCode("Invalid authorization code")

        access_token = generate_token()
        self.state.tokens.put(
            access_token,
            IssuedToken(
                client_id=client.client_id,
                expires_at=now + self.token_ttl,
                scopes=(),
                user=record.user,
            ),
        )
        self.state.tokens.sweep(now)
        logger.info("Issued access token for client_id=%s", client.client_id)
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": self.token_ttl,
        }

    def exchange_refresh_token(self, client: RegisteredClient, refresh_token: str) -> dict:
        raise Unsupported("Refresh tokens not supported")

    def verify_token(self, token: str) -> AccessTokenInfo:
        record = self.state.tokens.get(token)
        if record is None:
            raise InvalidToken("Invalid or unknown token")
        if record.expired(self.clock()):
            self.state.tokens.discard(token)
            raise TokenExpired("Token has expired")
        return AccessTokenInfo(
            token=token,
            client_id=record.client_id,
            scopes=record.scopes,
            expires_at=int(record.expires_at),
            user=record.user,
        )

    def revoke_token(self, client: RegisteredClient, token: str) -> bool:
        """RFC 7009: only the owning client may revoke; unknown tokens are not an error."""

        def _owned(record: IssuedToken) -> None:
            if record.client_id != client.client_id:
                raise ClientMismatch("Token was not issued to this client")

        try:
            record = self.state.tokens.pop(token, check=_owned)
        except ClientMismatch:
            logger.warning("client_id=%s tried to revoke a token it does not own", client.client_id)
            return False
        return record is not None
