"""
MCP App backend: OAuth authorization server bridged to an upstream OIDC provider.
Routes: /authorize, /auth/callback, /token, /register, /revoke, well-known metadata,
and the bearer-protected /me. Port 3001 by default.
"""
import logging
from contextlib import asynccontextmanager
from typing import Annotated

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from bridge_server.audit import router as audit_router
from bridge_server.authorize import router as authorize_router
from bridge_server.config import (
    OIDC_CLIENT_ID,
    OIDC_CLIENT_SECRET,
    OIDC_DISCOVERY_ENDPOINT,
    OIDC_HTTP_TIMEOUT,
    OIDC_REDIRECT_URI,
    OIDC_SCOPES,
    RATE_LIMIT_REGISTER_PER_MINUTE,
    RATE_LIMIT_TOKEN_PER_MINUTE,
)
from bridge_server.database import init_db
from bridge_server.dependencies import require_bearer
from bridge_server.errors import InvalidToken, MissingToken, OAuthError
from bridge_server.provider import AccessTokenInfo, BridgingAuthorizationServer
from bridge_server.rate_limit import SlidingWindowLimiter
from bridge_server.register import router as register_router
from bridge_server.revoke import router as revoke_router
from bridge_server.token_endpoint import router as token_router
from bridge_server.upstream import OIDCProviderClient
from bridge_server.well_known import router as well_known_router

logger = logging.getLogger(__name__)


def build_bridge_from_env() -> BridgingAuthorizationServer | None:
    """Discover the upstream IdP and build the bridge; None if unconfigured or unreachable."""
    if not OIDC_DISCOVERY_ENDPOINT or not OIDC_CLIENT_ID:
        logger.warning("OIDC_DISCOVERY_ENDPOINT or OIDC_CLIENT_ID not set; OAuth routes will answer 503")
        return None
    try:
        idp = OIDCProviderClient.from_discovery(
            OIDC_DISCOVERY_ENDPOINT,
            OIDC_CLIENT_ID,
            OIDC_CLIENT_SECRET,
            timeout=OIDC_HTTP_TIMEOUT,
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Failed to initialize OIDC configuration: %s", e)
        return None
    logger.info("OIDC configuration and OAuth bridge initialized")
    return BridgingAuthorizationServer(idp, OIDC_REDIRECT_URI, OIDC_SCOPES)


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    headers = None
    if isinstance(exc, MissingToken):
        # RFC 6750 §3.1: no error code when the request carried no credentials
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, InvalidToken):
        headers = {"WWW-Authenticate": f'Bearer error="{exc.error}"'}
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def create_app(bridge: BridgingAuthorizationServer | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the audit table; discover the upstream IdP unless a bridge was injected."""
        init_db()
        if app.state.bridge is None:
            app.state.bridge = build_bridge_from_env()
        yield

    app = FastAPI(title="MCP App OAuth Bridge", version="1.0.0", lifespan=lifespan)
    app.state.bridge = bridge
    app.state.token_limiter = SlidingWindowLimiter(RATE_LIMIT_TOKEN_PER_MINUTE)
    app.state.register_limiter = SlidingWindowLimiter(RATE_LIMIT_REGISTER_PER_MINUTE)
    app.add_exception_handler(OAuthError, oauth_error_handler)

    app.include_router(authorize_router, tags=["authorize"])
    app.include_router(token_router, tags=["token"])
    app.include_router(register_router, tags=["register"])
    app.include_router(revoke_router, tags=["revoke"])
    app.include_router(well_known_router, tags=["well-known"])
    app.include_router(audit_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "bridge_server", "oauth_ready": app.state.bridge is not None}

    @app.get("/me")
    def me(info: Annotated[AccessTokenInfo, Depends(require_bearer)]):
        """Bearer-protected. Returns the calling client and the upstream user behind the token."""
        return {
            "client_id": info.client_id,
            "scopes": list(info.scopes),
            "expires_at": info.expires_at,
            "user": info.user,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bridge_server.main:app",
        host="127.0.0.1",
        port=3001,
        reload=True,
    )
