"""
FastAPI dependencies: the bridge instance held on app.state, and bearer-token verification
for protected endpoints.
"""
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from bridge_server.audit import EVENT_TOKEN_REJECTED, OUTCOME_FAIL, get_client_ip, log_audit
from bridge_server.database import get_db
from bridge_server.errors import InvalidToken, MissingToken, TokenExpired
from bridge_server.provider import AccessTokenInfo, BridgingAuthorizationServer

logger = logging.getLogger(__name__)


def get_bridge(request: Request) -> BridgingAuthorizationServer:
    """The bridge configured at startup; 503 until upstream discovery has succeeded."""
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "temporarily_unavailable", "error_description": "OAuth provider not initialized"},
        )
    return bridge


security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Extract Bearer token from Authorization header. Raises 401 if missing."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise MissingToken("Missing Authorization header")
    return credentials.credentials


def require_bearer(
    request: Request,
    token: Annotated[str, Depends(get_bearer_token)],
    bridge: Annotated[BridgingAuthorizationServer, Depends(get_bridge)],
    db: Annotated[Session, Depends(get_db)],
) -> AccessTokenInfo:
    """Dependency: valid bridge-issued bearer token -> token info."""
    try:
        return bridge.verify_token(token)
    except InvalidToken as e:
        reason = "expired" if isinstance(e, TokenExpired) else "unknown"
        log_audit(db, EVENT_TOKEN_REJECTED, ip=get_client_ip(request), outcome=OUTCOME_FAIL, detail=reason)
        raise
