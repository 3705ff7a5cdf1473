"""
Token revocation endpoint (POST /revoke). RFC 7009.
Bearer tokens are opaque and server-side, so revocation removes them immediately.
"""
import logging

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from bridge_server.audit import EVENT_TOKEN_REVOKED, get_client_ip, log_audit
from bridge_server.client_auth import require_client_auth
from bridge_server.database import get_db
from bridge_server.dependencies import get_bridge
from bridge_server.errors import OAuthError
from bridge_server.provider import BridgingAuthorizationServer

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/revoke")
def revoke(
    request: Request,
    token: str = Form(...),
    token_type_hint: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    bridge: BridgingAuthorizationServer = Depends(get_bridge),
    db: Session = Depends(get_db),
):
    """
    Revoke an access token owned by the calling client. Always 200 for a valid request,
    even if the token is unknown, to avoid leaking information.
    """
    if not token.strip():
        raise OAuthError("token is required")
    client = require_client_auth(bridge.clients, request, client_id, client_secret)
    if bridge.revoke_token(client, token.strip()):
        log_audit(db, EVENT_TOKEN_REVOKED, client_id=client.client_id, ip=get_client_ip(request))
        logger.debug("Revoked access token for client_id=%s", client.client_id)
    return {}
