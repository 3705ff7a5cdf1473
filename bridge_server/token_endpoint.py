"""
Token endpoint (POST /token). authorization_code grant only; refresh_token is answered
with unsupported_grant_type.
"""
import logging

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from bridge_server.audit import EVENT_TOKEN_ISSUED, OUTCOME_FAIL, get_client_ip, log_audit
from bridge_server.client_auth import require_client_auth
from bridge_server.database import get_db
from bridge_server.dependencies import get_bridge
from bridge_server.errors import InvalidCode, OAuthError, Unsupported
from bridge_server.pkce import verify_pkce
from bridge_server.provider import BridgingAuthorizationServer

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/token")
def token(
    request: Request,
    grant_type: str = Form(...),
    code: str | None = Form(None),
    code_verifier: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    refresh_token: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    bridge: BridgingAuthorizationServer = Depends(get_bridge),
    db: Session = Depends(get_db),
):
    """
    authorization_code: check PKCE against the challenge stored with the code, then redeem it.
    redirect_uri is accepted for compatibility; the code is bound to its client and PKCE verifier.
    """
    request.app.state.token_limiter.enforce(request)
    client = require_client_auth(bridge.clients, request, client_id, client_secret)

    if grant_type == "refresh_token":
        return bridge.exchange_refresh_token(client, refresh_token or "")
    if grant_type != "authorization_code":
        raise Unsupported("Only authorization_code is supported")

    if not code or not code_verifier:
        raise OAuthError("code and code_verifier are required for authorization_code grant")

    try:
        challenge = bridge.challenge_for_code(code)
        if not verify_pkce(code_verifier, challenge):
            raise InvalidCode("PKCE verification failed")
        tokens = bridge.exchange_code(client, code)
    except OAuthError as e:
        log_audit(
            db,
            EVENT_TOKEN_ISSUED,
            client_id=client.client_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
            detail=e.error_description,
        )
        raise

    log_audit(db, EVENT_TOKEN_ISSUED, client_id=client.client_id, ip=get_client_ip(request))
    return tokens
