"""
Dynamic client registration (POST /register). RFC 7591.
Metadata is accepted as sent; the bridge assigns client_id and, for confidential
auth methods, a client_secret that is stored only as a bcrypt hash.
"""
import logging
import secrets
import time

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bridge_server.audit import EVENT_CLIENT_REGISTERED, get_client_ip, log_audit
from bridge_server.clients import FixedRedirects, RegisteredClient, hash_secret
from bridge_server.database import get_db
from bridge_server.dependencies import get_bridge
from bridge_server.provider import BridgingAuthorizationServer

logger = logging.getLogger(__name__)
router = APIRouter()


class ClientRegistrationRequest(BaseModel):
    redirect_uris: list[str]
    client_name: str | None = None
    grant_types: list[str] = ["authorization_code"]
    response_types: list[str] = ["code"]
    token_endpoint_auth_method: str = "client_secret_post"
    scope: str | None = None


@router.post("/register", status_code=201)
def register(
    request: Request,
    body: ClientRegistrationRequest,
    bridge: BridgingAuthorizationServer = Depends(get_bridge),
    db: Session = Depends(get_db),
):
    request.app.state.register_limiter.enforce(request)

    client_secret = None
    if body.token_endpoint_auth_method != "none":
        client_secret = secrets.token_urlsafe(32)

    client = bridge.clients.register(
        RegisteredClient(
            client_id=secrets.token_urlsafe(16),
            redirect_policy=FixedRedirects(frozenset(body.redirect_uris)),
            grant_types=tuple(body.grant_types),
            response_types=tuple(body.response_types),
            token_endpoint_auth_method=body.token_endpoint_auth_method,
            client_secret_hash=hash_secret(client_secret) if client_secret else None,
            client_name=body.client_name,
            client_id_issued_at=int(time.time()),
        )
    )
    log_audit(db, EVENT_CLIENT_REGISTERED, client_id=client.client_id, ip=get_client_ip(request))

    response = {
        "client_id": client.client_id,
        "client_id_issued_at": client.client_id_issued_at,
        "redirect_uris": client.redirect_policy.as_list(),
        "grant_types": body.grant_types,
        "response_types": body.response_types,
        "token_endpoint_auth_method": body.token_endpoint_auth_method,
    }
    if body.client_name is not None:
        response["client_name"] = body.client_name
    if body.scope is not None:
        response["scope"] = body.scope
    if client_secret:
        response["client_secret"] = client_secret
        response["client_secret_expires_at"] = 0
    return response
