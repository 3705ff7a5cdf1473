"""
Browser-facing legs of the flow.
GET /authorize: validate the downstream request, hand off to the upstream IdP.
GET /auth/callback: upstream IdP returns here; mint the bridge code and redirect to the downstream client.
"""
import html
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from bridge_server.audit import (
    EVENT_AUTHORIZE,
    EVENT_CODE_ISSUED,
    EVENT_UPSTREAM_LOGIN_FAIL,
    EVENT_UPSTREAM_LOGIN_OK,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
    get_client_ip,
    log_audit,
)
from bridge_server.database import get_db
from bridge_server.dependencies import get_bridge
from bridge_server.errors import InvalidState, UpstreamExchangeFailed
from bridge_server.provider import AuthorizationParams, BridgingAuthorizationServer

logger = logging.getLogger(__name__)
router = APIRouter()

# Upstream error codes passed through unchanged to the downstream client
_FORWARDED_UPSTREAM_ERRORS = {
    "access_denied",
    "invalid_scope",
    "server_error",
    "temporarily_unavailable",
    "login_required",
    "consent_required",
    "interaction_required",
}


def _error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
</body>
</html>""",
        status_code=status_code,
    )


def with_query(url: str, params: dict[str, str]) -> str:
    """Set query parameters on url, keeping any it already has."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _redirect_error(redirect_uri: str, error: str, error_description: str, state: str | None) -> RedirectResponse:
    params = {"error": error, "error_description": error_description}
    if state:
        params["state"] = state
    return RedirectResponse(url=with_query(redirect_uri, params), status_code=302)


@router.get("/authorize")
def authorize(
    request: Request,
    response_type: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    bridge: BridgingAuthorizationServer = Depends(get_bridge),
    db: Session = Depends(get_db),
):
    """
    OAuth2 authorization endpoint. Errors before redirect_uri is trusted render a page;
    after that they are redirected to the client. scope is accepted and ignored.
    """
    if not client_id:
        return _error_page("Invalid request", "client_id is required.", 400)

    client = bridge.clients.get(client_id)

    if not redirect_uri:
        redirect_uri = client.redirect_policy.default_uri()
        if not redirect_uri:
            return _error_page("Invalid request", "redirect_uri is required.", 400)
    elif not client.redirect_uri_allowed(redirect_uri):
        return _error_page("Invalid request", "redirect_uri not allowed.", 400)

    if response_type != "code":
        return _redirect_error(redirect_uri, "unsupported_response_type", "response_type must be 'code'", state)
    if not code_challenge:
        return _redirect_error(redirect_uri, "invalid_request", "code_challenge is required", state)
    if code_challenge_method != "S256":
        return _redirect_error(redirect_uri, "invalid_request", "code_challenge_method must be S256", state)

    url = bridge.authorize(
        client,
        AuthorizationParams(redirect_uri=redirect_uri, code_challenge=code_challenge, state=state),
    )
    log_audit(db, EVENT_AUTHORIZE, client_id=client.client_id, ip=get_client_ip(request), outcome=OUTCOME_SUCCESS)
    return RedirectResponse(url=url, status_code=302)


@router.get("/auth/callback")
def auth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    bridge: BridgingAuthorizationServer = Depends(get_bridge),
    db: Session = Depends(get_db),
):
    """Redirect target registered at the upstream IdP."""
    ip = get_client_ip(request)
    if not state:
        return _error_page("Error", "Missing authorization code or state.", 400)

    if error:
        try:
            pending = bridge.reject_upstream_callback(state)
        except InvalidState as e:
            return _error_page("Error", e.error_description, 400)
        log_audit(
            db, EVENT_UPSTREAM_LOGIN_FAIL, client_id=pending.client_id, ip=ip, outcome=OUTCOME_FAIL, detail=error
        )
        forwarded = error if error in _FORWARDED_UPSTREAM_ERRORS else "server_error"
        return _redirect_error(
            pending.redirect_uri,
            forwarded,
            error_description or "Upstream login failed",
            pending.state,
        )

    if not code:
        return _error_page("Error", "Missing authorization code or state.", 400)

    try:
        result = bridge.complete_upstream_callback(code, state)
    except InvalidState as e:
        log_audit(db, EVENT_UPSTREAM_LOGIN_FAIL, ip=ip, outcome=OUTCOME_FAIL, detail="invalid_state")
        return _error_page("Error", f"{e.error_description}. Please try logging in again.", 400)
    except UpstreamExchangeFailed as e:
        logger.error("OIDC callback error: %s", e.error_description)
        log_audit(db, EVENT_UPSTREAM_LOGIN_FAIL, ip=ip, outcome=OUTCOME_FAIL, detail="upstream_exchange_failed")
        return _error_page("Authentication failed", e.error_description, 502)

    subject = (result.user or {}).get("sub")
    log_audit(db, EVENT_UPSTREAM_LOGIN_OK, client_id=result.client_id, subject=subject, ip=ip)
    log_audit(db, EVENT_CODE_ISSUED, client_id=result.client_id, subject=subject, ip=ip)

    params = {"code": result.code}
    if result.state:
        params["state"] = result.state
    logger.info("Redirecting back to client_id=%s", result.client_id)
    return RedirectResponse(url=with_query(result.redirect_uri, params), status_code=302)
