"""
Downstream client authentication at /token and /revoke (RFC 6749 §3.2.1).
Public clients (auth method "none", including auto-registered ones) only present client_id.
Confidential clients send client_secret in the form or via Authorization: Basic.
"""
import base64
import binascii
import logging

from fastapi import Request

from bridge_server.clients import ClientRegistry, RegisteredClient, verify_secret
from bridge_server.errors import InvalidClient

logger = logging.getLogger(__name__)


def _parse_basic(header_value: str) -> tuple[str, str] | None:
    """Parse 'Basic <base64(client_id:client_secret)>'. Returns (client_id, client_secret) or None."""
    if not header_value or not header_value.strip().lower().startswith("basic "):
        return None
    try:
        decoded = base64.b64decode(header_value.strip()[6:].strip()).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if ":" not in decoded:
        return None
    client_id, _, client_secret = decoded.partition(":")
    return client_id.strip(), client_secret


def get_client_credentials_from_request(
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> tuple[str | None, str | None]:
    """(client_id, client_secret) from the form, falling back to Authorization: Basic."""
    if client_id_form and client_secret_form is not None:
        return client_id_form.strip(), client_secret_form
    auth_header = request.headers.get("Authorization")
    basic = _parse_basic(auth_header) if auth_header else None
    if basic:
        return basic
    if client_id_form:
        return client_id_form.strip(), client_secret_form
    return None, None


def require_client_auth(
    registry: ClientRegistry,
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> RegisteredClient:
    """Resolve and authenticate the client; raises InvalidClient (401)."""
    client_id, client_secret = get_client_credentials_from_request(request, client_id_form, client_secret_form)
    if not client_id:
        raise InvalidClient("client_id is required")
    client = registry.get(client_id)
    if client.is_confidential:
        if not client_secret or not verify_secret(client_secret, client.client_secret_hash):
            logger.info("Client authentication failed for client_id=%s", client_id)
            raise InvalidClient("Invalid client credentials")
    return client
