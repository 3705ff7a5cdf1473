"""
Well-known metadata: OAuth authorization server (RFC 8414) and protected resource (RFC 9728).
MCP clients read these to find /authorize, /token and /register.
"""
from fastapi import APIRouter

from bridge_server.config import ISSUER

router = APIRouter()


@router.get("/.well-known/oauth-authorization-server")
def oauth_authorization_server():
    return {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/authorize",
        "token_endpoint": f"{ISSUER}/token",
        "registration_endpoint": f"{ISSUER}/register",
        "revocation_endpoint": f"{ISSUER}/revoke",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "code_challenge_methods_supported": ["S256"],
        "token_endpoint_auth_methods_supported": ["client_secret_post", "client_secret_basic", "none"],
        "revocation_endpoint_auth_methods_supported": ["client_secret_post", "client_secret_basic", "none"],
    }


@router.get("/.well-known/oauth-protected-resource")
def oauth_protected_resource():
    return {
        "resource": ISSUER,
        "authorization_servers": [ISSUER],
        "bearer_methods_supported": ["header"],
    }
