"""
PKCE (RFC 7636) helpers, S256 only. Used on both legs: the bridge generates its own
verifier toward the upstream IdP and verifies the downstream client's verifier at /token.
"""
import hashlib
import hmac
import secrets
from base64 import urlsafe_b64encode


def generate_token() -> str:
    """Opaque random value (256 bits) for codes, bearer tokens and upstream state."""
    return secrets.token_urlsafe(32)


def compute_challenge(code_verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge). Verifier is 43 chars (256 bits entropy).
    """
    code_verifier = secrets.token_urlsafe(32)
    return code_verifier, compute_challenge(code_verifier)


def verify_pkce(code_verifier: str, code_challenge: str) -> bool:
    if not code_verifier or not code_challenge:
        return False
    try:
        computed = compute_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(computed, code_challenge)
