"""Tests for PKCE helpers."""
import hashlib
import re
from base64 import urlsafe_b64encode

from bridge_server.pkce import compute_challenge, generate_pkce, generate_token, verify_pkce


def test_generate_token_is_urlsafe_and_long():
    t = generate_token()
    assert len(t) >= 43  # 32 bytes of entropy
    assert re.match(r"^[A-Za-z0-9_-]+$", t)
    assert generate_token() != t


def test_generate_pkce_returns_verifier_and_challenge():
    verifier, challenge = generate_pkce()
    assert 43 <= len(verifier) <= 128
    assert re.match(r"^[A-Za-z0-9_-]+$", verifier)
    assert len(challenge) == 43  # base64url(SHA256 digest) no padding
    assert challenge == compute_challenge(verifier)


def test_compute_challenge_matches_rfc7636_appendix_b():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert compute_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_verify_pkce():
    verifier, challenge = generate_pkce()
    assert verify_pkce(verifier, challenge) is True
    assert verify_pkce("wrong-verifier", challenge) is False
    assert verify_pkce("", challenge) is False
    assert verify_pkce(verifier, "") is False


def test_verify_pkce_rejects_plain_method_value():
    """The challenge must be the S256 hash, never the verifier itself."""
    verifier = "a" * 43
    assert verify_pkce(verifier, verifier) is False
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    assert verify_pkce(verifier, urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")) is True


def test_verify_pkce_non_ascii_verifier():
    assert verify_pkce("vérifier", "x" * 43) is False
