"""
Bridge configuration. Upstream IdP credentials come from env; nothing secret in this file.
"""
import os

# Public URL of this server; used as issuer in metadata and as the base for endpoint URLs
ISSUER = os.environ.get("BRIDGE_ISSUER", "http://localhost:3001").rstrip("/")

# Upstream OpenID Connect provider
OIDC_DISCOVERY_ENDPOINT = os.environ.get("OIDC_DISCOVERY_ENDPOINT", "")
OIDC_CLIENT_ID = os.environ.get("OIDC_CLIENT_ID", "")
OIDC_CLIENT_SECRET = os.environ.get("OIDC_CLIENT_SECRET", "").strip() or None
# Fixed redirect URI registered at the upstream IdP; the bridge's own callback
OIDC_REDIRECT_URI = os.environ.get("OIDC_REDIRECT_URI", f"{ISSUER}/auth/callback")
OIDC_SCOPES = os.environ.get("OIDC_SCOPES", "openid profile email").split()
OIDC_HTTP_TIMEOUT = float(os.environ.get("OIDC_HTTP_TIMEOUT", "10"))

# How long a user has to finish upstream login before the pending request is dropped
PENDING_AUTH_TTL_SECONDS = int(os.environ.get("PENDING_AUTH_TTL_SECONDS", "600"))

# Lifetime of the bridge's own authorization codes (seconds)
CODE_TTL_SECONDS = int(os.environ.get("CODE_TTL_SECONDS", "300"))

# Bearer token lifetime handed to downstream clients (seconds)
ACCESS_TOKEN_EXPIRES = 3600

# SQLite audit log; in-memory for tests
DATABASE_URL = os.environ.get("BRIDGE_DATABASE_URL", "sqlite:///./bridge_audit.db")

# Per-IP, per minute
RATE_LIMIT_TOKEN_PER_MINUTE = int(os.environ.get("BRIDGE_RATE_LIMIT_TOKEN_PER_MINUTE", "60"))
RATE_LIMIT_REGISTER_PER_MINUTE = int(os.environ.get("BRIDGE_RATE_LIMIT_REGISTER_PER_MINUTE", "20"))
