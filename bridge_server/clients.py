"""
Registry of downstream OAuth clients (in memory, process lifetime).

Unknown client_ids are auto-registered with an accept-any redirect policy. MCP clients
often skip dynamic registration, so the bridge accepts them rather than failing the flow.
This is a trust relaxation: anyone can act as any client_id with an unchecked redirect_uri.
The downstream PKCE check and the upstream login still bind each code to the person who
logged in, but do not stop an attacker-controlled redirect_uri from receiving a code.
"""
import logging
import threading
import time
from dataclasses import dataclass, field

import bcrypt

logger = logging.getLogger(__name__)


class RedirectPolicy:
    def allows(self, uri: str) -> bool:
        raise NotImplementedError

    def default_uri(self) -> str | None:
        """The redirect_uri to use when the request omits it, if unambiguous."""
        return None

    def as_list(self) -> list[str]:
        return []


@dataclass(frozen=True)
class FixedRedirects(RedirectPolicy):
    """Exact-match against the registered URIs."""

    uris: frozenset[str]

    def allows(self, uri: str) -> bool:
        return uri in self.uris

    def default_uri(self) -> str | None:
        if len(self.uris) == 1:
            return next(iter(self.uris))
        return None

    def as_list(self) -> list[str]:
        return sorted(self.uris)


@dataclass(frozen=True)
class AcceptAnyRedirect(RedirectPolicy):
    """Used only for auto-registered clients."""

    def allows(self, uri: str) -> bool:
        return True


@dataclass(frozen=True)
class RegisteredClient:
    client_id: str
    redirect_policy: RedirectPolicy
    grant_types: tuple[str, ...] = ("authorization_code",)
    response_types: tuple[str, ...] = ("code",)
    token_endpoint_auth_method: str = "none"
    client_secret_hash: str | None = None
    client_name: str | None = None
    client_id_issued_at: int = field(default_factory=lambda: int(time.time()))

    def redirect_uri_allowed(self, uri: str) -> bool:
        return self.redirect_policy.allows(uri)

    @property
    def is_confidential(self) -> bool:
        return bool(self.client_secret_hash)


def hash_secret(secret: str) -> str:
    # Bcrypt has a 72-byte limit
    raw = secret.encode("utf-8")
    if len(raw) > 72:
        raw = raw[:72]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_secret(plain: str, hashed: str) -> bool:
    raw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(raw, hashed.encode("utf-8"))


class ClientRegistry:
    def __init__(self):
        self._clients: dict[str, RegisteredClient] = {}
        self._lock = threading.Lock()

    def get(self, client_id: str) -> RegisteredClient:
        """Return the stored client, or synthesize and remember a permissive public one."""
        with self._lock:
            client = self._clients.get(client_id)
            if client is not None:
                return client
            client = RegisteredClient(client_id=client_id, redirect_policy=AcceptAnyRedirect())
            self._clients[client_id] = client
        logger.warning("Auto-registering unknown client_id=%s with accept-any redirect policy", client_id)
        return client

    def register(self, client: RegisteredClient) -> RegisteredClient:
        with self._lock:
            self._clients[client.client_id] = client
        logger.info("Registered client_id=%s (confidential=%s)", client.client_id, client.is_confidential)
        return client

    def __contains__(self, client_id: str) -> bool:
        with self._lock:
            return client_id in self._clients
