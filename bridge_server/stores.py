"""
In-memory state for in-flight authorizations, issued codes and bearer tokens.
Each store has its own lock; callers never hold one across network I/O.
"""
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar


@dataclass(frozen=True)
class PendingAuthorization:
    """A downstream /authorize request waiting for the user to finish upstream login."""

    client_id: str
    redirect_uri: str
    code_challenge: str
    state: str | None
    upstream_code_verifier: str
    created_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class IssuedCode:
    client_id: str
    code_challenge: str
    upstream_access_token: str
    upstream_id_token: str | None
    user: dict[str, Any] | None
    issued_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class IssuedToken:
    client_id: str
    expires_at: float
    scopes: tuple[str, ...] = ()
    user: dict[str, Any] | None = None

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


V = TypeVar("V", PendingAuthorization, IssuedCode, IssuedToken)


class RecordStore(Generic[V]):
    """Lock-protected key -> record map. Records expose expired(now)."""

    def __init__(self):
        self._items: dict[str, V] = {}
        self._lock = threading.Lock()

    def put(self, key: str, record: V) -> None:
        with self._lock:
            self._items[key] = record

    def get(self, key: str) -> V | None:
        with self._lock:
            return self._items.get(key)

    def pop(self, key: str, check: Callable[[V], None] | None = None) -> V | None:
        """
        Atomically remove and return the record for key (None if absent).
        If check is given it runs under the lock before removal; if it raises,
        the record stays in place and the exception propagates.
        """
        with self._lock:
            record = self._items.get(key)
            if record is None:
                return None
            if check is not None:
                check(record)
            del self._items[key]
            return record

    def discard(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def sweep(self, now: float) -> int:
        """Drop expired records; returns how many were removed."""
        with self._lock:
            expired = [k for k, r in self._items.items() if r.expired(now)]
            for k in expired:
                del self._items[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items


@dataclass
class AuthorizationServerState:
    pending: RecordStore[PendingAuthorization] = field(default_factory=RecordStore)
    codes: RecordStore[IssuedCode] = field(default_factory=RecordStore)
    tokens: RecordStore[IssuedToken] = field(default_factory=RecordStore)
