import time
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional

from .storage import KeyValueStore, StorageKeys


def parse_scope_string(scope: Optional[str]) -> FrozenSet[str]:
    return frozenset(s for s in str(scope or "").split(" ") if s)


@dataclass(frozen=True)
class AuthSession:
    """Access token plus the facts needed to decide whether it is usable.

    There is no refresh token: once ``expires_at`` passes, the user has to
    sign in again.
    """

    access_token: str
    expires_at: float
    granted_scopes: FrozenSet[str] = frozenset()
    pending_verifier: Optional[str] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        now_ts = float(time.time() if now is None else now)
        return now_ts >= float(self.expires_at)

    def has_scope(self, scope: str) -> bool:
        return scope in self.granted_scopes

    @property
    def scope_string(self) -> str:
        return " ".join(sorted(self.granted_scopes))


class TokenManager:
    """Persists the auth session, client id and in-flight PKCE verifier."""

    def __init__(self, store: KeyValueStore, *, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def persist(self, access_token: str, expires_in: float, scope: Optional[str] = "") -> AuthSession:
        """Store a freshly exchanged token.

        The absolute expiry is fixed here, at exchange time, and never
        recomputed from ``expires_in`` later.
        """

        expires_at = float(self.clock()) + float(expires_in or 0)
        scope_string = str(scope or "")
        self.store.set(StorageKeys.token, str(access_token))
        self.store.set(StorageKeys.expires, repr(expires_at))
        self.store.set(StorageKeys.scopes, scope_string)
        return AuthSession(
            access_token=str(access_token),
            expires_at=expires_at,
            granted_scopes=parse_scope_string(scope_string),
        )

    def clear(self) -> None:
        # The registered client id outlives a sign-out.
        for key in (StorageKeys.token, StorageKeys.expires, StorageKeys.scopes, StorageKeys.verifier):
            self.store.delete(key)

    def restore(self) -> Optional[AuthSession]:
        """Return the persisted session, or None (clearing storage) when unusable."""

        token = self.store.get(StorageKeys.token)
        try:
            expires_at = float(self.store.get(StorageKeys.expires) or 0)
        except ValueError:
            expires_at = 0.0

        if not token or float(self.clock()) >= expires_at:
            self.clear()
            return None

        return AuthSession(
            access_token=token,
            expires_at=expires_at,
            granted_scopes=parse_scope_string(self.store.get(StorageKeys.scopes)),
            pending_verifier=self.store.get(StorageKeys.verifier),
        )

    def remember_verifier(self, verifier: str) -> None:
        self.store.set(StorageKeys.verifier, verifier)

    def consume_verifier(self, fallback: Optional[str] = None) -> Optional[str]:
        """Return the stored verifier, else ``fallback`` (the echoed ``state``)."""

        verifier = self.store.get(StorageKeys.verifier)
        if verifier:
            self.store.delete(StorageKeys.verifier)
            return verifier
        return fallback or None

    def remember_client_id(self, client_id: str) -> None:
        self.store.set(StorageKeys.client_id, client_id)

    def stored_client_id(self) -> Optional[str]:
        return (self.store.get(StorageKeys.client_id) or "").strip() or None
