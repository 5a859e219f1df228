from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
import logging
import time
from typing import Callable, Literal

from dominio_api.storage import KeyValueStore


LOGGER = logging.getLogger(__name__)

CredentialKind = Literal["oauth", "api_key"]


def oauth_state_key(state: str) -> str:
    return f"oauth_state_{state}"


def access_token_key(handle: str) -> str:
    return f"access_token_{handle}"


def refresh_token_key(handle: str) -> str:
    return f"refresh_token_{handle}"


def api_key_key(key_hash: str) -> str:
    return f"api_key_{key_hash}"


@dataclass(frozen=True)
class Credential:
    kind: CredentialKind
    subject_id: str
    secret_material: str
    expires_at_epoch_ms: int
    refresh_material: str | None = None
    scope_or_permissions: tuple[str, ...] = field(default_factory=tuple)
    token_type: str = "Bearer"

    def is_expired(self, now_epoch_ms: int) -> bool:
        return now_epoch_ms > self.expires_at_epoch_ms

    def to_json(self) -> str:
        payload = asdict(self)
        payload["scope_or_permissions"] = list(self.scope_or_permissions)
        return json.dumps(payload)

    @classmethod
    def from_json(cls, raw: str) -> "Credential":
        data = json.loads(raw)
        return cls(
            kind=data["kind"],
            subject_id=str(data["subject_id"]),
            secret_material=str(data["secret_material"]),
            expires_at_epoch_ms=int(data["expires_at_epoch_ms"]),
            refresh_material=data.get("refresh_material"),
            scope_or_permissions=tuple(data.get("scope_or_permissions") or ()),
            token_type=data.get("token_type") or "Bearer",
        )


class CredentialStore:
    """Token and API-key records kept in the shared key-value cache.

    Reads never hand out a credential past ``expires_at_epoch_ms``; such
    entries are deleted on the spot. There is no transactional guarantee
    across concurrent get/put/delete from different requests.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        time_fn: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self._time_fn = time_fn or time.time

    def now_epoch_ms(self) -> int:
        return int(self._time_fn() * 1000)

    def get(self, key: str) -> Credential | None:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            credential = Credential.from_json(raw)
        except (ValueError, KeyError, TypeError):
            LOGGER.warning("Discarding undecodable credential record", extra={"key": key})
            self.store.delete(key)
            return None
        if credential.is_expired(self.now_epoch_ms()):
            LOGGER.info("Evicting expired credential", extra={"key": key})
            self.store.delete(key)
            return None
        return credential

    def put(self, key: str, credential: Credential, ttl_seconds: int) -> None:
        self.store.put(key, credential.to_json(), ttl_seconds)

    def delete(self, key: str) -> None:
        self.store.delete(key)

    def remember_state(self, state: str, ttl_seconds: int) -> None:
        self.store.put(oauth_state_key(state), "valid", ttl_seconds)

    def has_state(self, state: str) -> bool:
        return self.store.get(oauth_state_key(state)) is not None

    def forget_state(self, state: str) -> None:
        self.store.delete(oauth_state_key(state))


__all__ = [
    "Credential",
    "CredentialKind",
    "CredentialStore",
    "access_token_key",
    "api_key_key",
    "oauth_state_key",
    "refresh_token_key",
]
