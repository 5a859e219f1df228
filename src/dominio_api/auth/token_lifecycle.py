from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Any, Mapping
from urllib.parse import urlencode
import uuid

from dominio_api.auth.credential_store import (
    Credential,
    CredentialStore,
    access_token_key,
    api_key_key,
    refresh_token_key,
)
from dominio_api.errors import (
    ApiError,
    InvalidCredentialsError,
    InvalidStateError,
    MissingCredentialsError,
    RefreshFailedError,
    TokenExchangeFailedError,
    UpstreamError,
)
from dominio_api.security import hash_api_key
from dominio_api.upstream.client import ResilientClient


LOGGER = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600
DEFAULT_STATE_TTL_SECONDS = 600
DEFAULT_REFRESH_TTL_SECONDS = 30 * 24 * 3600
DEFAULT_SCOPE = "openid profile email offline_access"
DEFAULT_API_KEY_PERMISSIONS = ("read", "write")


@dataclass(frozen=True)
class OAuthClientConfig:
    authorize_url: str
    client_id: str | None
    client_secret: str | None
    audience: str | None
    scope: str = DEFAULT_SCOPE
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
    keep_state_on_exchange_failure: bool = True
    refresh_ttl_seconds: int = DEFAULT_REFRESH_TTL_SECONDS


@dataclass(frozen=True)
class Principal:
    subject_id: str
    permissions: tuple[str, ...]
    kind: str
    upstream_token: str | None = None


@dataclass(frozen=True)
class AuthResult:
    principal: Principal | None = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.principal is not None


@dataclass(frozen=True)
class AuthorizationGrant:
    token_key: str
    expires_in: int


@dataclass(frozen=True)
class RefreshedTokens:
    access_token: str
    refresh_token: str
    expires_in: int | None


def _expires_in(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        expires_in = int(value)
    except (TypeError, ValueError):
        return None
    return expires_in if expires_in > 0 else None


def _bearer_handle(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    handle = authorization[len("Bearer ") :].strip()
    return handle or None


class TokenLifecycleManager:
    def __init__(
        self,
        *,
        config: OAuthClientConfig,
        credentials: CredentialStore,
        token_client: ResilientClient,
        upstream_service_token: str | None = None,
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.token_client = token_client
        self.upstream_service_token = upstream_service_token

    def begin_authorization(self, *, redirect_uri: str) -> str:
        state = str(uuid.uuid4())
        self.credentials.remember_state(state, self.config.state_ttl_seconds)
        query = urlencode(
            {
                "client_id": self.config.client_id or "",
                "response_type": "code",
                "audience": self.config.audience or "",
                "redirect_uri": redirect_uri,
                "scope": self.config.scope,
                "state": state,
            }
        )
        return f"{self.config.authorize_url.rstrip('/')}/authorize?{query}"

    def _token_request(self, form: dict[str, str]) -> dict[str, Any] | None:
        try:
            response = self.token_client.request(
                "POST",
                "/oauth/token",
                form={
                    "client_id": self.config.client_id or "",
                    "client_secret": self.config.client_secret or "",
                    **form,
                },
            )
        except UpstreamError as exc:
            LOGGER.warning(
                "Token endpoint unreachable",
                extra={"grant_type": form.get("grant_type"), "detail": exc.detail},
            )
            return None
        if not response.is_success:
            LOGGER.warning(
                "Token endpoint rejected %s grant with HTTP %s",
                form.get("grant_type"),
                response.status_code,
            )
            return None
        try:
            payload = response.json()
        except ValueError:
            LOGGER.warning("Token endpoint returned a non-JSON body")
            return None
        if not isinstance(payload, dict) or not payload.get("access_token"):
            LOGGER.warning("Token endpoint response is missing access_token")
            return None
        expires_in = _expires_in(payload.get("expires_in"))
        if expires_in is None and payload.get("expires_in") is not None:
            LOGGER.warning(
                "Ignoring unusable expires_in from token endpoint",
                extra={"grant_type": form.get("grant_type")},
            )
        return {**payload, "expires_in": expires_in}

    def complete_authorization(
        self,
        *,
        code: str,
        state: str,
        redirect_uri: str,
    ) -> AuthorizationGrant:
        # Forged and expired states look the same from here.
        if not self.credentials.has_state(state):
            raise InvalidStateError()

        tokens = self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        if tokens is None:
            if not self.config.keep_state_on_exchange_failure:
                self.credentials.forget_state(state)
            raise TokenExchangeFailedError()

        expires_in = tokens["expires_in"] or DEFAULT_TOKEN_TTL_SECONDS
        token_key = str(uuid.uuid4())
        scope = str(tokens.get("scope") or self.config.scope)
        credential = Credential(
            kind="oauth",
            subject_id=str(tokens.get("sub") or tokens.get("user_id") or "default"),
            secret_material=str(tokens["access_token"]),
            refresh_material=tokens.get("refresh_token"),
            expires_at_epoch_ms=self.credentials.now_epoch_ms() + expires_in * 1000,
            scope_or_permissions=tuple(scope.split()),
            token_type=str(tokens.get("token_type") or "Bearer"),
        )
        self.credentials.put(access_token_key(token_key), credential, expires_in)
        self._remember_refresh(token_key, credential)
        self.credentials.forget_state(state)
        LOGGER.info("Authorization code exchanged", extra={"expires_in": expires_in})
        return AuthorizationGrant(token_key=token_key, expires_in=expires_in)

    def refresh(self, refresh_material: str) -> RefreshedTokens:
        tokens = self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_material,
            }
        )
        if tokens is None:
            raise RefreshFailedError()
        return RefreshedTokens(
            access_token=str(tokens["access_token"]),
            refresh_token=str(tokens.get("refresh_token") or refresh_material),
            expires_in=tokens["expires_in"],
        )

    def _remember_refresh(self, handle: str, credential: Credential) -> None:
        if not credential.refresh_material:
            return
        ttl_seconds = self.config.refresh_ttl_seconds
        self.credentials.put(
            refresh_token_key(handle),
            replace(
                credential,
                expires_at_epoch_ms=self.credentials.now_epoch_ms() + ttl_seconds * 1000,
            ),
            ttl_seconds,
        )

    def refresh_handle(self, handle: str) -> AuthorizationGrant:
        """Renew the upstream access token behind a bearer handle.

        The refresh record outlives the access token, so a handle whose
        access token already expired can still be renewed in place.
        """
        stored = self.credentials.get(refresh_token_key(handle))
        if stored is None or not stored.refresh_material:
            raise InvalidCredentialsError("Invalid or expired token")

        tokens = self.refresh(stored.refresh_material)
        expires_in = tokens.expires_in or DEFAULT_TOKEN_TTL_SECONDS
        credential = replace(
            stored,
            secret_material=tokens.access_token,
            refresh_material=tokens.refresh_token,
            expires_at_epoch_ms=self.credentials.now_epoch_ms() + expires_in * 1000,
        )
        self.credentials.put(access_token_key(handle), credential, expires_in)
        self._remember_refresh(handle, credential)
        LOGGER.info("Access token refreshed", extra={"expires_in": expires_in})
        return AuthorizationGrant(token_key=handle, expires_in=expires_in)

    def revoke(self, handle: str) -> None:
        self.credentials.delete(access_token_key(handle))
        self.credentials.delete(refresh_token_key(handle))

    def register_api_key(
        self,
        raw_key: str,
        *,
        subject_id: str,
        permissions: tuple[str, ...] = DEFAULT_API_KEY_PERMISSIONS,
        ttl_seconds: int,
    ) -> str:
        key_hash = hash_api_key(raw_key)
        credential = Credential(
            kind="api_key",
            subject_id=subject_id,
            secret_material=key_hash,
            expires_at_epoch_ms=self.credentials.now_epoch_ms() + ttl_seconds * 1000,
            scope_or_permissions=permissions,
        )
        self.credentials.put(api_key_key(key_hash), credential, ttl_seconds)
        return key_hash

    def authenticate(self, headers: Mapping[str, str]) -> AuthResult:
        api_key = headers.get("x-api-key")
        if api_key:
            credential = self.credentials.get(api_key_key(hash_api_key(api_key)))
            if credential is None:
                return AuthResult(error=InvalidCredentialsError("Invalid API key"))
            return AuthResult(
                principal=Principal(
                    subject_id=credential.subject_id,
                    permissions=credential.scope_or_permissions or DEFAULT_API_KEY_PERMISSIONS,
                    kind="api_key",
                    upstream_token=self.upstream_service_token,
                )
            )

        handle = _bearer_handle(headers.get("authorization"))
        if handle:
            credential = self.credentials.get(access_token_key(handle))
            if credential is None:
                return AuthResult(error=InvalidCredentialsError("Invalid or expired token"))
            return AuthResult(
                principal=Principal(
                    subject_id=credential.subject_id,
                    permissions=credential.scope_or_permissions,
                    kind="oauth",
                    upstream_token=credential.secret_material,
                )
            )

        return AuthResult(error=MissingCredentialsError())


__all__ = [
    "AuthResult",
    "AuthorizationGrant",
    "OAuthClientConfig",
    "Principal",
    "RefreshedTokens",
    "TokenLifecycleManager",
]
