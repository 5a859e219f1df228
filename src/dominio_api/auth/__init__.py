from dominio_api.auth.credential_store import (
    Credential,
    CredentialStore,
    access_token_key,
    api_key_key,
    oauth_state_key,
    refresh_token_key,
)
from dominio_api.auth.token_lifecycle import (
    AuthResult,
    AuthorizationGrant,
    OAuthClientConfig,
    Principal,
    RefreshedTokens,
    TokenLifecycleManager,
)

__all__ = [
    "AuthResult",
    "AuthorizationGrant",
    "Credential",
    "CredentialStore",
    "OAuthClientConfig",
    "Principal",
    "RefreshedTokens",
    "TokenLifecycleManager",
    "access_token_key",
    "api_key_key",
    "oauth_state_key",
    "refresh_token_key",
]
