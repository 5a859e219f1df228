from __future__ import annotations

from dataclasses import dataclass
import os


_HARDENED_ENVIRONMENTS = {"production", "prod", "ci"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: str
    upstream_base_url: str
    oauth_authorize_url: str
    oauth_client_id: str | None
    oauth_client_secret: str | None
    oauth_audience: str | None
    oauth_scope: str
    oauth_state_ttl_seconds: int
    oauth_keep_state_on_exchange_failure: bool
    oauth_refresh_ttl_seconds: int
    upstream_service_token: str | None
    redis_url: str | None
    upstream_timeout_ms: int
    upstream_max_retries: int
    api_rate_limit_requests: int
    api_rate_limit_window_seconds: int
    batch_max_documents: int
    document_upload_max_mb: float
    clients_cache_ttl_seconds: int
    status_cache_reuse_non_terminal: bool
    cors_allowed_origins: tuple[str, ...]


def is_hardened_environment(environment: str) -> bool:
    return environment.strip().lower() in _HARDENED_ENVIRONMENTS


def parse_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip()
    if not normalized:
        return default
    return normalized


def parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value, got {raw!r}") from exc


def parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer value, got {raw!r}") from exc


def parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    values = tuple(item.strip() for item in raw.split(",") if item.strip())
    if not values:
        return default
    return values


def load_settings() -> Settings:
    environment = parse_str_env("ENVIRONMENT", "development") or "development"
    hardened_environment = is_hardened_environment(environment)

    upstream_base_url = parse_str_env("DOMINIO_BASE_URL")
    oauth_client_id = parse_str_env("THOMSON_CLIENT_ID")
    oauth_client_secret = parse_str_env("THOMSON_CLIENT_SECRET")
    oauth_audience = parse_str_env("THOMSON_AUDIENCE")
    redis_url = parse_str_env("REDIS_URL")

    if hardened_environment and not upstream_base_url:
        raise ValueError("DOMINIO_BASE_URL is required when ENVIRONMENT is production/prod/ci")
    if hardened_environment and not (oauth_client_id and oauth_client_secret):
        raise ValueError(
            "THOMSON_CLIENT_ID and THOMSON_CLIENT_SECRET are required when ENVIRONMENT is production/prod/ci"
        )
    if hardened_environment and not oauth_audience:
        raise ValueError("THOMSON_AUDIENCE is required when ENVIRONMENT is production/prod/ci")
    if hardened_environment and not redis_url:
        # Credentials, rate counters and status cache must be shared across instances.
        raise ValueError("REDIS_URL is required when ENVIRONMENT is production/prod/ci")

    upstream_timeout_ms = parse_int_env("UPSTREAM_TIMEOUT_MS", 30_000)
    if upstream_timeout_ms < 1:
        raise ValueError("UPSTREAM_TIMEOUT_MS must be >= 1")
    upstream_max_retries = parse_int_env("UPSTREAM_MAX_RETRIES", 3)
    if upstream_max_retries < 1:
        raise ValueError("UPSTREAM_MAX_RETRIES must be >= 1")
    batch_max_documents = parse_int_env("BATCH_MAX_DOCUMENTS", 1000)
    if batch_max_documents < 1:
        raise ValueError("BATCH_MAX_DOCUMENTS must be >= 1")
    api_rate_limit_requests = parse_int_env("API_RATE_LIMIT_REQUESTS", 100)
    if api_rate_limit_requests < 1:
        raise ValueError("API_RATE_LIMIT_REQUESTS must be >= 1")
    api_rate_limit_window_seconds = parse_int_env("API_RATE_LIMIT_WINDOW_SECONDS", 3600)
    if api_rate_limit_window_seconds < 1:
        raise ValueError("API_RATE_LIMIT_WINDOW_SECONDS must be >= 1")

    return Settings(
        app_name=parse_str_env("API_APP_NAME", "Dominio API") or "Dominio API",
        environment=environment,
        upstream_base_url=upstream_base_url or "https://api.dominio.example.com",
        oauth_authorize_url=parse_str_env("THOMSON_AUTH_URL", "https://auth.thomsonreuters.com")
        or "https://auth.thomsonreuters.com",
        oauth_client_id=oauth_client_id,
        oauth_client_secret=oauth_client_secret,
        oauth_audience=oauth_audience,
        oauth_scope=parse_str_env("OAUTH_SCOPE", "openid profile email offline_access")
        or "openid profile email offline_access",
        oauth_state_ttl_seconds=parse_int_env("OAUTH_STATE_TTL_SECONDS", 600),
        oauth_keep_state_on_exchange_failure=parse_bool_env(
            "OAUTH_KEEP_STATE_ON_EXCHANGE_FAILURE",
            True,
        ),
        oauth_refresh_ttl_seconds=parse_int_env("OAUTH_REFRESH_TTL_SECONDS", 30 * 24 * 3600),
        upstream_service_token=parse_str_env("UPSTREAM_SERVICE_TOKEN"),
        redis_url=redis_url,
        upstream_timeout_ms=upstream_timeout_ms,
        upstream_max_retries=upstream_max_retries,
        api_rate_limit_requests=api_rate_limit_requests,
        api_rate_limit_window_seconds=api_rate_limit_window_seconds,
        batch_max_documents=batch_max_documents,
        document_upload_max_mb=parse_float_env("DOCUMENT_UPLOAD_MAX_MB", 50.0),
        clients_cache_ttl_seconds=parse_int_env("CLIENTS_CACHE_TTL_SECONDS", 900),
        status_cache_reuse_non_terminal=parse_bool_env(
            "STATUS_CACHE_REUSE_NON_TERMINAL",
            True,
        ),
        cors_allowed_origins=parse_csv_env("CORS_ALLOWED_ORIGINS", ("*",)),
    )
