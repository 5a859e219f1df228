from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
import logging
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from dominio_api.api.routes import (
    build_auth_router,
    build_clients_router,
    build_documents_router,
    build_integration_router,
    build_status_router,
)
from dominio_api.auth import CredentialStore, OAuthClientConfig, TokenLifecycleManager
from dominio_api.errors import ApiError, RateLimitError, UpstreamError
from dominio_api.middleware import RateLimitDecision, RateLimiter
from dominio_api.schemas import ErrorEnvelope
from dominio_api.security import resolve_client_ip
from dominio_api.services import (
    BatchProcessor,
    ClientDirectory,
    DocumentUploadService,
    InMemoryUploadLog,
    StatusTracker,
)
from dominio_api.settings import Settings, is_hardened_environment, load_settings
from dominio_api.storage import InMemoryKeyValueStore, KeyValueStore, build_key_value_store
from dominio_api.telemetry import TRACE_HEADER, generate_trace_id
from dominio_api.upstream import AccountingApi, ResilientClient

LOGGER = logging.getLogger(__name__)
API_VERSION = "1.0.0"


def _error_response(
    exc: ApiError,
    *,
    trace_id: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = ErrorEnvelope(
        error=exc.code,
        message=exc.message,
        traceId=trace_id,
        **exc.context,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=payload.model_dump(mode="json", exclude_none=True),
        headers={TRACE_HEADER: trace_id, **(headers or {})},
    )


def _rate_limit_headers(limit: int, decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_seconds),
    }


def create_app(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    upstream_transport: httpx.BaseTransport | None = None,
    sleep_fn: Callable[[float], None] | None = None,
) -> FastAPI:
    settings = settings or load_settings()

    store = store or build_key_value_store(redis_url=settings.redis_url)
    if isinstance(store, InMemoryKeyValueStore) and is_hardened_environment(settings.environment):
        LOGGER.warning(
            "Using process-local key-value store in a hardened environment; "
            "credentials and rate limits are not shared across instances"
        )

    credentials = CredentialStore(store)
    token_manager = TokenLifecycleManager(
        config=OAuthClientConfig(
            authorize_url=settings.oauth_authorize_url,
            client_id=settings.oauth_client_id,
            client_secret=settings.oauth_client_secret,
            audience=settings.oauth_audience,
            scope=settings.oauth_scope,
            state_ttl_seconds=settings.oauth_state_ttl_seconds,
            keep_state_on_exchange_failure=settings.oauth_keep_state_on_exchange_failure,
            refresh_ttl_seconds=settings.oauth_refresh_ttl_seconds,
        ),
        credentials=credentials,
        token_client=ResilientClient(
            settings.oauth_authorize_url,
            default_timeout_ms=settings.upstream_timeout_ms,
            transport=upstream_transport,
            sleep_fn=sleep_fn,
        ),
        upstream_service_token=settings.upstream_service_token,
    )
    accounting_api = AccountingApi(
        ResilientClient(
            settings.upstream_base_url,
            default_timeout_ms=settings.upstream_timeout_ms,
            transport=upstream_transport,
            sleep_fn=sleep_fn,
        ),
        max_retries=settings.upstream_max_retries,
    )
    rate_limiter = RateLimiter(store)
    upload_log = InMemoryUploadLog()

    app = FastAPI(title=settings.app_name, version=API_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allowed_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key"],
        expose_headers=[TRACE_HEADER, "X-Cache", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=86400,
    )

    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        trace_id = generate_trace_id()
        request.state.trace_id = trace_id
        is_api_request = request.url.path.startswith("/api")
        if not is_api_request or request.method == "OPTIONS":
            response = await call_next(request)
            response.headers[TRACE_HEADER] = trace_id
            return response

        try:
            client_ip = resolve_client_ip(request)
            decision = await run_in_threadpool(
                rate_limiter.check_and_consume,
                client_ip,
                limit=settings.api_rate_limit_requests,
                window_seconds=settings.api_rate_limit_window_seconds,
            )
            limit_headers = _rate_limit_headers(settings.api_rate_limit_requests, decision)
            if not decision.allowed:
                LOGGER.info("Rate limit exceeded", extra={"client_ip": client_ip, "trace_id": trace_id})
                return _error_response(
                    RateLimitError(
                        limit=settings.api_rate_limit_requests,
                        reset_seconds=decision.reset_seconds,
                    ),
                    trace_id=trace_id,
                    headers=limit_headers,
                )

            auth_result = await run_in_threadpool(token_manager.authenticate, request.headers)
            if not auth_result.ok:
                return _error_response(auth_result.error, trace_id=trace_id, headers=limit_headers)
            request.state.principal = auth_result.principal
        except ApiError as exc:
            LOGGER.warning(
                "Request rejected before routing",
                exc_info=True,
                extra={"code": exc.code, "trace_id": trace_id},
            )
            return _error_response(exc, trace_id=trace_id)

        response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        for name, value in limit_headers.items():
            response.headers[name] = value
        return response

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        if isinstance(exc, UpstreamError):
            LOGGER.warning(
                "Upstream failure: %s",
                exc.detail or exc.message,
                extra={"code": exc.code, "trace_id": trace_id},
            )
        return _error_response(exc, trace_id=trace_id)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        payload = ErrorEnvelope(
            error="ValidationError",
            message="Request validation failed",
            traceId=trace_id,
        )
        return JSONResponse(
            status_code=400,
            content=payload.model_dump(mode="json"),
            headers={TRACE_HEADER: trace_id},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        LOGGER.exception("Unhandled API exception", exc_info=exc)
        payload = ErrorEnvelope(
            error="InternalError",
            message="Unexpected server error",
            traceId=trace_id,
        )
        return JSONResponse(
            status_code=500,
            content=payload.model_dump(mode="json"),
            headers={TRACE_HEADER: trace_id},
        )

    app.include_router(build_auth_router(token_manager))
    app.include_router(
        build_clients_router(
            ClientDirectory(
                accounting_api,
                store,
                cache_ttl_seconds=settings.clients_cache_ttl_seconds,
            )
        )
    )
    app.include_router(
        build_documents_router(
            upload_service=DocumentUploadService(
                accounting_api,
                upload_log,
                max_size_mb=settings.document_upload_max_mb,
            ),
            batch_processor=BatchProcessor(
                accounting_api,
                max_batch_size=settings.batch_max_documents,
            ),
            upload_log=upload_log,
        )
    )
    app.include_router(
        build_status_router(
            StatusTracker(
                accounting_api,
                store,
                upload_log=upload_log,
                reuse_non_terminal_cache=settings.status_cache_reuse_non_terminal,
            )
        )
    )
    app.include_router(
        build_integration_router(token_manager, max_batch_size=settings.batch_max_documents)
    )

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": API_VERSION,
            "environment": settings.environment,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }

    @app.get("/health/upstream", tags=["health"])
    async def upstream_health() -> JSONResponse:
        snapshot = await run_in_threadpool(accounting_api.check_health)
        return JSONResponse(status_code=200 if snapshot["healthy"] else 503, content=snapshot)

    return app


app = create_app()
