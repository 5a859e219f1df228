from __future__ import annotations

import secrets

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from dominio_api.api.dependencies import current_principal
from dominio_api.auth import TokenLifecycleManager
from dominio_api.documents import DocumentType
from dominio_api.errors import AuthError, ValidationError
from dominio_api.schemas import ApiKeyIssueRequest, ApiKeyIssueResponse, IntegrationInfo


ISSUABLE_PERMISSIONS = frozenset({"read", "write"})


def build_integration_router(
    token_manager: TokenLifecycleManager,
    *,
    max_batch_size: int,
) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["integration"])

    @router.get("/integration", response_model=IntegrationInfo)
    async def integration_info(request: Request) -> IntegrationInfo:
        current_principal(request)
        return IntegrationInfo(
            supported_documents=[
                document_type.value
                for document_type in DocumentType
                if document_type is not DocumentType.UNKNOWN
            ],
            max_batch_size=max_batch_size,
        )

    @router.post("/api-keys", response_model=ApiKeyIssueResponse, status_code=201)
    async def issue_api_key(payload: ApiKeyIssueRequest, request: Request) -> ApiKeyIssueResponse:
        principal = current_principal(request)
        if principal.kind != "oauth":
            raise AuthError(
                "API keys can only be issued to an OAuth session",
                code="Forbidden",
                status_code=403,
            )
        permissions = tuple(dict.fromkeys(payload.permissions))
        unknown = sorted(set(permissions) - ISSUABLE_PERMISSIONS)
        if not permissions or unknown:
            raise ValidationError(
                "permissions must be a non-empty subset of read, write",
                code="InvalidPermissions",
                context={"unknown": unknown},
            )

        raw_key = secrets.token_urlsafe(32)
        await run_in_threadpool(
            token_manager.register_api_key,
            raw_key,
            subject_id=principal.subject_id,
            permissions=permissions,
            ttl_seconds=payload.ttl_seconds,
        )
        return ApiKeyIssueResponse(
            api_key=raw_key,
            subject_id=principal.subject_id,
            permissions=list(permissions),
            expires_in=payload.ttl_seconds,
        )

    return router


__all__ = ["build_integration_router"]
