from __future__ import annotations

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from dominio_api.api.dependencies import current_principal
from dominio_api.schemas import ClientListResponse, ClientToggleRequest, ClientToggleResponse
from dominio_api.services import ClientDirectory


def build_clients_router(client_directory: ClientDirectory) -> APIRouter:
    router = APIRouter(prefix="/api/clients", tags=["clients"])

    @router.get("", response_model=ClientListResponse)
    async def list_clients(request: Request, response: Response) -> ClientListResponse:
        principal = current_principal(request)
        listing = await run_in_threadpool(
            client_directory.list_clients,
            user_id=principal.subject_id,
            credential=principal.upstream_token,
        )
        response.headers["X-Cache"] = "HIT" if listing.cache_hit else "MISS"
        return listing.response

    @router.post("", response_model=ClientToggleResponse)
    async def toggle_client_integration(
        payload: ClientToggleRequest,
        request: Request,
    ) -> ClientToggleResponse:
        principal = current_principal(request)
        return await run_in_threadpool(
            client_directory.set_integration,
            user_id=principal.subject_id,
            client_id=payload.client_id,
            enabled=payload.enabled,
            credential=principal.upstream_token,
        )

    return router


__all__ = ["build_clients_router"]
