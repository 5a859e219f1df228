from __future__ import annotations

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from dominio_api.api.dependencies import current_principal
from dominio_api.schemas import StatusRecord
from dominio_api.services import StatusTracker


def build_status_router(status_tracker: StatusTracker) -> APIRouter:
    router = APIRouter(prefix="/api/status", tags=["status"])

    @router.get("/{protocol_id}", response_model=StatusRecord)
    async def get_status(protocol_id: str, request: Request, response: Response) -> StatusRecord:
        principal = current_principal(request)
        lookup = await run_in_threadpool(
            status_tracker.get_status,
            protocol_id,
            credential=principal.upstream_token,
        )
        response.headers["X-Cache"] = "HIT" if lookup.cache_hit else "MISS"
        return lookup.record

    return router


__all__ = ["build_status_router"]
