from __future__ import annotations

from fastapi import APIRouter, File, Form, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from dominio_api.api.dependencies import current_principal
from dominio_api.errors import ValidationError
from dominio_api.schemas import (
    BatchItemError,
    BatchItemResult,
    BatchRequest,
    BatchResponse,
    DocumentListResponse,
    UploadResponse,
)
from dominio_api.services import BatchProcessor, BatchResult, DocumentUploadService, UploadLog


def _batch_response(result: BatchResult) -> BatchResponse:
    if result.protocol_id:
        message = f"{result.processed_count} documents submitted, {result.error_count} rejected"
    elif result.submission_attempted:
        message = (
            f"{result.processed_count} documents validated but submission failed, "
            f"{result.error_count} rejected"
        )
    else:
        message = f"No valid documents, {result.error_count} rejected"
    return BatchResponse(
        protocol_id=result.protocol_id,
        processed=result.processed_count,
        error_count=result.error_count,
        results=[
            BatchItemResult(
                index=item.index,
                file_name=item.file_name,
                client_id=item.client_id,
                document_type=item.classification.type.value,
                status=item.status,
            )
            for item in result.items
        ],
        errors=[
            BatchItemError(index=error.index, file_name=error.file_name, error=error.error)
            for error in result.errors
        ],
        message=message,
    )


def build_documents_router(
    *,
    upload_service: DocumentUploadService,
    batch_processor: BatchProcessor,
    upload_log: UploadLog,
) -> APIRouter:
    router = APIRouter(prefix="/api/documents", tags=["documents"])

    @router.post("/upload", response_model=UploadResponse)
    async def upload_document(
        request: Request,
        document: UploadFile | None = File(default=None),
        client_id: str | None = Form(default=None, alias="clientId"),
    ) -> UploadResponse:
        principal = current_principal(request)
        if document is None:
            raise ValidationError(
                "Missing required fields",
                code="MissingFields",
                context={"required": ["document", "clientId"]},
            )
        content = await document.read()
        return await run_in_threadpool(
            upload_service.upload,
            content=content,
            file_name=document.filename,
            client_id=client_id,
            user_id=principal.subject_id,
            credential=principal.upstream_token,
        )

    @router.post("/batch", response_model=BatchResponse)
    async def upload_batch(payload: BatchRequest, request: Request) -> BatchResponse:
        principal = current_principal(request)
        result = await run_in_threadpool(
            batch_processor.process_batch,
            payload.documents or [],
            credential=principal.upstream_token,
        )
        return _batch_response(result)

    @router.get("", response_model=DocumentListResponse)
    async def list_documents(
        request: Request,
        client_id: str | None = Query(default=None, alias="clientId"),
        status: str | None = Query(default=None),
        limit: int = Query(default=50, ge=1, le=500),
        offset: int = Query(default=0, ge=0),
    ) -> DocumentListResponse:
        principal = current_principal(request)
        records, total = await run_in_threadpool(
            upload_log.list,
            principal.subject_id,
            client_id=client_id,
            status=status,
            limit=limit,
            offset=offset,
        )
        return DocumentListResponse(data=records, total=total, limit=limit, offset=offset)

    return router


__all__ = ["build_documents_router"]
