from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ProcessingStatus = Literal[
    "pending",
    "processing",
    "completed",
    "failed",
    "cancelled",
    "partial",
    "unknown",
]
BatchItemStatus = Literal["validated", "rejected"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: str
    message: str | None = None


class AuthCallbackResponse(CamelModel):
    success: bool = True
    token_key: str
    expires_in: int
    message: str = "Authentication completed"


class RefreshRequest(CamelModel):
    refresh_token: str | None = None
    token_key: str | None = None


class RefreshResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int | None = None


class TokenRefreshResponse(CamelModel):
    success: bool = True
    token_key: str
    expires_in: int
    message: str = "Access token refreshed"


class ApiKeyIssueRequest(CamelModel):
    permissions: list[str] = Field(default_factory=lambda: ["read", "write"])
    ttl_seconds: int = Field(default=90 * 24 * 60 * 60, ge=60)


class ApiKeyIssueResponse(CamelModel):
    api_key: str
    subject_id: str
    permissions: list[str]
    expires_in: int


class ClientSummary(CamelModel):
    id: str | None = None
    name: str | None = None
    cnpj: str | None = None
    inscricao_estadual: str | None = None
    status: str = "active"
    last_sync: str | None = None
    documents_count: int = 0
    integration_enabled: bool = False


class ClientListResponse(CamelModel):
    success: bool = True
    data: list[ClientSummary]
    total: int
    timestamp: str


class ClientToggleRequest(CamelModel):
    client_id: str | None = Field(default=None, max_length=128)
    enabled: bool = True


class ClientToggleResponse(CamelModel):
    success: bool = True
    client_id: str
    enabled: bool
    message: str
    data: Any = None


class UploadResponse(CamelModel):
    success: bool = True
    protocol_id: str | None
    document_type: str
    file_name: str
    status: str = "uploaded"
    message: str = "Document sent successfully"


class BatchDocument(CamelModel):
    file_name: str | None = None
    client_id: str | None = None
    content: str | None = None


class BatchRequest(CamelModel):
    documents: list[BatchDocument] | None = None


class BatchItemResult(CamelModel):
    index: int
    file_name: str | None
    client_id: str | None
    document_type: str
    status: BatchItemStatus = "validated"


class BatchItemError(CamelModel):
    index: int
    file_name: str | None
    error: str


class BatchResponse(CamelModel):
    success: bool = True
    protocol_id: str | None
    processed: int
    error_count: int
    results: list[BatchItemResult]
    errors: list[BatchItemError]
    message: str


class UploadRecord(CamelModel):
    protocol_id: str | None
    user_id: str
    client_id: str
    document_type: str
    file_name: str
    file_size: int
    document_key: str | None = None
    issuer_cnpj: str | None = None
    status: str = "uploaded"
    progress: int = 0
    timestamp: str
    updated_at: str | None = None
    completed_at: str | None = None


class DocumentListResponse(CamelModel):
    success: bool = True
    data: list[UploadRecord]
    total: int
    limit: int
    offset: int


class StatusRecord(CamelModel):
    protocol_id: str
    status: ProcessingStatus
    progress: int = Field(default=0, ge=0, le=100)
    documents_total: int = 0
    documents_processed: int = 0
    documents_success: int = 0
    documents_error: int = 0
    started_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None
    errors: list[Any] = Field(default_factory=list)
    warnings: list[Any] = Field(default_factory=list)
    estimated_time_remaining: Any = None
    cache_ttl_seconds: int


class IntegrationInfo(CamelModel):
    api_version: str = "1.0.0"
    provider: str = "Thomson Reuters Onvio"
    supported_documents: list[str]
    max_batch_size: int
    status: str = "active"
