from __future__ import annotations

from datetime import UTC, datetime
import logging

from dominio_api.documents import (
    classify,
    decode_document,
    extract_document_info,
    validate_encoding,
    validate_file_size,
)
from dominio_api.errors import InvalidDocumentError, ValidationError
from dominio_api.schemas import UploadRecord, UploadResponse
from dominio_api.security import sanitize_input
from dominio_api.services.upload_log import UploadLog
from dominio_api.upstream import AccountingApi, UpstreamDocument


LOGGER = logging.getLogger(__name__)


class DocumentUploadService:
    def __init__(
        self,
        accounting_api: AccountingApi,
        upload_log: UploadLog,
        *,
        max_size_mb: float = 50,
    ) -> None:
        self.accounting_api = accounting_api
        self.upload_log = upload_log
        self.max_size_mb = max_size_mb

    def upload(
        self,
        *,
        content: bytes,
        file_name: str | None,
        client_id: str | None,
        user_id: str,
        credential: str | None,
    ) -> UploadResponse:
        if not content or not client_id:
            raise ValidationError(
                "Missing required fields",
                code="MissingFields",
                context={"required": ["document", "clientId"]},
            )

        size_check = validate_file_size(content, max_size_mb=self.max_size_mb)
        if not size_check.valid:
            raise InvalidDocumentError(size_check.reason or "File too large")

        text = decode_document(content)
        if text is None:
            raise InvalidDocumentError("Content is not valid UTF-8 text")

        encoding_check = validate_encoding(text)
        if not encoding_check.valid:
            raise InvalidDocumentError(encoding_check.reason or "Invalid characters")

        classification = classify(text)
        if not classification.structural_validity:
            raise InvalidDocumentError(classification.failure_reason or "Invalid document")

        safe_name = sanitize_input(file_name or "document.xml") or "document.xml"
        safe_client = sanitize_input(client_id)
        document_type = classification.type.value

        protocol_id = self.accounting_api.submit_document(
            UpstreamDocument(
                client_id=safe_client,
                document_type=document_type,
                file_name=safe_name,
                content=text,
            ),
            credential=credential,
        )

        info = extract_document_info(text)
        self.upload_log.record(
            UploadRecord(
                protocol_id=protocol_id,
                user_id=user_id,
                client_id=safe_client,
                document_type=document_type,
                file_name=safe_name,
                file_size=len(content),
                document_key=info.key,
                issuer_cnpj=info.issuer.cnpj,
                timestamp=datetime.now(tz=UTC).isoformat(),
            )
        )
        LOGGER.info(
            "Document uploaded",
            extra={
                "protocol_id": protocol_id,
                "document_type": document_type,
                "client_id": safe_client,
                "file_size": len(content),
            },
        )
        return UploadResponse(
            protocol_id=protocol_id,
            document_type=document_type,
            file_name=safe_name,
        )


__all__ = ["DocumentUploadService"]
