from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Sequence

from dominio_api.documents import (
    DocumentClassification,
    classify,
    validate_structure,
)
from dominio_api.errors import BatchTooLargeError, EmptyBatchError, UpstreamError
from dominio_api.schemas import BatchDocument
from dominio_api.upstream import AccountingApi, UpstreamDocument


LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 1000


@dataclass(frozen=True)
class BatchItem:
    index: int
    file_name: str | None
    client_id: str | None
    classification: DocumentClassification
    status: str = "validated"


@dataclass(frozen=True)
class BatchError:
    index: int
    file_name: str | None
    error: str


@dataclass
class BatchResult:
    total_submitted: int
    items: list[BatchItem] = field(default_factory=list)
    errors: list[BatchError] = field(default_factory=list)
    protocol_id: str | None = None
    submission_attempted: bool = False

    @property
    def processed_count(self) -> int:
        return len(self.items)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class BatchProcessor:
    def __init__(
        self,
        accounting_api: AccountingApi,
        *,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    ) -> None:
        self.accounting_api = accounting_api
        self.max_batch_size = max_batch_size

    def _validate_item(self, index: int, document: BatchDocument) -> BatchItem | BatchError:
        try:
            validation = validate_structure(document.content)
            if not validation.valid:
                return BatchError(
                    index=index,
                    file_name=document.file_name,
                    error=validation.reason or "Invalid document",
                )
            return BatchItem(
                index=index,
                file_name=document.file_name,
                client_id=document.client_id,
                classification=classify(document.content),
            )
        except Exception as exc:
            LOGGER.warning(
                "Unexpected failure validating batch item",
                exc_info=True,
                extra={"index": index},
            )
            return BatchError(index=index, file_name=document.file_name, error=str(exc))

    def process_batch(
        self,
        documents: Sequence[BatchDocument],
        *,
        credential: str | None,
    ) -> BatchResult:
        if not documents:
            raise EmptyBatchError()
        if len(documents) > self.max_batch_size:
            raise BatchTooLargeError(limit=self.max_batch_size, received=len(documents))

        result = BatchResult(total_submitted=len(documents))
        for index, document in enumerate(documents):
            outcome = self._validate_item(index, document)
            if isinstance(outcome, BatchError):
                result.errors.append(outcome)
            else:
                result.items.append(outcome)

        if result.items:
            result.submission_attempted = True
            upstream_documents = [
                UpstreamDocument(
                    client_id=item.client_id or "",
                    document_type=item.classification.type.value,
                    file_name=item.file_name or f"document-{item.index}.xml",
                    content=documents[item.index].content or "",
                )
                for item in result.items
            ]
            try:
                result.protocol_id = self.accounting_api.submit_batch(
                    upstream_documents,
                    credential=credential,
                )
            except UpstreamError as exc:
                LOGGER.warning(
                    "Combined batch submission failed; returning validation results only",
                    extra={"validated": result.processed_count, "detail": exc.detail},
                )

        LOGGER.info(
            "Processed batch",
            extra={
                "total": result.total_submitted,
                "validated": result.processed_count,
                "rejected": result.error_count,
                "protocol_id": result.protocol_id,
            },
        )
        return result


__all__ = ["BatchError", "BatchItem", "BatchProcessor", "BatchResult"]
