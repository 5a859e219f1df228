from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from dominio_api.errors import ProtocolNotFoundError, StatusFetchFailedError, UpstreamError
from dominio_api.schemas import StatusRecord
from dominio_api.services.upload_log import UploadLog
from dominio_api.storage import KeyValueStore
from dominio_api.upstream import AccountingApi


LOGGER = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})
TERMINAL_TTL_SECONDS = 3600
IN_PROGRESS_TTL_SECONDS = 30

UPSTREAM_STATUS_MAP = {
    "PENDING": "pending",
    "PROCESSING": "processing",
    "COMPLETED": "completed",
    "FAILED": "failed",
    "CANCELLED": "cancelled",
    "PARTIAL": "partial",
}


def status_cache_key(protocol_id: str) -> str:
    return f"status_{protocol_id}"


def map_upstream_status(value: Any) -> str:
    return UPSTREAM_STATUS_MAP.get(str(value), "unknown") if value is not None else "unknown"


def cache_ttl_for(status: str) -> int:
    return TERMINAL_TTL_SECONDS if status in TERMINAL_STATUSES else IN_PROGRESS_TTL_SECONDS


def _count(payload: dict[str, Any], key: str) -> int:
    try:
        return max(int(payload.get(key) or 0), 0)
    except (TypeError, ValueError):
        return 0


def _timestamp(value: Any) -> str | None:
    return None if value is None else str(value)


def _as_list(value: Any) -> list[Any]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    return [value]


def normalize_status(protocol_id: str, payload: dict[str, Any]) -> StatusRecord:
    status = map_upstream_status(payload.get("status"))
    return StatusRecord(
        protocol_id=protocol_id,
        status=status,
        progress=min(_count(payload, "progress"), 100),
        documents_total=_count(payload, "documentsTotal"),
        documents_processed=_count(payload, "documentsProcessed"),
        documents_success=_count(payload, "documentsSuccess"),
        documents_error=_count(payload, "documentsError"),
        started_at=_timestamp(payload.get("startedAt")),
        updated_at=_timestamp(payload.get("updatedAt")),
        completed_at=_timestamp(payload.get("completedAt")),
        errors=_as_list(payload.get("errors")),
        warnings=_as_list(payload.get("warnings")),
        estimated_time_remaining=payload.get("estimatedTimeRemaining"),
        cache_ttl_seconds=cache_ttl_for(status),
    )


@dataclass(frozen=True)
class StatusLookup:
    record: StatusRecord
    cache_hit: bool


class StatusTracker:
    """Polls upstream processing status behind a state-dependent cache.

    Terminal records are served from cache for an hour. In-progress records
    live for 30 seconds; with ``reuse_non_terminal_cache`` off they are
    always re-polled instead.
    """

    def __init__(
        self,
        accounting_api: AccountingApi,
        store: KeyValueStore,
        *,
        upload_log: UploadLog | None = None,
        reuse_non_terminal_cache: bool = True,
    ) -> None:
        self.accounting_api = accounting_api
        self.store = store
        self.upload_log = upload_log
        self.reuse_non_terminal_cache = reuse_non_terminal_cache

    def _cached(self, protocol_id: str) -> StatusRecord | None:
        try:
            raw = self.store.get(status_cache_key(protocol_id))
        except Exception:
            LOGGER.warning(
                "Status cache read failed; polling upstream",
                exc_info=True,
                extra={"protocol_id": protocol_id},
            )
            return None
        if raw is None:
            return None
        try:
            return StatusRecord.model_validate_json(raw)
        except PydanticValidationError:
            LOGGER.warning("Ignoring undecodable cached status", extra={"protocol_id": protocol_id})
            return None

    def _store(self, record: StatusRecord) -> None:
        try:
            self.store.put(
                status_cache_key(record.protocol_id),
                record.model_dump_json(),
                record.cache_ttl_seconds,
            )
        except Exception:
            LOGGER.warning(
                "Status cache write failed",
                exc_info=True,
                extra={"protocol_id": record.protocol_id},
            )

    def _poll(self, protocol_id: str, credential: str | None) -> StatusRecord:
        try:
            response = self.accounting_api.fetch_protocol(protocol_id, credential=credential)
        except UpstreamError as exc:
            raise StatusFetchFailedError(protocol_id, detail=exc.detail) from exc

        if response.status_code == 404:
            raise ProtocolNotFoundError(protocol_id)
        if not response.is_success:
            raise StatusFetchFailedError(
                protocol_id,
                detail=f"status poll returned HTTP {response.status_code}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise StatusFetchFailedError(protocol_id, detail="non-JSON status body") from exc
        if not isinstance(payload, dict):
            raise StatusFetchFailedError(protocol_id, detail="unexpected status body")
        try:
            return normalize_status(protocol_id, payload)
        except PydanticValidationError as exc:
            raise StatusFetchFailedError(protocol_id, detail="malformed status body") from exc

    def _record_in_upload_log(self, record: StatusRecord) -> None:
        if self.upload_log is None:
            return
        try:
            self.upload_log.update_status(
                record.protocol_id,
                status=record.status,
                progress=record.progress,
                updated_at=record.updated_at,
                completed_at=record.completed_at,
            )
        except Exception:
            LOGGER.warning(
                "Unable to update upload log status",
                exc_info=True,
                extra={"protocol_id": record.protocol_id},
            )

    def get_status(self, protocol_id: str, *, credential: str | None) -> StatusLookup:
        cached = self._cached(protocol_id)
        if cached is not None and (
            cached.status in TERMINAL_STATUSES or self.reuse_non_terminal_cache
        ):
            return StatusLookup(record=cached, cache_hit=True)

        record = self._poll(protocol_id, credential)
        self._store(record)
        self._record_in_upload_log(record)
        return StatusLookup(record=record, cache_hit=False)


__all__ = [
    "IN_PROGRESS_TTL_SECONDS",
    "StatusLookup",
    "StatusTracker",
    "TERMINAL_STATUSES",
    "TERMINAL_TTL_SECONDS",
    "cache_ttl_for",
    "map_upstream_status",
    "normalize_status",
    "status_cache_key",
]
