from __future__ import annotations

from datetime import UTC, datetime
import threading
from typing import Protocol

from dominio_api.schemas import UploadRecord


class UploadLog(Protocol):
    def record(self, entry: UploadRecord) -> None:
        ...

    def list(
        self,
        user_id: str,
        *,
        client_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[UploadRecord], int]:
        ...

    def update_status(
        self,
        protocol_id: str,
        *,
        status: str,
        progress: int,
        updated_at: str | None = None,
        completed_at: str | None = None,
    ) -> bool:
        ...


class InMemoryUploadLog:
    """Process-local upload history, newest first on listing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[UploadRecord] = []

    def record(self, entry: UploadRecord) -> None:
        with self._lock:
            self._entries.append(entry)

    def list(
        self,
        user_id: str,
        *,
        client_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[UploadRecord], int]:
        with self._lock:
            matches = [
                entry
                for entry in reversed(self._entries)
                if entry.user_id == user_id
                and (client_id is None or entry.client_id == client_id)
                and (status is None or entry.status == status)
            ]
        start = max(offset, 0)
        return matches[start : start + max(limit, 0)], len(matches)

    def update_status(
        self,
        protocol_id: str,
        *,
        status: str,
        progress: int,
        updated_at: str | None = None,
        completed_at: str | None = None,
    ) -> bool:
        updated = False
        stamp = updated_at or datetime.now(tz=UTC).isoformat()
        with self._lock:
            for position, entry in enumerate(self._entries):
                if entry.protocol_id != protocol_id:
                    continue
                self._entries[position] = entry.model_copy(
                    update={
                        "status": status,
                        "progress": progress,
                        "updated_at": stamp,
                        "completed_at": completed_at or entry.completed_at,
                    }
                )
                updated = True
        return updated


__all__ = ["InMemoryUploadLog", "UploadLog"]
