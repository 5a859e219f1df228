from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from typing import Any
from urllib.parse import quote

import httpx

from dominio_api.errors import UpstreamError
from dominio_api.upstream.client import ResilientClient


LOGGER = logging.getLogger(__name__)

HEALTH_TIMEOUT_MS = 5_000


@dataclass(frozen=True)
class UpstreamDocument:
    client_id: str
    document_type: str
    file_name: str
    content: str
    content_type: str = "application/xml"

    def to_payload(self) -> dict[str, str]:
        return {
            "clientId": self.client_id,
            "documentType": self.document_type,
            "fileName": self.file_name,
            "content": base64.b64encode(self.content.encode("utf-8")).decode("ascii"),
            "contentType": self.content_type,
        }


def _json_or_error(response: httpx.Response, operation: str) -> Any:
    if not response.is_success:
        raise UpstreamError(detail=f"{operation} returned HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamError(detail=f"{operation} returned a non-JSON body") from exc


class AccountingApi:
    """Typed calls against the accounting integration service.

    Submissions are not idempotent, so they go out once; reads go through the
    retrying path.
    """

    def __init__(self, client: ResilientClient, *, max_retries: int = 3) -> None:
        self.client = client
        self.max_retries = max_retries

    def submit_document(self, document: UpstreamDocument, *, credential: str | None) -> str | None:
        response = self.client.request(
            "POST",
            "/invoice-integration",
            credential=credential,
            json_body=document.to_payload(),
        )
        payload = _json_or_error(response, "document upload")
        return payload.get("protocolId") if isinstance(payload, dict) else None

    def submit_batch(
        self,
        documents: list[UpstreamDocument],
        *,
        credential: str | None,
    ) -> str | None:
        body = {
            "documents": [
                {key: value for key, value in document.to_payload().items() if key != "contentType"}
                for document in documents
            ]
        }
        response = self.client.request(
            "POST",
            "/invoice-integration/batch",
            credential=credential,
            json_body=body,
        )
        payload = _json_or_error(response, "batch upload")
        return payload.get("protocolId") if isinstance(payload, dict) else None

    def fetch_protocol(self, protocol_id: str, *, credential: str | None) -> httpx.Response:
        return self.client.request_with_retry(
            "GET",
            f"/protocols/{quote(protocol_id, safe='')}",
            credential=credential,
            max_retries=self.max_retries,
        )

    def list_clients(self, *, credential: str | None) -> list[dict[str, Any]]:
        response = self.client.request_with_retry(
            "GET",
            "/clients",
            credential=credential,
            max_retries=self.max_retries,
        )
        payload = _json_or_error(response, "client listing")
        if isinstance(payload, dict):
            payload = payload.get("clients") or payload.get("data") or []
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    def update_client_integration(
        self,
        client_id: str,
        *,
        enabled: bool,
        credential: str | None,
    ) -> Any:
        response = self.client.request(
            "PUT",
            f"/clients/{quote(client_id, safe='')}/integration",
            credential=credential,
            json_body={"enabled": enabled},
        )
        return _json_or_error(response, "client integration update")

    def check_health(self) -> dict[str, Any]:
        timestamp = datetime.now(tz=UTC).isoformat()
        try:
            response = self.client.request("GET", "/health", timeout_ms=HEALTH_TIMEOUT_MS)
        except UpstreamError as exc:
            LOGGER.warning("Upstream health check failed", extra={"detail": exc.detail})
            return {"healthy": False, "error": exc.message, "timestamp": timestamp}
        return {
            "healthy": response.is_success,
            "status": response.status_code,
            "timestamp": timestamp,
        }


__all__ = ["AccountingApi", "UpstreamDocument"]
