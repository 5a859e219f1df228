from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from dominio_api.errors import ValidationError
from dominio_api.schemas import ClientListResponse, ClientSummary, ClientToggleResponse
from dominio_api.storage import KeyValueStore
from dominio_api.upstream import AccountingApi


LOGGER = logging.getLogger(__name__)

DEFAULT_CLIENTS_CACHE_TTL_SECONDS = 900


def clients_cache_key(user_id: str | None) -> str:
    return f"clients_{user_id or 'default'}"


def summarize_client(raw: dict[str, Any]) -> ClientSummary:
    return ClientSummary(
        id=None if raw.get("id") is None else str(raw.get("id")),
        name=raw.get("name") or raw.get("companyName"),
        cnpj=raw.get("cnpj"),
        inscricao_estadual=raw.get("inscricaoEstadual"),
        status=raw.get("status") or "active",
        last_sync=raw.get("lastSync"),
        documents_count=raw.get("documentsCount") or 0,
        integration_enabled=bool(raw.get("integrationEnabled")),
    )


@dataclass(frozen=True)
class ClientListing:
    response: ClientListResponse
    cache_hit: bool


class ClientDirectory:
    def __init__(
        self,
        accounting_api: AccountingApi,
        store: KeyValueStore,
        *,
        cache_ttl_seconds: int = DEFAULT_CLIENTS_CACHE_TTL_SECONDS,
    ) -> None:
        self.accounting_api = accounting_api
        self.store = store
        self.cache_ttl_seconds = cache_ttl_seconds

    def list_clients(self, *, user_id: str, credential: str | None) -> ClientListing:
        cache_key = clients_cache_key(user_id)
        try:
            cached = self.store.get(cache_key)
        except Exception:
            LOGGER.warning("Client cache read failed", exc_info=True, extra={"user_id": user_id})
            cached = None
        if cached is not None:
            try:
                return ClientListing(
                    response=ClientListResponse.model_validate_json(cached),
                    cache_hit=True,
                )
            except PydanticValidationError:
                LOGGER.warning("Ignoring undecodable client cache entry", extra={"user_id": user_id})

        clients = [summarize_client(raw) for raw in self.accounting_api.list_clients(credential=credential)]
        response = ClientListResponse(
            data=clients,
            total=len(clients),
            timestamp=datetime.now(tz=UTC).isoformat(),
        )
        try:
            self.store.put(cache_key, response.model_dump_json(by_alias=True), self.cache_ttl_seconds)
        except Exception:
            LOGGER.warning("Client cache write failed", exc_info=True, extra={"user_id": user_id})
        return ClientListing(response=response, cache_hit=False)

    def set_integration(
        self,
        *,
        user_id: str,
        client_id: str | None,
        enabled: bool,
        credential: str | None,
    ) -> ClientToggleResponse:
        if not client_id:
            raise ValidationError("Missing client ID", code="MissingClientId")

        result = self.accounting_api.update_client_integration(
            client_id,
            enabled=enabled,
            credential=credential,
        )
        try:
            self.store.delete(clients_cache_key(user_id))
        except Exception:
            LOGGER.warning("Client cache invalidation failed", exc_info=True, extra={"user_id": user_id})

        LOGGER.info(
            "Client integration updated",
            extra={"client_id": client_id, "enabled": enabled},
        )
        return ClientToggleResponse(
            client_id=client_id,
            enabled=enabled,
            message=f"Integration {'enabled' if enabled else 'disabled'} successfully",
            data=result,
        )


__all__ = [
    "ClientDirectory",
    "ClientListing",
    "clients_cache_key",
    "summarize_client",
]
