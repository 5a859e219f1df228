from dominio_api.upstream.accounting_api import AccountingApi, UpstreamDocument
from dominio_api.upstream.client import ResilientClient, backoff_delay_ms

__all__ = ["AccountingApi", "ResilientClient", "UpstreamDocument", "backoff_delay_ms"]
