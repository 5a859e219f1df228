from dominio_api.services.batch_processor import BatchError, BatchItem, BatchProcessor, BatchResult
from dominio_api.services.client_directory import ClientDirectory, ClientListing, clients_cache_key
from dominio_api.services.document_upload_service import DocumentUploadService
from dominio_api.services.status_tracker import StatusLookup, StatusTracker, status_cache_key
from dominio_api.services.upload_log import InMemoryUploadLog, UploadLog

__all__ = [
    "BatchError",
    "BatchItem",
    "BatchProcessor",
    "BatchResult",
    "ClientDirectory",
    "ClientListing",
    "DocumentUploadService",
    "InMemoryUploadLog",
    "StatusLookup",
    "StatusTracker",
    "UploadLog",
    "clients_cache_key",
    "status_cache_key",
]
