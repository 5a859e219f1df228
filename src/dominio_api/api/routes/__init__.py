from dominio_api.api.routes.auth import build_auth_router
from dominio_api.api.routes.clients import build_clients_router
from dominio_api.api.routes.documents import build_documents_router
from dominio_api.api.routes.integration import build_integration_router
from dominio_api.api.routes.status import build_status_router

__all__ = [
    "build_auth_router",
    "build_clients_router",
    "build_documents_router",
    "build_integration_router",
    "build_status_router",
]
