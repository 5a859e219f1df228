from __future__ import annotations

from fastapi import Request

from dominio_api.auth import Principal
from dominio_api.errors import MissingCredentialsError


def current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise MissingCredentialsError()
    return principal


__all__ = ["current_principal"]
