from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from dominio_api.auth import TokenLifecycleManager
from dominio_api.errors import AuthError, ValidationError
from dominio_api.schemas import (
    AuthCallbackResponse,
    RefreshRequest,
    RefreshResponse,
    TokenRefreshResponse,
)


def _callback_uri(request: Request) -> str:
    return str(request.url_for("auth_callback"))


def build_auth_router(token_manager: TokenLifecycleManager) -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.get("/login")
    async def auth_login(request: Request) -> RedirectResponse:
        authorize_url = await run_in_threadpool(
            token_manager.begin_authorization,
            redirect_uri=_callback_uri(request),
        )
        return RedirectResponse(authorize_url, status_code=302)

    @router.get("/callback", response_model=AuthCallbackResponse, name="auth_callback")
    async def auth_callback(
        request: Request,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
    ) -> AuthCallbackResponse:
        if error:
            raise AuthError(
                f"Authorization server returned an error: {error}",
                code="OAuthError",
                status_code=400,
            )
        if not code or not state:
            raise ValidationError(
                "Authorization code and state are required",
                code="MissingParameters",
            )
        grant = await run_in_threadpool(
            token_manager.complete_authorization,
            code=code,
            state=state,
            redirect_uri=_callback_uri(request),
        )
        return AuthCallbackResponse(token_key=grant.token_key, expires_in=grant.expires_in)

    # A tokenKey renews the stored credential; a bare refreshToken is passed through.
    @router.post("/refresh", response_model=None)
    async def auth_refresh(payload: RefreshRequest) -> RefreshResponse | TokenRefreshResponse:
        if payload.token_key:
            grant = await run_in_threadpool(token_manager.refresh_handle, payload.token_key)
            return TokenRefreshResponse(token_key=grant.token_key, expires_in=grant.expires_in)
        if not payload.refresh_token:
            raise ValidationError("Missing refresh token", code="MissingRefreshToken")
        tokens = await run_in_threadpool(token_manager.refresh, payload.refresh_token)
        return RefreshResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
        )

    @router.post("/logout", status_code=204)
    async def auth_logout(request: Request) -> None:
        authorization = request.headers.get("authorization", "")
        if not authorization.startswith("Bearer "):
            raise ValidationError("Bearer token handle is required", code="MissingToken")
        await run_in_threadpool(token_manager.revoke, authorization[len("Bearer ") :].strip())

    return router


__all__ = ["build_auth_router"]
