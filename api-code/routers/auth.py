from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from schemas import LoginRequest, LoginResponse, LogoutResponse, MeResponse
from services import AuthService


logger = logging.getLogger("gitdeploy.auth")


def build_auth_router(auth_service: AuthService) -> APIRouter:
    router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
    current_user = auth_service.build_auth_dependency()

    @router.post("/login", response_model=LoginResponse, summary="Issue the operator auth cookie.")
    async def login(payload: LoginRequest, response: Response) -> LoginResponse:
        username = payload.username.strip()
        if not auth_service.verify_credentials(username, payload.password):
            logger.warning("Failed login attempt username=%s", username)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")

        token, expires_at = auth_service.create_access_token(username)
        auth_service.set_auth_cookie(response, token, expires_at)
        logger.info("Operator logged in username=%s", username)
        return LoginResponse(
            username=username,
            is_admin=auth_service.is_admin(username),
            expires_at=expires_at,
        )

    @router.post("/logout", response_model=LogoutResponse, summary="Drop the auth cookie.")
    async def logout(response: Response) -> LogoutResponse:
        auth_service.clear_auth_cookie(response)
        return LogoutResponse()

    @router.get("/me", response_model=MeResponse, summary="Operator behind the current cookie.")
    async def me(user: Dict[str, Any] = Depends(current_user)) -> MeResponse:
        return MeResponse.model_validate(user)

    return router
