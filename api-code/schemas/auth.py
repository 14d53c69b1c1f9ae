from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class OperatorIdentity(BaseModel):
    username: str = Field(..., description="Operator the auth cookie was issued to.")
    is_admin: bool = Field(
        default=False, description="Administrators manage every site; operators only their own."
    )


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class LoginResponse(OperatorIdentity):
    expires_at: datetime = Field(..., description="When the auth cookie stops being accepted.")


class LogoutResponse(BaseModel):
    success: bool = True


class MeResponse(OperatorIdentity):
    pass
