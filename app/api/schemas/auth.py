from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=256)
    name: str | None = Field(default=None, max_length=120)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=256)


class AuthUserResponse(BaseModel):
    id: str
    email: str
    name: str


class RegisterResponse(BaseModel):
    user: AuthUserResponse


class AuthTokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: AuthUserResponse


class LogoutResponse(BaseModel):
    ok: bool
