from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class MeResponse(BaseModel):
    id: str
    email: str
    name: str
    avatar_url: str | None
    is_verified: bool
    providers: list[str]
    created_at: datetime
    last_login_at: datetime | None
