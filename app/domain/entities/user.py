from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AuthProvider(str, Enum):
    GOOGLE = "google"
    APPLE = "apple"


@dataclass(frozen=True)
class User:
    id: str
    email: str
    display_name: str
    password_digest: str | None
    google_subject: str | None
    apple_subject: str | None
    avatar_url: str | None
    is_verified: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None

    def subject_for(self, provider: AuthProvider) -> str | None:
        if provider is AuthProvider.GOOGLE:
            return self.google_subject
        return self.apple_subject
