from __future__ import annotations

from datetime import datetime
from typing import Protocol


class RevocationPort(Protocol):
    def add_revoked(self, *, token_id: str, expires_at: datetime) -> None:
        ...

    def is_revoked(self, *, token_id: str, now: datetime) -> bool:
        ...

    def prune_revoked(self, *, now: datetime) -> int:
        ...
