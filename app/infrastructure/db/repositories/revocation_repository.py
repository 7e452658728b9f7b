from __future__ import annotations

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.engine import Engine

from app.application.ports.revocation_port import RevocationPort


class SqlRevocationRepository(RevocationPort):
    def __init__(self, engine: Engine):
        self._engine = engine

    def add_revoked(self, *, token_id: str, expires_at: datetime) -> None:
        sql = """
            INSERT INTO public.revoked_session_tokens (token_id, expires_at, revoked_at)
            VALUES (:token_id, :expires_at, now())
            ON CONFLICT (token_id) DO UPDATE
            SET expires_at = GREATEST(public.revoked_session_tokens.expires_at, EXCLUDED.expires_at)
        """
        with self._engine.begin() as conn:
            conn.execute(text(sql), {"token_id": token_id, "expires_at": expires_at})

    def is_revoked(self, *, token_id: str, now: datetime) -> bool:
        sql = """
            SELECT 1
            FROM public.revoked_session_tokens
            WHERE token_id = :token_id
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(text(sql), {"token_id": token_id}).first()
        return row is not None

    def prune_revoked(self, *, now: datetime) -> int:
        sql = """
            DELETE FROM public.revoked_session_tokens
            WHERE expires_at <= :now
        """
        with self._engine.begin() as conn:
            result = conn.execute(text(sql), {"now": now})
        return int(result.rowcount or 0)
