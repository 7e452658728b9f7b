from __future__ import annotations

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.engine import Engine

from app.application.ports.auth_state_port import AuthStatePort
from app.domain.entities.auth_state import PendingAuthState
from app.infrastructure.db.mappers.accounts_mapper import map_row_to_auth_state


class SqlAuthStateRepository(AuthStatePort):
    def __init__(self, engine: Engine):
        self._engine = engine

    def save_state(self, *, state: PendingAuthState) -> None:
        sql = """
            INSERT INTO public.auth_states (
                token_hash, provider, redirect_to, created_at, expires_at, consumed_at
            ) VALUES (
                :token_hash, :provider, :redirect_to, :created_at, :expires_at, NULL
            )
        """
        with self._engine.begin() as conn:
            conn.execute(
                text(sql),
                {
                    "token_hash": state.token_hash,
                    "provider": state.provider.value,
                    "redirect_to": state.redirect_to,
                    "created_at": state.created_at,
                    "expires_at": state.expires_at,
                },
            )

    def consume_state(self, *, token_hash: str, now: datetime) -> PendingAuthState | None:
        # Single conditional UPDATE: concurrent callbacks race on the row lock and
        # only the first sees consumed_at IS NULL.
        sql = """
            UPDATE public.auth_states
            SET consumed_at = :now
            WHERE token_hash = :token_hash
              AND consumed_at IS NULL
              AND expires_at > :now
            RETURNING token_hash, provider, redirect_to, created_at, expires_at, consumed_at
        """
        with self._engine.begin() as conn:
            row = conn.execute(text(sql), {"token_hash": token_hash, "now": now}).mappings().first()
        if row is None:
            return None
        return map_row_to_auth_state(row)

    def delete_expired_states(self, *, now: datetime) -> int:
        sql = """
            DELETE FROM public.auth_states
            WHERE expires_at <= :now
               OR consumed_at IS NOT NULL
        """
        with self._engine.begin() as conn:
            result = conn.execute(text(sql), {"now": now})
        return int(result.rowcount or 0)
