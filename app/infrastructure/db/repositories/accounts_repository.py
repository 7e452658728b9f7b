from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from app.application.ports.auth_port import AuthPort
from app.domain.entities.user import AuthProvider, User
from app.domain.exceptions import AccountLinkConflictError, EmailAlreadyExistsError
from app.infrastructure.db.mappers.accounts_mapper import USER_COLUMNS, map_row_to_user


TResult = TypeVar("TResult")

_SUBJECT_COLUMNS = {
    AuthProvider.GOOGLE: "google_subject",
    AuthProvider.APPLE: "apple_subject",
}


class SqlAccountsRepository(AuthPort):
    def __init__(self, engine: Engine, *, connection: Connection | None = None):
        self._engine = engine
        self._connection = connection

    @contextmanager
    def _reader(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def _writer(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.begin() as conn:
            yield conn

    def execute_in_transaction(self, fn: Callable[[AuthPort], TResult]) -> TResult:
        if self._connection is not None:
            return fn(self)
        with self._engine.begin() as conn:
            return fn(SqlAccountsRepository(self._engine, connection=conn))

    def get_user_by_id(self, *, user_id: str) -> User | None:
        sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE id = :user_id
            LIMIT 1
        """
        with self._reader() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_email(self, *, email: str) -> User | None:
        sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE lower(email) = :email
            LIMIT 1
        """
        with self._reader() as conn:
            row = conn.execute(text(sql), {"email": email.lower()}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_provider_subject(self, *, provider: AuthProvider, subject: str) -> User | None:
        column = _SUBJECT_COLUMNS[provider]
        sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE {column} = :subject
            LIMIT 1
        """
        with self._reader() as conn:
            row = conn.execute(text(sql), {"subject": subject}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        display_name: str,
        password_digest: str | None,
        google_subject: str | None,
        apple_subject: str | None,
        avatar_url: str | None,
        is_verified: bool,
        created_at: datetime,
    ) -> User:
        sql = f"""
            INSERT INTO public.users (
                id, email, display_name, password_digest, google_subject, apple_subject,
                avatar_url, is_verified, created_at, updated_at
            ) VALUES (
                :id, :email, :display_name, :password_digest, :google_subject, :apple_subject,
                :avatar_url, :is_verified, :created_at, :created_at
            )
            ON CONFLICT DO NOTHING
            RETURNING {USER_COLUMNS}
        """
        params = {
            "id": user_id,
            "email": email,
            "display_name": display_name,
            "password_digest": password_digest,
            "google_subject": google_subject,
            "apple_subject": apple_subject,
            "avatar_url": avatar_url,
            "is_verified": is_verified,
            "created_at": created_at,
        }
        with self._writer() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row is None:
            raise EmailAlreadyExistsError("Email already in use.")
        return map_row_to_user(row)

    def link_provider_subject(
        self,
        *,
        user_id: str,
        provider: AuthProvider,
        subject: str,
        updated_at: datetime,
    ) -> User:
        column = _SUBJECT_COLUMNS[provider]
        sql = f"""
            UPDATE public.users
            SET {column} = :subject,
                updated_at = :updated_at
            WHERE id = :user_id
              AND ({column} IS NULL OR {column} = :subject)
            RETURNING {USER_COLUMNS}
        """
        try:
            with self._writer() as conn:
                row = conn.execute(
                    text(sql),
                    {
                        "user_id": user_id,
                        "subject": subject,
                        "updated_at": updated_at,
                    },
                ).mappings().first()
        except IntegrityError as exc:
            raise AccountLinkConflictError("Identity is already linked to another account.") from exc
        if row is None:
            raise AccountLinkConflictError(f"Account is already linked to another {provider.value} identity.")
        return map_row_to_user(row)

    def update_profile(
        self,
        *,
        user_id: str,
        display_name: str,
        avatar_url: str | None,
        is_verified: bool,
        updated_at: datetime,
    ) -> User:
        sql = f"""
            UPDATE public.users
            SET display_name = :display_name,
                avatar_url = :avatar_url,
                is_verified = :is_verified,
                updated_at = :updated_at
            WHERE id = :user_id
            RETURNING {USER_COLUMNS}
        """
        with self._writer() as conn:
            row = conn.execute(
                text(sql),
                {
                    "user_id": user_id,
                    "display_name": display_name,
                    "avatar_url": avatar_url,
                    "is_verified": is_verified,
                    "updated_at": updated_at,
                },
            ).mappings().one()
        return map_row_to_user(row)

    def update_password_digest(self, *, user_id: str, password_digest: str, updated_at: datetime) -> None:
        sql = """
            UPDATE public.users
            SET password_digest = :password_digest,
                updated_at = :updated_at
            WHERE id = :user_id
        """
        with self._writer() as conn:
            conn.execute(
                text(sql),
                {
                    "user_id": user_id,
                    "password_digest": password_digest,
                    "updated_at": updated_at,
                },
            )

    def record_login(self, *, user_id: str, logged_in_at: datetime) -> None:
        sql = """
            UPDATE public.users
            SET last_login_at = :logged_in_at,
                updated_at = :logged_in_at
            WHERE id = :user_id
        """
        with self._writer() as conn:
            conn.execute(text(sql), {"user_id": user_id, "logged_in_at": logged_in_at})
