from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Header, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import (
    get_apple_callback_use_case,
    get_bearer_token,
    get_google_callback_use_case,
    get_initiate_oauth_use_case,
    get_login_local_use_case,
    get_logout_session_use_case,
    get_register_user_use_case,
)
from app.api.schemas.auth import (
    AuthTokenResponse,
    LoginRequest,
    LogoutResponse,
    RegisterRequest,
    RegisterResponse,
)
from app.application.dto.auth import (
    InitiateOauthInput,
    LoginLocalInput,
    LogoutInput,
    OauthCallbackInput,
    RegisterUserInput,
)
from app.application.use_cases.handle_oauth_callback import HandleOauthCallbackUseCase
from app.application.use_cases.initiate_oauth import InitiateOauthUseCase
from app.application.use_cases.login_local import LoginLocalUseCase
from app.application.use_cases.logout_session import LogoutSessionUseCase
from app.application.use_cases.register_user import RegisterUserUseCase
from app.domain.entities.user import AuthProvider
from app.domain.exceptions import (
    DomainError,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    SessionInvalidError,
    UserNotVerifiedError,
)
from app.shared.config import get_settings


logger = logging.getLogger(__name__)

router = APIRouter()

_CALLBACK_ERROR_CODES = {
    "access-denied": "access_denied",
    "invalid-state": "invalid_state",
    "provider-error": "provider_error",
    "provider-timeout": "provider_timeout",
    "account-conflict": "account_conflict",
    "not-verified": "not_verified",
}


def _success_redirect(redirect_to: str, token: str, expires_at) -> RedirectResponse:
    fragment = urlencode({"token": token, "expires_at": expires_at.isoformat()})
    return RedirectResponse(url=f"{redirect_to}#{fragment}", status_code=302)


def _error_redirect(code: str) -> RedirectResponse:
    error_url = get_settings().frontend_error_url
    separator = "&" if "?" in error_url else "?"
    return RedirectResponse(url=f"{error_url}{separator}{urlencode({'error': code})}", status_code=302)


def _run_callback(use_case: HandleOauthCallbackUseCase, command: OauthCallbackInput) -> RedirectResponse:
    try:
        output = use_case.execute(command)
    except DomainError as exc:
        logger.warning(
            "oauth_callback: failed provider=%s code=%s detail=%s",
            command.provider.value,
            exc.code,
            exc,
        )
        return _error_redirect(_CALLBACK_ERROR_CODES.get(exc.code, "server_error"))
    except SQLAlchemyError:
        logger.exception("oauth_callback: storage failure provider=%s", command.provider.value)
        return _error_redirect("server_error")
    return _success_redirect(output.redirect_to, output.session.token, output.session.expires_at)


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register_user(
    req: RegisterRequest,
    use_case: RegisterUserUseCase = Depends(get_register_user_use_case),
):
    try:
        output = use_case.execute(
            RegisterUserInput(
                email=req.email,
                password=req.password,
                name=req.name,
            )
        )
    except EmailAlreadyExistsError as exc:
        raise HTTPException(status_code=409, detail=exc.code) from exc

    return RegisterResponse(
        user={
            "id": output.user.id,
            "email": output.user.email,
            "name": output.user.name,
        }
    )


@router.post("/auth/login", response_model=AuthTokenResponse)
def login_local(
    req: LoginRequest,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: LoginLocalUseCase = Depends(get_login_local_use_case),
):
    try:
        output = use_case.execute(
            LoginLocalInput(
                email=req.email,
                password=req.password,
                user_agent=user_agent,
                ip=x_forwarded_for,
            )
        )
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail=exc.code) from exc
    except UserNotVerifiedError as exc:
        raise HTTPException(status_code=403, detail=exc.code) from exc

    return AuthTokenResponse(
        token=output.token,
        expires_at=output.expires_at,
        user={
            "id": output.user.id,
            "email": output.user.email,
            "name": output.user.name,
        },
    )


@router.get("/auth/{provider}/initiate")
def initiate_oauth(
    provider: AuthProvider,
    next_url: str | None = Query(default=None, alias="next"),
    use_case: InitiateOauthUseCase = Depends(get_initiate_oauth_use_case),
):
    output = use_case.execute(InitiateOauthInput(provider=provider, next_url=next_url))
    return RedirectResponse(url=output.authorization_url, status_code=302)


@router.get("/auth/google/callback")
def google_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    use_case: HandleOauthCallbackUseCase = Depends(get_google_callback_use_case),
):
    return _run_callback(
        use_case,
        OauthCallbackInput(
            provider=AuthProvider.GOOGLE,
            state=state,
            code=code,
            error=error,
        ),
    )


@router.post("/auth/apple/callback")
def apple_callback(
    code: str | None = Form(default=None),
    state: str | None = Form(default=None),
    id_token: str | None = Form(default=None),
    user: str | None = Form(default=None),
    error: str | None = Form(default=None),
    use_case: HandleOauthCallbackUseCase = Depends(get_apple_callback_use_case),
):
    # Claims come from the exchanged id_token only.
    _ = id_token
    return _run_callback(
        use_case,
        OauthCallbackInput(
            provider=AuthProvider.APPLE,
            state=state,
            code=code,
            error=error,
            user_payload=user,
        ),
    )


@router.post("/auth/logout", response_model=LogoutResponse)
def logout_auth(
    token: str = Depends(get_bearer_token),
    use_case: LogoutSessionUseCase = Depends(get_logout_session_use_case),
):
    try:
        use_case.execute(LogoutInput(token=token))
    except SessionInvalidError as exc:
        raise HTTPException(
            status_code=401,
            detail=exc.code,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return LogoutResponse(ok=True)
