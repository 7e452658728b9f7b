from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.routers.auth import router as auth_router
from app.api.routers.me import router as me_router
from app.domain.exceptions import DomainError, ErrorKind, InputValidationError, UserNotVerifiedError
from app.shared.config import get_settings


logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.INPUT_VALIDATION: 400,
    ErrorKind.AUTHENTICATION_FAILURE: 401,
    ErrorKind.PROVIDER_INTEGRATION_FAILURE: 502,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INFRASTRUCTURE_FAILURE: 500,
}

app = FastAPI(title="Auth API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(auth_router)
app.include_router(me_router)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(_request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "invalid-input", "errors": errors})


@app.exception_handler(DomainError)
async def handle_domain_error(request: Request, exc: DomainError):
    if isinstance(exc, InputValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "detail": exc.code,
                "errors": [{"field": exc.field or "", "message": str(exc)}],
            },
        )
    status_code = 403 if isinstance(exc, UserNotVerifiedError) else _STATUS_BY_KIND[exc.kind]
    if status_code >= 500:
        logger.error("api: request failed path=%s code=%s detail=%s", request.url.path, exc.code, exc)
    return JSONResponse(status_code=status_code, content={"detail": exc.code})


@app.exception_handler(SQLAlchemyError)
async def handle_storage_error(request: Request, exc: SQLAlchemyError):
    logger.error("api: storage failure path=%s error=%s", request.url.path, exc.__class__.__name__)
    return JSONResponse(status_code=500, content={"detail": "server-error"})
