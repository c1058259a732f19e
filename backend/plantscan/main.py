"""
FastAPI application entry point

- creates the app
- configures Sentry and CORS
- renders every error as ``{"error": message, "code": code}``
- mounts the API routes under /api/v1

Run:
    uvicorn plantscan.main:app --reload
"""
import logging
from typing import Any

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException

from plantscan.api.errors import AppError
from plantscan.api.main import api_router
from plantscan.core.config import settings

logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    """OpenAPI operation id as ``{tag}-{route name}``, e.g. ``billing-webhook``"""
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":  # pragma: no cover
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
)


def _error_response(status_code: int, code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"error": message, "code": code, **extra}),
    )


@app.exception_handler(AppError)
async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    """
    Business error handler

    Provider codes are only logged, never sent to the client.
    """
    if exc.status_code >= 500 or exc.provider_code:
        logger.warning(
            "AppError code=%s status=%s provider_code=%s: %s",
            exc.code,
            exc.status_code,
            exc.provider_code,
            exc.message,
        )
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Framework errors (404 route, 405 method, ...) in the same shape"""
    if isinstance(exc.detail, dict) and {"code", "message"} <= set(exc.detail.keys()):
        code = int(exc.detail["code"])
        message = str(exc.detail["message"])
    else:
        code = exc.status_code * 1000
        message = str(exc.detail)
    return _error_response(exc.status_code, code, message)


# Malformed promo input is a plain 400, like a rejected code.
PROMO_INPUT_PATHS = frozenset(
    f"{settings.API_V1_STR}/billing/{name}" for name in ("validate-promo", "create-checkout")
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation errors keep the field-level details"""
    if request.url.path in PROMO_INPUT_PATHS:
        return _error_response(400, 400200, "Некорректный промокод", details=exc.errors())
    return _error_response(422, 422000, "Validation error", details=exc.errors())


if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
