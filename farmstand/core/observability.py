import json
import logging
import time
import traceback
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from farmstand.core.config import settings
from farmstand.core.errors import MarketplaceError

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
logger = logging.getLogger("farmstand.api")
engine_logger = logging.getLogger("farmstand.engine")


def setup_observability() -> None:
    for target in (logger, engine_logger):
        if target.handlers:
            continue
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        target.addHandler(handler)
        target.setLevel(logging.INFO)
        target.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def log_json(target: logging.Logger, level: int, payload: dict[str, Any]) -> None:
    target.log(level, json.dumps(payload, default=str))


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or get_request_id()


def _envelope(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = {
        "code": code,
        "message": message,
        "request_id": _request_id_for(request),
        "path": request.url.path,
        "details": details,
    }
    return JSONResponse(status_code=status_code, headers=headers, content={"error": body})


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    token = request_id_ctx.set(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        log_json(
            logger,
            logging.INFO,
            {
                "event": "request",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        request_id_ctx.reset(token)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-API-Timeout-Hint-Ms"] = str(settings.api_timeout_hint_ms)
    return response


# Codes for HTTPExceptions raised by auth and role dependencies.
_HTTP_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    422: "validation_error",
}


async def http_exception_handler(request: Request, exc: HTTPException):
    plain = isinstance(exc.detail, str)
    return _envelope(
        request,
        status_code=exc.status_code,
        code=_HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        message=exc.detail if plain else "HTTP error",
        details=None if plain else exc.detail,
        headers=exc.headers,
    )


async def marketplace_exception_handler(request: Request, exc: MarketplaceError):
    log_json(
        engine_logger,
        logging.WARNING,
        {
            "event": "engine.rejected",
            "request_id": _request_id_for(request),
            "path": request.url.path,
            "code": exc.code,
            "message": exc.message,
        },
    )
    return _envelope(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details or None,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", []) if part != "body"]
        details.append(
            {
                "field": ".".join(location) or "body",
                "message": err.get("msg", "Invalid value"),
                "type": err.get("type"),
            }
        )
    return _envelope(
        request,
        status_code=422,
        code="validation_error",
        message="Validation failed",
        details=details,
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    log_json(
        logger,
        logging.ERROR,
        {
            "event": "unhandled_exception",
            "request_id": _request_id_for(request),
            "path": request.url.path,
            "error": str(exc),
            "traceback": traceback.format_exc(limit=10),
        },
    )
    return _envelope(request, status_code=500, code="internal_error", message="Internal server error")
