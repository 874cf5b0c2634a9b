from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chain.errors import RpcError, UnsupportedContract
from config.settings import settings
from ledger.client import LedgerError
from ledger.publisher import LedgerInconsistency
from metadata.fetcher import FetchError
from ops.structured_logger import setup_logging
from permissions.validator import PermissionCheckError, ValidationFailure
from services.collections import CollectionNotFound, InvalidCollectionRequest, TokenNotFound
from utils.request_context import clear_request_id, set_request_id

from app.routers.collections import router as collections_router
from app.routers.health import router as health_router
from app.routers.tokens import router as tokens_router

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title="Megadata API", version="1.0.0")
log = logging.getLogger("megadata.api")


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or ""


def _domain_error(request: Request, status_code: int, detail: str, exc: Exception) -> JSONResponse:
    rid = _get_request_id(request)
    log.warning(
        "domain_error",
        extra={
            "extra": {
                "event": "domain_error",
                "status_code": status_code,
                "error_type": type(exc).__name__,
                "message": str(exc),
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            }
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
    )


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    set_request_id(rid)
    try:
        response = await call_next(request)
    finally:
        clear_request_id()
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    rid = _get_request_id(request)
    log.warning(
        "http_exception",
        extra={
            "extra": {
                "event": "http_exception",
                "status_code": exc.status_code,
                "detail": exc.detail,
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            }
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = _get_request_id(request)
    log.warning(
        "validation_error",
        extra={
            "extra": {
                "event": "validation_error",
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            }
        },
    )
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
    )


@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure):
    return _domain_error(request, 403, exc.result.error or "not_authorized", exc)


@app.exception_handler(UnsupportedContract)
async def unsupported_contract_handler(request: Request, exc: UnsupportedContract):
    return _domain_error(request, 400, str(exc), exc)


@app.exception_handler(InvalidCollectionRequest)
async def invalid_collection_request_handler(request: Request, exc: InvalidCollectionRequest):
    return _domain_error(request, 400, str(exc), exc)


@app.exception_handler(CollectionNotFound)
async def collection_not_found_handler(request: Request, exc: CollectionNotFound):
    return _domain_error(request, 404, "collection_not_found", exc)


@app.exception_handler(TokenNotFound)
async def token_not_found_handler(request: Request, exc: TokenNotFound):
    return _domain_error(request, 404, "token_not_found", exc)


@app.exception_handler(RpcError)
async def rpc_error_handler(request: Request, exc: RpcError):
    return _domain_error(request, 502, "chain_rpc_unavailable", exc)


@app.exception_handler(PermissionCheckError)
async def permission_check_error_handler(request: Request, exc: PermissionCheckError):
    return _domain_error(request, 502, "permission_check_unavailable", exc)


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    return _domain_error(request, 502, "metadata_fetch_failed", exc)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return _domain_error(request, 502, "ledger_unavailable", exc)


@app.exception_handler(LedgerInconsistency)
async def ledger_inconsistency_handler(request: Request, exc: LedgerInconsistency):
    # Ledger holds the items; the sync worker converges local status on its next runs.
    return _domain_error(request, 500, "ledger_inconsistent", exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _get_request_id(request)
    log.error(
        "internal_unhandled_exception",
        extra={
            "extra": {
                "event": "internal_unhandled_exception",
                "error_type": type(exc).__name__,
                "message": str(exc),
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            }
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "internal_unhandled_exception", "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["health"])
app.include_router(tokens_router, prefix="/api", tags=["tokens"])
app.include_router(collections_router, prefix="/api", tags=["collections"])
