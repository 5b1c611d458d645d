from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from recordstore.runtime.errors import (
    AuthorizationError,
    DuplicateError,
    InsufficientFunds,
    LedgerError,
    NotFoundError,
    StoreError,
    ValidationError,
)


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


def status_for_store_error(e: StoreError) -> int:
    if isinstance(e, ValidationError):
        return 400
    if isinstance(e, AuthorizationError):
        return 403
    if isinstance(e, NotFoundError):
        return 404
    if isinstance(e, DuplicateError):
        return 409
    if isinstance(e, InsufficientFunds):
        return 402
    if isinstance(e, LedgerError):
        return 409
    # CorruptRecord / AddressDerivationError
    return 500


def _error_body(code: str, reason: str, details: Any) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "reason": reason, "details": details if details is not None else {}}}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def _store_error(_request: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(status_code=status_for_store_error(exc), content=_error_body(exc.code, exc.reason, exc.details))

    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))
