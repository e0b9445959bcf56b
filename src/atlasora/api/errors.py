from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from atlasora.emission.errors import EmissionError
from atlasora.ledger.balances import LedgerError


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def unauthenticated(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(401, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def unavailable(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(503, code, message, details or {})


def _error_response(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]]) -> JSONResponse:
    return JSONResponse(
        status_code=int(status_code),
        content={"ok": False, "error": {"code": code, "message": message, "details": details or {}}},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Render ApiError and domain errors as {"ok": false, "error": {...}}."""

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        request.state.error_code = exc.code
        return _error_response(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(EmissionError)
    async def _emission_error(request: Request, exc: EmissionError) -> JSONResponse:
        request.state.error_code = exc.code
        return _error_response(exc.http_status, exc.code, exc.reason, exc.details)

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        request.state.error_code = exc.code
        return _error_response(exc.http_status, exc.code, exc.reason, exc.details)
