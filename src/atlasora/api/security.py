from __future__ import annotations

import hmac
import os
from typing import Mapping, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from atlasora.api.errors import ApiError


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def require_account_key(
    request: Request,
    api_keys: Mapping[str, str],
    *,
    account_header: str = "x-atlasora-account",
    key_header: str = "x-atlasora-key",
) -> str:
    """Authenticate the caller of a mutating endpoint.

    Client provides:
      - X-AtlasOra-Account: "0xabc..."
      - X-AtlasOra-Key: "..."

    The key must match ATLASORA_API_KEYS for that account (constant-time compare).
    This only establishes *who* is calling; whether that account may trigger
    emission is decided by the access gate.
    """
    acct = (request.headers.get(account_header) or "").strip()
    key = (request.headers.get(key_header) or "").strip()
    if not acct or not key:
        raise ApiError.unauthenticated("credentials_missing", "account and key headers are required")

    expected = api_keys.get(acct)
    if not expected or not hmac.compare_digest(expected.encode("utf-8"), key.encode("utf-8")):
        raise ApiError.unauthenticated("credentials_invalid", "unknown account or wrong key")

    request.state.caller = acct
    return acct


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Fail-fast request size limiter.

    Configure:
      ATLASORA_MAX_REQUEST_BYTES (default: 64_000)
      ATLASORA_SIZE_LIMIT_DISABLE=1 to disable
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        self._enabled = not _truthy(os.environ.get("ATLASORA_SIZE_LIMIT_DISABLE"))
        self._max_bytes = int(max_bytes) if max_bytes is not None else _env_int("ATLASORA_MAX_REQUEST_BYTES", 64_000)
        self._exempt_prefixes = exempt_prefixes

    def _too_large(self) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={"ok": False, "error": {"code": "request_too_large", "message": "Request body too large"}},
        )

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        path = request.url.path or ""
        for ex in self._exempt_prefixes:
            if path.startswith(ex):
                return await call_next(request)

        cl = request.headers.get("content-length")
        if cl:
            try:
                if int(cl) > self._max_bytes:
                    return self._too_large()
            except ValueError:
                pass

        if (request.method or "").upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if body and len(body) > self._max_bytes:
                return self._too_large()

        return await call_next(request)
