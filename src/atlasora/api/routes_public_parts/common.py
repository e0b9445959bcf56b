from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from atlasora.api.errors import ApiError
from atlasora.api.security import require_account_key
from atlasora.runtime.service import EmissionService

Json = Dict[str, Any]


def _service_attached(request: Request) -> EmissionService:
    svc = getattr(request.app.state, "service", None)
    if svc is None:
        raise ApiError.internal("not_ready", "service not attached to app.state", {})
    return svc


def _service(request: Request) -> EmissionService:
    """Attached and deployed service; 503 until the schedule has been deployed."""
    svc = _service_attached(request)
    if not svc.is_deployed():
        raise ApiError.unavailable("not_deployed", "emission schedule has not been deployed", {})
    return svc


def _caller(request: Request) -> str:
    cfg = getattr(request.app.state, "cfg", None)
    keys = getattr(cfg, "api_keys", None) or {}
    return require_account_key(request, keys)


def _amount(v: Any) -> str:
    """Amounts go out as decimal strings; JS clients lose precision above 2**53."""
    return str(int(v))


def _opt_amount(v: Any) -> Any:
    return None if v is None else _amount(v)
