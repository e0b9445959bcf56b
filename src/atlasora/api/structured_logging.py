# src/atlasora/api/structured_logging.py
from __future__ import annotations

"""JSONL logging for the emission API, deployer and service.

Every line is one JSON object with `ts_ms` and `event`. Token amounts are
integers in base units and routinely exceed 2**53, so integers outside the
JSON-safe range are written as decimal strings.
"""

import json
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

Json = Dict[str, Any]

# Largest integer every JSON consumer reads back exactly.
_SAFE_INT = 2**53 - 1


def _now_ms() -> int:
    return int(time.time() * 1000)


def _jsonable(v: Any) -> Any:
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return v if -_SAFE_INT <= v <= _SAFE_INT else str(v)
    if isinstance(v, dict):
        return {str(k): _jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    return v


def configure_structured_logging() -> None:
    """Configure stdlib logging for JSONL output (stdout).

    - Level from ATLASORA_LOG_LEVEL (default INFO).
    - Safe to call multiple times.
    """
    level_name = (os.environ.get("ATLASORA_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_atlasora_configured", False):  # type: ignore[attr-defined]
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_atlasora_configured", True)  # type: ignore[attr-defined]


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    payload: Json = {"ts_ms": _now_ms(), "event": event}
    payload.update(_jsonable(fields))
    try:
        logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.info(" ".join(parts))


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` line per request.

    Besides method/path/status/duration the line carries what handlers leave
    on request.state:
      caller      account that passed key authentication ("" if none did)
      error_code  code of the error envelope, e.g. "not_yet_due"
      cycle       cycle completed by a successful issuance

    ATLASORA_LOG_REQUESTS=0 disables it (default on).
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("ATLASORA_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("atlasora.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None

        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = str(e)
            raise
        finally:
            fields: Json = {
                "request_id": request_id,
                "method": request.method,
                "path": str(request.url.path or ""),
                "status": status,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "caller": getattr(request.state, "caller", "") or "",
                "error_code": getattr(request.state, "error_code", None),
                "error": err,
            }
            cycle = getattr(request.state, "emission_cycle", None)
            if cycle is not None:
                fields["cycle"] = int(cycle)
            log_event(self._logger, "http_request", **fields)
