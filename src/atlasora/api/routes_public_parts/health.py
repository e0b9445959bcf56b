from __future__ import annotations

import os
from typing import Any, Dict

from fastapi import APIRouter, Request

from atlasora.api.routes_public_parts.common import _service_attached

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    """
    Liveness plus deployment flag.

    Mounted under /v1:
      GET /v1/health
    """
    svc = _service_attached(request)
    deployed = bool(svc.is_deployed())
    out: Json = {
        "ok": True,
        "deployed": deployed,
        "mode": (os.environ.get("ATLASORA_MODE") or "prod").strip().lower(),
        "now": svc.now(),
    }
    if deployed:
        st = svc.schedule_state()
        out["cycle"] = st.current_cycle
        out["exhausted"] = st.exhausted
    return out
