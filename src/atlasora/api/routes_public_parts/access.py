from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from atlasora.api.routes_public_parts.common import _caller, _service
from atlasora.api.schemas import OwnershipTransferRequest

router = APIRouter()

Json = Dict[str, Any]


@router.get("/access/owner")
def access_owner(request: Request) -> Json:
    svc = _service(request)
    events = [e.to_json() for e in svc.ownership_events()]
    return {"ok": True, "owner": svc.owner(), "events": events}


@router.post("/access/transfer-ownership")
def access_transfer_ownership(body: OwnershipTransferRequest, request: Request) -> Json:
    svc = _service(request)
    caller = _caller(request)
    ev = svc.transfer_ownership(caller, body.new_owner)
    return {"ok": True, **ev.to_json()}


@router.post("/access/renounce")
def access_renounce(request: Request) -> Json:
    """Give up ownership for good. No account can trigger issuance afterwards."""
    svc = _service(request)
    caller = _caller(request)
    ev = svc.renounce_ownership(caller)
    return {"ok": True, **ev.to_json()}
