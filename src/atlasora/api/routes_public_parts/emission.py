from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from atlasora.api.routes_public_parts.common import _amount, _caller, _opt_amount, _service

router = APIRouter()

Json = Dict[str, Any]


@router.get("/emission/info")
def emission_info(request: Request, now: Optional[int] = None) -> Json:
    """
    Aggregate schedule snapshot.

    `now` (unix seconds) defaults to the server clock; passing it makes the
    answer reproducible.

    Mounted under /v1:
      GET /v1/emission/info
    """
    svc = _service(request)
    info = svc.info(now)
    token = svc.token()
    st = svc.schedule_state()
    return {
        "ok": True,
        "token": token,
        "cycle": info.cycle,
        "total_issued": _amount(info.total_issued),
        "circulating_supply": _amount(info.circulating_supply),
        "remaining": _amount(info.remaining),
        "max_supply": _amount(st.max_supply),
        "next_time": info.next_time,
        "next_amount": _opt_amount(info.next_amount),
        "due": info.due,
        "deployment_time": st.deployment_time,
        "foundation_account": st.foundation_account,
        "emission_interval": st.emission_interval,
    }


@router.get("/emission/next")
def emission_next(request: Request, now: Optional[int] = None) -> Json:
    """
    Next issuance time/amount and whether it is due now.

    Mounted under /v1:
      GET /v1/emission/next
    """
    svc = _service(request)
    info = svc.info(now)
    return {
        "ok": True,
        "cycle": info.cycle,
        "exhausted": info.next_time is None,
        "next_time": info.next_time,
        "next_amount": _opt_amount(info.next_amount),
        "due": info.due,
    }


@router.get("/emission/issuances")
def emission_issuances(request: Request) -> Json:
    svc = _service(request)
    items = [
        {"cycle": r.cycle, "to": r.to, "amount": _amount(r.amount), "time": r.time}
        for r in svc.issuances()
    ]
    return {"ok": True, "count": len(items), "items": items}


@router.post("/emission/issue")
def emission_issue(request: Request) -> Json:
    """
    Trigger the next scheduled issuance.

    Only the current owner succeeds; everyone else gets 403. A premature call
    gets 409 (retry later), a call after cycle 9 gets 410 (nothing left).

    Mounted under /v1:
      POST /v1/emission/issue
    """
    svc = _service(request)
    caller = _caller(request)
    res = svc.issue(caller)
    request.state.emission_cycle = res.cycle
    return {"ok": True, "cycle": res.cycle, "amount": _amount(res.amount), "to": res.to, "time": res.time}
