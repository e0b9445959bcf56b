from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from atlasora.api.routes_public_parts.common import _amount, _caller, _service
from atlasora.api.schemas import BurnRequest

router = APIRouter()

Json = Dict[str, Any]


@router.get("/accounts/{account}/balance")
def account_balance(account: str, request: Request) -> Json:
    svc = _service(request)
    return {"ok": True, "account": account, "balance": _amount(svc.balance_of(account))}


@router.get("/ledger/supply")
def ledger_supply(request: Request) -> Json:
    """
    Circulating vs cumulative supply.

    circulating_supply drops when units are burned; total_issued never does.
    """
    svc = _service(request)
    sup = svc.supply()
    return {"ok": True, **{k: _amount(v) for k, v in sup.items()}}


@router.post("/ledger/burn")
def ledger_burn(body: BurnRequest, request: Request) -> Json:
    svc = _service(request)
    caller = _caller(request)
    out = svc.burn(caller, int(body.amount))
    return {
        "ok": True,
        "account": out["account"],
        "amount": _amount(out["amount"]),
        "balance": _amount(out["balance"]),
        "circulating_supply": _amount(out["circulating_supply"]),
        "total_issued": _amount(out["total_issued"]),
    }
