# src/atlasora/ledger/balances.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from atlasora.emission.schedule import is_null_account

Json = Dict[str, Any]


@dataclass
class LedgerError(RuntimeError):
    code: str
    reason: str
    details: Json

    http_status = 400

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}:{self.details}"


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise LedgerError("invalid_amount", "amount_must_be_int", {"amount": repr(amount)})
    if amount < 0:
        raise LedgerError("invalid_amount", "amount_must_be_non_negative", {"amount": str(amount)})
    return amount


def _require_account(account: Any) -> str:
    if not isinstance(account, str) or is_null_account(account):
        raise LedgerError("invalid_account", "null_account", {"account": repr(account)})
    return account.strip()


@dataclass
class BalanceLedger:
    """Account balances and circulating-supply accounting.

    Invariant: total_credited - total_debited == sum(balances) == circulating supply.

    Every mutation validates before touching any field, so a rejected call
    leaves the ledger unchanged.
    """

    balances: Dict[str, int] = field(default_factory=dict)
    total_credited: int = 0
    total_debited: int = 0
    burnable: bool = True

    def balance_of(self, account: str) -> int:
        return int(self.balances.get(str(account).strip(), 0))

    def credit(self, account: str, amount: int) -> None:
        acct = _require_account(account)
        amt = _require_amount(amount)
        self.balances[acct] = self.balances.get(acct, 0) + amt
        self.total_credited += amt

    def debit(self, account: str, amount: int) -> None:
        acct = _require_account(account)
        amt = _require_amount(amount)
        bal = self.balances.get(acct, 0)
        if bal < amt:
            raise LedgerError(
                "insufficient_balance",
                "balance_below_amount",
                {"account": acct, "balance": str(bal), "amount": str(amt)},
            )
        self.balances[acct] = bal - amt
        self.total_debited += amt

    def burn(self, account: str, amount: int) -> None:
        """Destroy units held by `account`. Circulating supply shrinks; nothing else moves."""
        if not self.burnable:
            raise LedgerError("burn_disabled", "token_not_burnable", {"account": str(account)})
        self.debit(account, amount)

    def total_balance_supply(self) -> int:
        return int(sum(self.balances.values()))

    def circulating_supply(self) -> int:
        return self.total_credited - self.total_debited

    def check_invariant(self) -> bool:
        return self.circulating_supply() == self.total_balance_supply()

    def to_json(self) -> Json:
        return {
            "balances": {k: int(v) for k, v in sorted(self.balances.items()) if int(v) != 0},
            "total_credited": int(self.total_credited),
            "total_debited": int(self.total_debited),
            "burnable": bool(self.burnable),
        }

    @classmethod
    def from_json(cls, obj: Optional[Json]) -> "BalanceLedger":
        raw = obj if isinstance(obj, dict) else {}
        bals = raw.get("balances")
        balances: Dict[str, int] = {}
        if isinstance(bals, dict):
            for k, v in bals.items():
                acct = str(k).strip()
                if acct:
                    balances[acct] = _as_int(v, 0)
        ledger = cls(
            balances=balances,
            total_credited=_as_int(raw.get("total_credited"), 0),
            total_debited=_as_int(raw.get("total_debited"), 0),
            burnable=bool(raw.get("burnable", True)),
        )
        if not ledger.check_invariant():
            raise LedgerError(
                "corrupt_ledger",
                "credited_minus_debited_mismatch",
                {
                    "circulating": str(ledger.circulating_supply()),
                    "balances_total": str(ledger.total_balance_supply()),
                },
            )
        return ledger


__all__ = ["BalanceLedger", "LedgerError"]
