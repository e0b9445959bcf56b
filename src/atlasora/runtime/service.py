# src/atlasora/runtime/service.py
from __future__ import annotations

"""Host runtime around the emission scheduler.

The scheduler assumes its caller serializes mutations. This service does that:
a process lock plus one store transaction per operation. Each operation
rebuilds scheduler, ledger and gate from the persisted snapshot, applies the
change, and writes the snapshot back in the same transaction; a raising
operation therefore persists nothing.

Time is read once per operation from the injected clock and passed down as
`now`.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from atlasora.access.gate import OwnerGate, OwnershipTransferred
from atlasora.api.structured_logging import log_event
from atlasora.config.token_config import TokenConfig, validate_token_config
from atlasora.emission.constants import EMISSION_INTERVAL_SECONDS
from atlasora.emission.errors import EmissionError, InvalidConfiguration
from atlasora.emission.scheduler import EmissionScheduler, IssuanceRecord, IssuanceResult, ScheduleInfo, ScheduleState
from atlasora.ledger.balances import BalanceLedger, LedgerError
from atlasora.runtime.metrics import observe_schedule, record_burn, record_issuance, record_rejection, set_gauge
from atlasora.runtime.state_store import StateStore

Json = Dict[str, Any]

log = logging.getLogger("atlasora.emission")


@dataclass
class _Runtime:
    token: Json
    scheduler: EmissionScheduler
    ledger: BalanceLedger
    gate: OwnerGate


def _load(st: Json) -> _Runtime:
    ledger = BalanceLedger.from_json(st.get("ledger"))
    gate = OwnerGate.from_json(st.get("access"))
    records = [IssuanceRecord.from_json(r) for r in st.get("issuances") or [] if isinstance(r, dict)]
    scheduler = EmissionScheduler(
        state=ScheduleState.from_json(st.get("schedule")),
        ledger=ledger,
        authorizer=gate,
        records=records,
    )
    token = st.get("token") if isinstance(st.get("token"), dict) else {}
    return _Runtime(token=dict(token), scheduler=scheduler, ledger=ledger, gate=gate)


def _dump(rt: _Runtime, st: Json) -> None:
    st["token"] = dict(rt.token)
    st["schedule"] = rt.scheduler.state.to_json()
    st["ledger"] = rt.ledger.to_json()
    st["access"] = rt.gate.to_json()
    st["issuances"] = [r.to_json() for r in rt.scheduler.records()]


class EmissionService:
    def __init__(
        self,
        *,
        store: StateStore,
        clock: Optional[Callable[[], float]] = None,
        emission_interval: int = EMISSION_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._clock = clock or time.time
        self._interval = int(emission_interval)
        self._lock = threading.Lock()

    @property
    def store(self) -> StateStore:
        return self._store

    def now(self) -> int:
        return int(self._clock())

    def is_deployed(self) -> bool:
        return bool(self._store.exists())

    # ------------------------------------------------------------------
    # Mutations (serialized)
    # ------------------------------------------------------------------

    def deploy(self, *, config: TokenConfig, owner: str, deployment_time: Optional[int] = None) -> Json:
        """Create the schedule at cycle 0, crediting the initial grant to `owner`."""
        try:
            validate_token_config(config)
        except ValueError as e:
            raise InvalidConfiguration("invalid_token_config", {"error": str(e)}) from e

        now = int(deployment_time) if deployment_time is not None else self.now()
        with self._lock:
            if self._store.exists():
                raise InvalidConfiguration("already_deployed", {})

            ledger = BalanceLedger(burnable=bool(config.burnable))
            gate = OwnerGate(owner=owner)
            scheduler = EmissionScheduler.initialize(
                max_supply=config.max_supply_units,
                initial_percent_bps=config.initial_percent_bps,
                deployment_time=now,
                foundation_account=config.foundation_address,
                initializer=owner,
                ledger=ledger,
                authorizer=gate,
                emission_interval=self._interval,
            )
            token = {"name": config.name, "symbol": config.symbol, "decimals": int(config.decimals)}
            st: Json = {}
            _dump(_Runtime(token=token, scheduler=scheduler, ledger=ledger, gate=gate), st)
            try:
                self._store.create(st)
            except FileExistsError as e:
                # another process deployed between exists() and create()
                raise InvalidConfiguration("already_deployed", {}) from e

        set_gauge("current_cycle", 0)
        log_event(
            log,
            "deployed",
            owner=gate.owner,
            foundation=scheduler.foundation_account,
            deployment_time=now,
            max_supply=scheduler.max_supply,
            initial_amount=scheduler.total_issued,
        )
        return st

    def issue(self, caller: Optional[str]) -> IssuanceResult:
        now = self.now()

        def _mut(st: Json) -> IssuanceResult:
            rt = _load(st)
            res = rt.scheduler.try_issue(caller, now)
            _dump(rt, st)
            return res

        with self._lock:
            try:
                res = self._store.update(_mut)
            except EmissionError as e:
                record_rejection(e.code)
                log_event(log, "emission_rejected", caller=str(caller), now=now, code=e.code, reason=e.reason)
                raise

        record_issuance(res)
        log_event(log, "emission_issued", cycle=res.cycle, to=res.to, amount=res.amount, time=res.time)
        return res

    def burn(self, account: str, amount: int) -> Json:
        def _mut(st: Json) -> Json:
            rt = _load(st)
            rt.ledger.burn(account, amount)
            _dump(rt, st)
            return {
                "account": account,
                "amount": int(amount),
                "balance": rt.ledger.balance_of(account),
                "circulating_supply": rt.ledger.circulating_supply(),
                "total_issued": rt.scheduler.total_issued,
            }

        with self._lock:
            try:
                out = self._store.update(_mut)
            except LedgerError as e:
                log_event(log, "burn_rejected", account=str(account), code=e.code, reason=e.reason)
                raise

        record_burn()
        log_event(log, "units_burned", account=account, amount=int(amount))
        return out

    def transfer_ownership(self, caller: Optional[str], new_owner: Optional[str]) -> OwnershipTransferred:
        return self._change_owner(lambda gate: gate.transfer_ownership(caller, new_owner))

    def renounce_ownership(self, caller: Optional[str]) -> OwnershipTransferred:
        return self._change_owner(lambda gate: gate.renounce_ownership(caller))

    def _change_owner(self, op: Callable[[OwnerGate], OwnershipTransferred]) -> OwnershipTransferred:
        def _mut(st: Json) -> OwnershipTransferred:
            rt = _load(st)
            ev = op(rt.gate)
            _dump(rt, st)
            return ev

        with self._lock:
            ev = self._store.update(_mut)

        log_event(log, "ownership_transferred", previous_owner=ev.previous_owner, new_owner=ev.new_owner)
        return ev

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _view(self) -> _Runtime:
        return _load(self._store.read())

    def info(self, now: Optional[int] = None) -> ScheduleInfo:
        t = self.now() if now is None else int(now)
        return self._view().scheduler.schedule_info(t)

    def token(self) -> Json:
        return self._view().token

    def schedule_state(self) -> ScheduleState:
        return self._view().scheduler.state

    def balance_of(self, account: str) -> int:
        return self._view().ledger.balance_of(account)

    def supply(self) -> Json:
        rt = self._view()
        return {
            "circulating_supply": rt.ledger.circulating_supply(),
            "total_credited": rt.ledger.total_credited,
            "total_debited": rt.ledger.total_debited,
            "total_issued": rt.scheduler.total_issued,
            "max_supply": rt.scheduler.max_supply,
            "remaining": rt.scheduler.remaining_schedulable_supply(),
        }

    def issuances(self) -> List[IssuanceRecord]:
        return list(self._view().scheduler.records())

    def owner(self) -> str:
        return self._view().gate.owner

    def ownership_events(self) -> List[OwnershipTransferred]:
        return list(self._view().gate.events)

    def refresh_metrics(self, now: Optional[int] = None) -> None:
        """Set the schedule gauges from one read of the persisted snapshot."""
        if not self.is_deployed():
            return
        t = self.now() if now is None else int(now)
        rt = self._view()
        observe_schedule(
            rt.scheduler.schedule_info(t),
            now=t,
            decimals=int(rt.token.get("decimals", 18)),
            exhausted=rt.scheduler.state.exhausted,
            records=rt.scheduler.records(),
        )


__all__ = ["EmissionService"]
