# src/atlasora/emission/scheduler.py
from __future__ import annotations

"""Emission schedule state machine.

States are cycles 0..9. Cycle 0 is entered at construction together with the
initial grant; each successful `try_issue` moves exactly one cycle forward and
cycle 9 is terminal.

The scheduler never reads a clock: every time-sensitive call receives `now`
(unix seconds) and uses that single value throughout. Balances live in the
injected ledger, the authority check in the injected authorizer. The
scheduler's own `total_issued` is the only figure used for cap enforcement;
the ledger's circulating supply is reported but never trusted for it, since
burning makes the two diverge.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Protocol, Tuple

from atlasora.emission.constants import EMISSION_INTERVAL_SECONDS, MAX_CYCLE
from atlasora.emission.errors import (
    InvalidConfiguration,
    NotYetDue,
    ScheduleExhausted,
    SupplyCapExceeded,
    Unauthorized,
)
from atlasora.emission.schedule import (
    cycle_start_time,
    emission_amount,
    initial_amount,
    is_null_account,
    percentages_consistent,
    target_cycle,
)

Json = Dict[str, Any]


class Ledger(Protocol):
    def credit(self, account: str, amount: int) -> None: ...

    def circulating_supply(self) -> int: ...


class Authorizer(Protocol):
    def is_authorized(self, caller: Optional[str]) -> bool: ...


@dataclass(frozen=True, slots=True)
class ScheduleState:
    deployment_time: int
    current_cycle: int
    total_issued: int
    max_supply: int
    foundation_account: str
    initial_percent_bps: int
    emission_interval: int = EMISSION_INTERVAL_SECONDS

    @property
    def exhausted(self) -> bool:
        return self.current_cycle >= MAX_CYCLE

    def to_json(self) -> Json:
        return {
            "deployment_time": int(self.deployment_time),
            "current_cycle": int(self.current_cycle),
            "total_issued": int(self.total_issued),
            "max_supply": int(self.max_supply),
            "foundation_account": str(self.foundation_account),
            "initial_percent_bps": int(self.initial_percent_bps),
            "emission_interval": int(self.emission_interval),
        }

    @classmethod
    def from_json(cls, obj: Json) -> "ScheduleState":
        if not isinstance(obj, dict):
            raise InvalidConfiguration("schedule_state_not_object", {"type": str(type(obj))})
        try:
            st = cls(
                deployment_time=int(obj["deployment_time"]),
                current_cycle=int(obj["current_cycle"]),
                total_issued=int(obj["total_issued"]),
                max_supply=int(obj["max_supply"]),
                foundation_account=str(obj["foundation_account"]),
                initial_percent_bps=int(obj["initial_percent_bps"]),
                emission_interval=int(obj.get("emission_interval", EMISSION_INTERVAL_SECONDS)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfiguration("schedule_state_malformed", {"error": str(e)}) from e
        validate_state(st)
        return st


@dataclass(frozen=True, slots=True)
class IssuanceRecord:
    cycle: int
    to: str
    amount: int
    time: int

    def to_json(self) -> Json:
        return {"cycle": int(self.cycle), "to": self.to, "amount": int(self.amount), "time": int(self.time)}

    @classmethod
    def from_json(cls, obj: Json) -> "IssuanceRecord":
        return cls(cycle=int(obj["cycle"]), to=str(obj["to"]), amount=int(obj["amount"]), time=int(obj["time"]))


@dataclass(frozen=True, slots=True)
class IssuanceResult:
    cycle: int
    amount: int
    to: str
    time: int

    def to_json(self) -> Json:
        return {"cycle": int(self.cycle), "amount": int(self.amount), "to": self.to, "time": int(self.time)}


@dataclass(frozen=True, slots=True)
class ScheduleInfo:
    cycle: int
    total_issued: int
    circulating_supply: int
    remaining: int
    next_time: Optional[int]
    next_amount: Optional[int]
    due: bool

    def to_json(self) -> Json:
        return {
            "cycle": int(self.cycle),
            "total_issued": int(self.total_issued),
            "circulating_supply": int(self.circulating_supply),
            "remaining": int(self.remaining),
            "next_time": self.next_time,
            "next_amount": self.next_amount,
            "due": bool(self.due),
        }


def validate_state(st: ScheduleState) -> None:
    """Reject a state that breaks the schedule invariants."""
    if is_null_account(st.foundation_account):
        raise InvalidConfiguration("invalid_foundation_account", {"foundation_account": repr(st.foundation_account)})
    if st.max_supply <= 0:
        raise InvalidConfiguration("max_supply_must_be_positive", {"max_supply": str(st.max_supply)})
    if st.emission_interval <= 0:
        raise InvalidConfiguration("emission_interval_must_be_positive", {"emission_interval": st.emission_interval})
    if st.deployment_time < 0:
        raise InvalidConfiguration("deployment_time_negative", {"deployment_time": st.deployment_time})
    if not 0 <= st.current_cycle <= MAX_CYCLE:
        raise InvalidConfiguration("cycle_out_of_range", {"current_cycle": st.current_cycle})
    if not 0 <= st.total_issued <= st.max_supply:
        raise InvalidConfiguration(
            "total_issued_out_of_range",
            {"total_issued": str(st.total_issued), "max_supply": str(st.max_supply)},
        )


class EmissionScheduler:
    """Owns the schedule state and the decision whether/how much may be issued."""

    def __init__(
        self,
        *,
        state: ScheduleState,
        ledger: Ledger,
        authorizer: Authorizer,
        records: Optional[List[IssuanceRecord]] = None,
    ) -> None:
        validate_state(state)
        self._state = state
        self._ledger = ledger
        self._authorizer = authorizer
        self._records: List[IssuanceRecord] = list(records or [])

    @classmethod
    def initialize(
        cls,
        *,
        max_supply: int,
        initial_percent_bps: int,
        deployment_time: int,
        foundation_account: str,
        initializer: str,
        ledger: Ledger,
        authorizer: Authorizer,
        emission_interval: int = EMISSION_INTERVAL_SECONDS,
    ) -> "EmissionScheduler":
        """Create the schedule at cycle 0 and credit the initial grant to `initializer`."""
        if is_null_account(foundation_account):
            raise InvalidConfiguration("invalid_foundation_address", {"foundation_account": repr(foundation_account)})
        if is_null_account(initializer):
            raise InvalidConfiguration("invalid_initializer", {"initializer": repr(initializer)})
        if not percentages_consistent(initial_percent_bps):
            raise InvalidConfiguration(
                "percentages_do_not_sum_to_100",
                {"initial_percent_bps": int(initial_percent_bps)},
            )

        init_amt = initial_amount(max_supply, initial_percent_bps)
        state = ScheduleState(
            deployment_time=int(deployment_time),
            current_cycle=0,
            total_issued=init_amt,
            max_supply=int(max_supply),
            foundation_account=str(foundation_account).strip(),
            initial_percent_bps=int(initial_percent_bps),
            emission_interval=int(emission_interval),
        )
        validate_state(state)

        ledger.credit(str(initializer).strip(), init_amt)
        record = IssuanceRecord(cycle=0, to=str(initializer).strip(), amount=init_amt, time=int(deployment_time))
        return cls(state=state, ledger=ledger, authorizer=authorizer, records=[record])

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def try_issue(self, caller: Optional[str], now: int) -> IssuanceResult:
        """Advance one cycle and credit the foundation, or raise without side effects."""
        if not self._authorizer.is_authorized(caller):
            raise Unauthorized("caller_not_authorized", {"caller": str(caller)})

        prev = self._state
        if prev.exhausted:
            raise ScheduleExhausted(details={"current_cycle": prev.current_cycle})

        now_i = int(now)
        if now_i < prev.deployment_time:
            raise InvalidConfiguration(
                "now_before_deployment",
                {"now": now_i, "deployment_time": prev.deployment_time},
            )

        target = target_cycle(now_i - prev.deployment_time, prev.emission_interval)
        if target <= prev.current_cycle:
            raise NotYetDue(
                details={
                    "current_cycle": prev.current_cycle,
                    "next_time": cycle_start_time(prev.deployment_time, prev.current_cycle + 1, prev.emission_interval),
                    "now": now_i,
                }
            )

        cycle = prev.current_cycle + 1
        amount = emission_amount(prev.max_supply, cycle)
        if prev.total_issued + amount > prev.max_supply:
            raise SupplyCapExceeded(
                details={
                    "cycle": cycle,
                    "amount": str(amount),
                    "total_issued": str(prev.total_issued),
                    "max_supply": str(prev.max_supply),
                }
            )

        self._state = replace(prev, current_cycle=cycle, total_issued=prev.total_issued + amount)
        try:
            self._ledger.credit(prev.foundation_account, amount)
        except Exception:
            self._state = prev
            raise

        self._records.append(IssuanceRecord(cycle=cycle, to=prev.foundation_account, amount=amount, time=now_i))
        return IssuanceResult(cycle=cycle, amount=amount, to=prev.foundation_account, time=now_i)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> ScheduleState:
        return self._state

    @property
    def current_cycle(self) -> int:
        return self._state.current_cycle

    @property
    def total_issued(self) -> int:
        return self._state.total_issued

    @property
    def max_supply(self) -> int:
        return self._state.max_supply

    @property
    def deployment_time(self) -> int:
        return self._state.deployment_time

    @property
    def foundation_account(self) -> str:
        return self._state.foundation_account

    def records(self) -> Tuple[IssuanceRecord, ...]:
        return tuple(self._records)

    def next_issuance_time(self) -> Optional[int]:
        st = self._state
        if st.exhausted:
            return None
        return cycle_start_time(st.deployment_time, st.current_cycle + 1, st.emission_interval)

    def next_issuance_amount(self) -> Optional[int]:
        st = self._state
        if st.exhausted:
            return None
        return emission_amount(st.max_supply, st.current_cycle + 1)

    def remaining_schedulable_supply(self) -> int:
        return self._state.max_supply - self._state.total_issued

    def is_issuance_due(self, now: int) -> bool:
        st = self._state
        if st.exhausted:
            return False
        now_i = int(now)
        if now_i < st.deployment_time:
            return False
        return target_cycle(now_i - st.deployment_time, st.emission_interval) > st.current_cycle

    def schedule_info(self, now: int) -> ScheduleInfo:
        return ScheduleInfo(
            cycle=self._state.current_cycle,
            total_issued=self._state.total_issued,
            circulating_supply=int(self._ledger.circulating_supply()),
            remaining=self.remaining_schedulable_supply(),
            next_time=self.next_issuance_time(),
            next_amount=self.next_issuance_amount(),
            due=self.is_issuance_due(now),
        )


__all__ = [
    "Authorizer",
    "EmissionScheduler",
    "IssuanceRecord",
    "IssuanceResult",
    "Ledger",
    "ScheduleInfo",
    "ScheduleState",
    "validate_state",
]
