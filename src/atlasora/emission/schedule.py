# src/atlasora/emission/schedule.py
from __future__ import annotations

"""Pure schedule arithmetic.

All amounts are integer token units. Percentages are basis points and every
division truncates, so rounding dust never pushes cumulative issuance above
the cap.
"""

from typing import Any, Dict, List, Optional

from atlasora.emission.constants import (
    BPS_DENOMINATOR,
    FINAL_CYCLE,
    FINAL_EMISSION_BPS,
    FIRST_CYCLE,
    MAX_CYCLE,
    NULL_ACCOUNT,
    REGULAR_EMISSION_BPS,
    SCHEDULED_EMISSION_BPS,
)

Json = Dict[str, Any]


def bps_of(amount: int, bps: int) -> int:
    """Return `amount * bps / 10000`, truncated."""
    return (int(amount) * int(bps)) // BPS_DENOMINATOR


def cycle_bps(cycle: int) -> int:
    """Basis points emitted by a scheduled cycle (1..9). Anything else emits 0."""
    c = int(cycle)
    if FIRST_CYCLE <= c < FINAL_CYCLE:
        return REGULAR_EMISSION_BPS
    if c == FINAL_CYCLE:
        return FINAL_EMISSION_BPS
    return 0


def emission_amount(max_supply: int, cycle: int) -> int:
    return bps_of(max_supply, cycle_bps(cycle))


def initial_amount(max_supply: int, initial_percent_bps: int) -> int:
    return bps_of(max_supply, initial_percent_bps)


def percentages_consistent(initial_percent_bps: int) -> bool:
    """True when the initial grant plus cycles 1..9 add up to exactly 100%."""
    return int(initial_percent_bps) + SCHEDULED_EMISSION_BPS == BPS_DENOMINATOR


def target_cycle(elapsed: int, interval: int) -> int:
    """Number of full intervals contained in `elapsed`."""
    return int(elapsed) // int(interval)


def cycle_start_time(deployment_time: int, cycle: int, interval: int) -> int:
    return int(deployment_time) + int(cycle) * int(interval)


def is_null_account(account: Optional[str]) -> bool:
    if account is None:
        return True
    s = str(account).strip()
    return not s or s.lower() == NULL_ACCOUNT


def emission_plan(max_supply: int, initial_percent_bps: int) -> List[Json]:
    """Full schedule as a list of {cycle, bps, amount, cumulative} rows (cycle 0..9)."""
    init = initial_amount(max_supply, initial_percent_bps)
    rows: List[Json] = [{"cycle": 0, "bps": int(initial_percent_bps), "amount": init, "cumulative": init}]
    cumulative = init
    for c in range(FIRST_CYCLE, MAX_CYCLE + 1):
        amt = emission_amount(max_supply, c)
        cumulative += amt
        rows.append({"cycle": c, "bps": cycle_bps(c), "amount": amt, "cumulative": cumulative})
    return rows


__all__ = [
    "bps_of",
    "cycle_bps",
    "cycle_start_time",
    "emission_amount",
    "emission_plan",
    "initial_amount",
    "is_null_account",
    "percentages_consistent",
    "target_cycle",
]
