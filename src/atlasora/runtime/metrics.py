# src/atlasora/runtime/metrics.py
from __future__ import annotations

"""In-process emission metrics.

Counters track operations as they happen (issuances, rejections per error
code, burns). Schedule gauges are refreshed from a persisted snapshot by
`observe_schedule`, so a scrape reflects the store even when another process
performed the last issuance.

Token amounts are exported in whole tokens: base units (18 decimals) are far
beyond what a Prometheus float sample holds exactly.
"""

import os
import threading
import time
from typing import Dict, Iterable, Optional

from atlasora.emission.scheduler import IssuanceRecord, IssuanceResult, ScheduleInfo


_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_cycle_tokens: Dict[int, int] = {}
_started_ms = int(time.time() * 1000)

_SCHEDULE_GAUGES = (
    "current_cycle",
    "total_issued_tokens",
    "circulating_supply_tokens",
    "remaining_tokens",
    "issuance_due",
    "schedule_exhausted",
    "next_issuance_time",
    "next_issuance_tokens",
    "seconds_until_next_issuance",
)


def metrics_enabled() -> bool:
    v = (os.environ.get("ATLASORA_METRICS_ENABLED") or "").strip().lower()
    if not v:
        return False
    return v in {"1", "true", "yes", "y", "on"}


def inc_counter(name: str, value: int = 1) -> None:
    n = str(name or "").strip()
    if not n:
        return
    with _lock:
        _counters[n] = int(_counters.get(n, 0)) + int(value)


def set_gauge(name: str, value: int) -> None:
    n = str(name or "").strip()
    if not n:
        return
    with _lock:
        _gauges[n] = int(value)


def record_issuance(res: IssuanceResult) -> None:
    inc_counter("issuance_ok")
    set_gauge("current_cycle", res.cycle)
    set_gauge("last_issuance_time", res.time)


def record_rejection(code: str) -> None:
    """One counter per error code: issuance_rejected_not_yet_due, ..._unauthorized, ..."""
    inc_counter(f"issuance_rejected_{code}")


def record_burn() -> None:
    inc_counter("burn_ok")


def _tokens(units: int, unit: int) -> int:
    return int(units) // unit


def observe_schedule(
    info: ScheduleInfo,
    *,
    now: int,
    decimals: int,
    exhausted: bool,
    records: Iterable[IssuanceRecord] = (),
) -> None:
    """Replace the schedule gauges with values derived from `info` at time `now`.

    The next_* gauges are dropped once the schedule is exhausted; there is no
    next issuance to report.
    """
    unit = 10 ** int(decimals)
    g: Dict[str, int] = {
        "current_cycle": int(info.cycle),
        "total_issued_tokens": _tokens(info.total_issued, unit),
        "circulating_supply_tokens": _tokens(info.circulating_supply, unit),
        "remaining_tokens": _tokens(info.remaining, unit),
        "issuance_due": 1 if info.due else 0,
        "schedule_exhausted": 1 if exhausted else 0,
    }
    if info.next_time is not None:
        g["next_issuance_time"] = int(info.next_time)
        g["seconds_until_next_issuance"] = max(0, int(info.next_time) - int(now))
    if info.next_amount is not None:
        g["next_issuance_tokens"] = _tokens(info.next_amount, unit)

    per_cycle = {int(r.cycle): _tokens(r.amount, unit) for r in records}

    with _lock:
        for k in _SCHEDULE_GAUGES:
            _gauges.pop(k, None)
        _gauges.update(g)
        _cycle_tokens.clear()
        _cycle_tokens.update(per_cycle)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()
        _cycle_tokens.clear()


def snapshot() -> dict:
    with _lock:
        return {
            "ts_ms": int(time.time() * 1000),
            "started_ms": int(_started_ms),
            "uptime_ms": int(time.time() * 1000) - int(_started_ms),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "cycle_tokens": dict(_cycle_tokens),
        }


def format_prometheus(prefix: str = "atlasora_", snap: Optional[dict] = None) -> str:
    """Prometheus exposition text with TYPE lines; integer samples only."""
    pre = str(prefix or "").strip() or "atlasora_"
    s = snap if snap is not None else snapshot()
    lines: list[str] = []

    lines.append(f"# TYPE {pre}uptime_ms gauge")
    lines.append(f"{pre}uptime_ms {int(s.get('uptime_ms') or 0)}")

    counters = s.get("counters") or {}
    for name in sorted(counters):
        lines.append(f"# TYPE {pre}{name} counter")
        lines.append(f"{pre}{name} {int(counters[name])}")

    gauges = s.get("gauges") or {}
    for name in sorted(gauges):
        lines.append(f"# TYPE {pre}{name} gauge")
        lines.append(f"{pre}{name} {int(gauges[name])}")

    cycles = s.get("cycle_tokens") or {}
    if cycles:
        lines.append(f"# TYPE {pre}cycle_issued_tokens gauge")
        for c in sorted(cycles):
            lines.append(f'{pre}cycle_issued_tokens{{cycle="{int(c)}"}} {int(cycles[c])}')

    return "\n".join(lines) + "\n"
