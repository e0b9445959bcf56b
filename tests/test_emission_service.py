from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from atlasora.config.token_config import TokenConfig, default_token_config
from atlasora.emission.errors import InvalidConfiguration, NotYetDue, ScheduleExhausted, Unauthorized
from atlasora.ledger.balances import LedgerError
from atlasora.runtime import metrics
from atlasora.runtime.service import EmissionService
from atlasora.runtime.service_boot import ServiceBootConfig, build_service
from atlasora.runtime.state_store import open_state_store

OWNER = "0x" + "a1" * 20
OTHER = "0x" + "b2" * 20
INTERVAL = 180
UNIT = 10**18


class _Clock:
    def __init__(self, t: int = 1_000) -> None:
        self.t = t

    def __call__(self) -> float:
        return float(self.t)


def _mk(db_path: str = ":memory:", t0: int = 1_000):
    clock = _Clock(t0)
    svc = EmissionService(store=open_state_store(db_path), clock=clock, emission_interval=INTERVAL)
    svc.deploy(config=default_token_config(), owner=OWNER)
    return svc, clock


def test_deploy_snapshot_and_initial_grant() -> None:
    svc, _ = _mk()
    cfg = default_token_config()

    assert svc.is_deployed()
    assert svc.balance_of(OWNER) == 30_000_000 * UNIT
    assert svc.token() == {"name": "AtlasOra", "symbol": "AORA", "decimals": 18}
    st = svc.schedule_state()
    assert st.current_cycle == 0
    assert st.deployment_time == 1_000
    assert st.foundation_account == cfg.foundation_address
    assert st.emission_interval == INTERVAL


def test_deploy_twice_is_rejected() -> None:
    svc, _ = _mk()
    with pytest.raises(InvalidConfiguration) as ei:
        svc.deploy(config=default_token_config(), owner=OWNER)
    assert ei.value.reason == "already_deployed"


def test_deploy_rejects_invalid_token_config() -> None:
    svc = EmissionService(store=open_state_store(":memory:"), clock=_Clock(), emission_interval=INTERVAL)
    bad = TokenConfig(
        name="AtlasOra",
        symbol="AORA",
        decimals=18,
        initial_supply=31_000_000,
        max_supply=200_000_000,
        initial_percent_bps=1500,
        burnable=True,
        foundation_address="0x" + "12" * 20,
    )
    with pytest.raises(InvalidConfiguration) as ei:
        svc.deploy(config=bad, owner=OWNER)
    assert ei.value.reason == "invalid_token_config"
    assert svc.is_deployed() is False


def test_issue_follows_clock_one_cycle_at_a_time() -> None:
    svc, clock = _mk()
    foundation = default_token_config().foundation_address

    with pytest.raises(NotYetDue):
        svc.issue(OWNER)

    clock.t = 1_000 + 3 * INTERVAL
    assert svc.issue(OWNER).cycle == 1
    assert svc.issue(OWNER).cycle == 2
    assert svc.issue(OWNER).cycle == 3
    with pytest.raises(NotYetDue):
        svc.issue(OWNER)

    assert svc.balance_of(foundation) == 60_000_000 * UNIT
    assert [r.cycle for r in svc.issuances()] == [0, 1, 2, 3]

    info = svc.info()
    assert info.cycle == 3
    assert info.due is False
    assert info.next_time == 1_000 + 4 * INTERVAL
    assert info.next_amount == 20_000_000 * UNIT


def test_rejections_persist_nothing_and_count_metrics() -> None:
    svc, clock = _mk()
    clock.t = 1_000 + INTERVAL
    before = svc.schedule_state()

    with pytest.raises(Unauthorized):
        svc.issue(OTHER)

    assert svc.schedule_state() == before
    assert metrics.snapshot()["counters"].get("issuance_rejected_unauthorized") == 1

    svc.issue(OWNER)
    snap = metrics.snapshot()
    assert snap["counters"].get("issuance_ok") == 1
    assert snap["gauges"].get("current_cycle") == 1


def test_full_run_then_burn_keeps_cumulative(tmp_path: Path) -> None:
    svc, clock = _mk(db_path=str(tmp_path / "atlasora.db"))
    foundation = default_token_config().foundation_address

    for c in range(1, 10):
        clock.t = 1_000 + c * INTERVAL
        svc.issue(OWNER)

    clock.t = 1_000 + 10 * INTERVAL
    with pytest.raises(ScheduleExhausted):
        svc.issue(OWNER)

    out = svc.burn(foundation, 50 * UNIT)
    assert out["circulating_supply"] == (200_000_000 - 50) * UNIT
    assert out["total_issued"] == 200_000_000 * UNIT

    sup = svc.supply()
    assert sup["remaining"] == 0
    assert sup["total_debited"] == 50 * UNIT
    assert svc.balance_of(OWNER) == 30_000_000 * UNIT
    assert svc.balance_of(foundation) == (170_000_000 - 50) * UNIT

    assert [r["cycle"] for r in svc.store.issuance_log()] == list(range(10))


def test_burn_beyond_balance_is_rejected() -> None:
    svc, _ = _mk()
    with pytest.raises(LedgerError) as ei:
        svc.burn(OTHER, 1)
    assert ei.value.code == "insufficient_balance"
    assert svc.supply()["circulating_supply"] == 30_000_000 * UNIT


def test_ownership_transfer_and_renounce() -> None:
    svc, clock = _mk()
    clock.t = 1_000 + INTERVAL

    svc.transfer_ownership(OWNER, OTHER)
    assert svc.owner() == OTHER
    with pytest.raises(Unauthorized):
        svc.issue(OWNER)
    assert svc.issue(OTHER).cycle == 1

    svc.renounce_ownership(OTHER)
    clock.t = 1_000 + 2 * INTERVAL
    with pytest.raises(Unauthorized):
        svc.issue(OTHER)
    assert len(svc.ownership_events()) == 3


def test_state_survives_reopen(tmp_path: Path) -> None:
    db = str(tmp_path / "atlasora.db")
    svc, clock = _mk(db_path=db)
    clock.t = 1_000 + INTERVAL
    svc.issue(OWNER)

    again = EmissionService(store=open_state_store(db), clock=clock, emission_interval=INTERVAL)
    assert again.schedule_state().current_cycle == 1
    assert again.owner() == OWNER


def test_emission_events_are_logged_as_json(caplog: pytest.LogCaptureFixture) -> None:
    svc, clock = _mk()
    clock.t = 1_000 + INTERVAL

    with caplog.at_level(logging.INFO, logger="atlasora.emission"):
        svc.issue(OWNER)

    events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "atlasora.emission"]
    issued = [e for e in events if e["event"] == "emission_issued"]
    assert issued and issued[0]["cycle"] == 1
    # base-unit amounts exceed 2**53 and are logged as decimal strings
    assert issued[0]["amount"] == str(20_000_000 * UNIT)
    assert issued[0]["time"] == 1_000 + INTERVAL


def test_build_service_auto_deploy(tmp_path: Path) -> None:
    cfg = ServiceBootConfig(
        db_path=str(tmp_path / "boot.db"),
        owner_account=OWNER,
        emission_interval_s=INTERVAL,
        auto_deploy=True,
    )
    svc = build_service(cfg)
    assert svc.is_deployed()
    assert svc.owner() == OWNER

    # second boot finds the existing snapshot and leaves it alone
    assert build_service(cfg).schedule_state() == svc.schedule_state()


def test_build_service_auto_deploy_requires_owner(tmp_path: Path) -> None:
    cfg = ServiceBootConfig(
        db_path=str(tmp_path / "boot.db"),
        owner_account="",
        emission_interval_s=INTERVAL,
        auto_deploy=True,
    )
    with pytest.raises(ValueError):
        build_service(cfg)


class _StaleExistsStore:
    """Wraps a store whose exists() answers from before another process deployed."""

    def __init__(self, inner) -> None:
        self._inner = inner

    def exists(self) -> bool:
        return False

    def __getattr__(self, name):
        return getattr(self._inner, name)


def test_concurrent_deploy_on_same_file_keeps_first_schedule(tmp_path: Path) -> None:
    db = str(tmp_path / "atlasora.db")
    first, clock = _mk(db_path=db)
    clock.t = 1_000 + INTERVAL
    first.issue(OWNER)

    late = EmissionService(store=_StaleExistsStore(open_state_store(db)), clock=clock, emission_interval=INTERVAL)
    with pytest.raises(InvalidConfiguration) as ei:
        late.deploy(config=default_token_config(), owner=OTHER)
    assert ei.value.reason == "already_deployed"

    st = first.schedule_state()
    assert st.current_cycle == 1
    assert first.owner() == OWNER


def test_refresh_metrics_reads_schedule_from_store(tmp_path: Path) -> None:
    db = str(tmp_path / "atlasora.db")
    writer, clock = _mk(db_path=db)
    clock.t = 1_000 + 2 * INTERVAL
    writer.issue(OWNER)
    writer.issue(OWNER)

    metrics.reset()
    reader = EmissionService(store=open_state_store(db), clock=clock, emission_interval=INTERVAL)
    reader.refresh_metrics()

    snap = metrics.snapshot()
    assert snap["gauges"]["current_cycle"] == 2
    assert snap["gauges"]["total_issued_tokens"] == 70_000_000
    assert snap["gauges"]["next_issuance_time"] == 1_000 + 3 * INTERVAL
    assert snap["cycle_tokens"] == {0: 30_000_000, 1: 20_000_000, 2: 20_000_000}
    assert snap["counters"] == {}
