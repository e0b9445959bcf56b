from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

from atlasora.config.token_config import default_token_config
from atlasora.runtime.service import EmissionService
from atlasora.runtime.state_store import open_state_store

OWNER = "0x" + "a1" * 20
OTHER = "0x" + "b2" * 20
INTERVAL = 180
UNIT = 10**18

OWNER_HDRS = {"X-AtlasOra-Account": OWNER, "X-AtlasOra-Key": "owner-key"}
OTHER_HDRS = {"X-AtlasOra-Account": OTHER, "X-AtlasOra-Key": "other-key"}


class _Clock:
    def __init__(self, t: int = 1_000) -> None:
        self.t = t

    def __call__(self) -> float:
        return float(self.t)


def _mk_client(monkeypatch: pytest.MonkeyPatch, *, deployed: bool = True, log_requests: bool = False):
    monkeypatch.setenv("ATLASORA_MODE", "dev")
    monkeypatch.setenv("ATLASORA_API_KEYS", f"{OWNER}=owner-key,{OTHER}=other-key")
    monkeypatch.setenv("ATLASORA_LOG_REQUESTS", "1" if log_requests else "0")

    from atlasora.api.app import create_app

    clock = _Clock()
    svc = EmissionService(store=open_state_store(":memory:"), clock=clock, emission_interval=INTERVAL)
    if deployed:
        svc.deploy(config=default_token_config(), owner=OWNER)

    app = create_app(boot_runtime=False)
    app.state.service = svc
    return TestClient(app), clock


def test_create_app_boot_runtime_true_attaches_service(monkeypatch: pytest.MonkeyPatch) -> None:
    from atlasora.api import app as api_app

    svc = EmissionService(store=open_state_store(":memory:"), clock=_Clock(), emission_interval=INTERVAL)
    monkeypatch.setattr(api_app, "build_service", lambda: svc)

    app = api_app.create_app(boot_runtime=True)
    assert app.state.service is svc

    with TestClient(app) as c:
        r = c.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["deployed"] is False


def test_not_deployed_returns_503(monkeypatch: pytest.MonkeyPatch) -> None:
    c, _ = _mk_client(monkeypatch, deployed=False)

    r = c.get("/v1/emission/info")
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "not_deployed"


def test_info_and_next(monkeypatch: pytest.MonkeyPatch) -> None:
    c, _ = _mk_client(monkeypatch)

    j = c.get("/v1/emission/info").json()
    assert j["ok"] is True
    assert j["cycle"] == 0
    assert j["token"]["symbol"] == "AORA"
    assert j["total_issued"] == str(30_000_000 * UNIT)
    assert j["max_supply"] == str(200_000_000 * UNIT)
    assert j["next_time"] == 1_000 + INTERVAL
    assert j["next_amount"] == str(20_000_000 * UNIT)
    assert j["due"] is False

    j = c.get("/v1/emission/next", params={"now": 1_000 + INTERVAL}).json()
    assert j["due"] is True
    assert j["exhausted"] is False


def test_issue_requires_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch)
    clock.t = 1_000 + INTERVAL

    r = c.post("/v1/emission/issue")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "credentials_missing"

    r = c.post("/v1/emission/issue", headers={"X-AtlasOra-Account": OWNER, "X-AtlasOra-Key": "wrong"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "credentials_invalid"


def test_issue_status_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch)

    r = c.post("/v1/emission/issue", headers=OWNER_HDRS)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "not_yet_due"

    clock.t = 1_000 + INTERVAL
    r = c.post("/v1/emission/issue", headers=OTHER_HDRS)
    assert r.status_code == 403
    assert r.json()["ok"] is False
    assert r.json()["error"]["code"] == "unauthorized"

    r = c.post("/v1/emission/issue", headers=OWNER_HDRS)
    assert r.status_code == 200
    j = r.json()
    assert j["cycle"] == 1
    assert j["amount"] == str(20_000_000 * UNIT)
    assert j["to"] == default_token_config().foundation_address

    for cyc in range(2, 10):
        clock.t = 1_000 + cyc * INTERVAL
        assert c.post("/v1/emission/issue", headers=OWNER_HDRS).status_code == 200

    clock.t = 1_000 + 20 * INTERVAL
    r = c.post("/v1/emission/issue", headers=OWNER_HDRS)
    assert r.status_code == 410
    assert r.json()["error"]["code"] == "schedule_exhausted"

    items = c.get("/v1/emission/issuances").json()["items"]
    assert [i["cycle"] for i in items] == list(range(10))


def test_balance_supply_and_burn(monkeypatch: pytest.MonkeyPatch) -> None:
    c, _ = _mk_client(monkeypatch)

    r = c.get(f"/v1/accounts/{OWNER}/balance")
    assert r.json()["balance"] == str(30_000_000 * UNIT)

    r = c.post("/v1/ledger/burn", json={"amount": 1000}, headers=OWNER_HDRS)
    assert r.status_code == 200
    assert r.json()["balance"] == str(30_000_000 * UNIT - 1000)
    assert r.json()["total_issued"] == str(30_000_000 * UNIT)

    sup = c.get("/v1/ledger/supply").json()
    assert sup["circulating_supply"] == str(30_000_000 * UNIT - 1000)
    assert sup["remaining"] == str(170_000_000 * UNIT)

    r = c.post("/v1/ledger/burn", json={"amount": 1}, headers=OTHER_HDRS)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "insufficient_balance"

    r = c.post("/v1/ledger/burn", json={"amount": -1}, headers=OWNER_HDRS)
    assert r.status_code == 422


def test_ownership_routes(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch)

    r = c.post("/v1/access/transfer-ownership", json={"new_owner": OTHER}, headers=OTHER_HDRS)
    assert r.status_code == 403

    r = c.post("/v1/access/transfer-ownership", json={"new_owner": OTHER}, headers=OWNER_HDRS)
    assert r.status_code == 200
    assert r.json()["new_owner"] == OTHER
    assert c.get("/v1/access/owner").json()["owner"] == OTHER

    r = c.post("/v1/access/renounce", headers=OTHER_HDRS)
    assert r.status_code == 200

    clock.t = 1_000 + INTERVAL
    r = c.post("/v1/emission/issue", headers=OTHER_HDRS)
    assert r.status_code == 403
    assert len(c.get("/v1/access/owner").json()["events"]) == 3


def test_metrics_endpoint_gated_by_env(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch)
    assert c.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("ATLASORA_METRICS_ENABLED", "1")
    clock.t = 1_000 + INTERVAL
    c.post("/v1/emission/issue", headers=OWNER_HDRS)

    r = c.get("/v1/metrics")
    assert r.status_code == 200
    assert "# TYPE atlasora_issuance_ok counter" in r.text
    assert "atlasora_issuance_ok 1" in r.text
    assert "atlasora_current_cycle 1" in r.text


def test_metrics_report_schedule_in_whole_tokens(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch)
    monkeypatch.setenv("ATLASORA_METRICS_ENABLED", "1")
    clock.t = 1_000 + INTERVAL
    c.post("/v1/emission/issue", headers=OWNER_HDRS)

    lines = set(c.get("/v1/metrics").text.splitlines())
    assert "atlasora_total_issued_tokens 50000000" in lines
    assert "atlasora_remaining_tokens 150000000" in lines
    assert "atlasora_next_issuance_time 1360" in lines
    assert "atlasora_seconds_until_next_issuance 180" in lines
    assert "atlasora_next_issuance_tokens 20000000" in lines
    assert "atlasora_issuance_due 0" in lines
    assert "atlasora_schedule_exhausted 0" in lines
    assert 'atlasora_cycle_issued_tokens{cycle="0"} 30000000' in lines
    assert 'atlasora_cycle_issued_tokens{cycle="1"} 20000000' in lines

    # the scrape time is explicit, like the other read endpoints
    lines = set(c.get("/v1/metrics", params={"now": 1_000 + 2 * INTERVAL}).text.splitlines())
    assert "atlasora_issuance_due 1" in lines
    assert "atlasora_seconds_until_next_issuance 0" in lines


def test_metrics_after_last_cycle_drop_next_issuance(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch)
    monkeypatch.setenv("ATLASORA_METRICS_ENABLED", "1")
    for cycle in range(1, 10):
        clock.t = 1_000 + cycle * INTERVAL
        assert c.post("/v1/emission/issue", headers=OWNER_HDRS).status_code == 200

    text = c.get("/v1/metrics").text
    assert "atlasora_schedule_exhausted 1" in text.splitlines()
    assert "atlasora_remaining_tokens 0" in text.splitlines()
    assert "atlasora_next_issuance_time" not in text
    assert "atlasora_seconds_until_next_issuance" not in text


def test_metrics_before_deploy_export_counters_only(monkeypatch: pytest.MonkeyPatch) -> None:
    c, _ = _mk_client(monkeypatch, deployed=False)
    monkeypatch.setenv("ATLASORA_METRICS_ENABLED", "1")
    r = c.get("/v1/metrics")
    assert r.status_code == 200
    assert "atlasora_uptime_ms" in r.text
    assert "atlasora_total_issued_tokens" not in r.text


def test_request_size_limit_returns_413(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ATLASORA_MAX_REQUEST_BYTES", "64")
    monkeypatch.delenv("ATLASORA_SIZE_LIMIT_DISABLE", raising=False)
    c, _ = _mk_client(monkeypatch)

    r = c.post("/v1/access/transfer-ownership", json={"new_owner": "x" * 500}, headers=OWNER_HDRS)
    assert r.status_code == 413
    j = r.json()
    assert j["ok"] is False
    assert j["error"]["code"] == "request_too_large"


class _Collect(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.INFO)
        self.lines: list = []

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(json.loads(record.getMessage()))


def test_request_log_carries_caller_cycle_and_error_code(monkeypatch: pytest.MonkeyPatch) -> None:
    c, clock = _mk_client(monkeypatch, log_requests=True)
    logger = logging.getLogger("atlasora.http")
    sink = _Collect()
    logger.addHandler(sink)
    old_level = logger.level
    logger.setLevel(logging.INFO)
    try:
        c.post("/v1/emission/issue", headers=OWNER_HDRS)
        clock.t = 1_000 + INTERVAL
        c.post("/v1/emission/issue", headers=OWNER_HDRS)
        c.post("/v1/emission/issue", headers={"X-AtlasOra-Account": OWNER, "X-AtlasOra-Key": "wrong"})
    finally:
        logger.removeHandler(sink)
        logger.setLevel(old_level)

    early, ok, bad_key = [e for e in sink.lines if e["event"] == "http_request"]

    assert (early["status"], early["error_code"], early["caller"]) == (409, "not_yet_due", OWNER)
    assert "cycle" not in early

    assert (ok["status"], ok["error_code"], ok["cycle"]) == (200, None, 1)
    assert ok["caller"] == OWNER

    assert (bad_key["status"], bad_key["error_code"], bad_key["caller"]) == (401, "credentials_invalid", "")
