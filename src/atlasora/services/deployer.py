from __future__ import annotations

import argparse
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from atlasora.api.structured_logging import configure_structured_logging
from atlasora.config.token_config import TokenConfig, load_token_config
from atlasora.emission.constants import EMISSION_INTERVAL_SECONDS
from atlasora.emission.errors import EmissionError
from atlasora.emission.schedule import emission_plan
from atlasora.env import load_dotenv_if_present
from atlasora.runtime.service import EmissionService
from atlasora.runtime.state_store import open_state_store

Json = Dict[str, Any]

log = logging.getLogger("atlasora.deployer")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _plan_json(cfg: TokenConfig) -> List[Json]:
    # base-unit amounts can exceed 2**53; keep them as strings in the record
    return [
        {"cycle": r["cycle"], "bps": r["bps"], "amount": str(r["amount"]), "cumulative": str(r["cumulative"])}
        for r in emission_plan(cfg.max_supply_units, cfg.initial_percent_bps)
    ]


def deploy(
    *,
    cfg: TokenConfig,
    db_path: str,
    owner: str,
    network: str,
    deployments_dir: str,
    emission_interval: int = EMISSION_INTERVAL_SECONDS,
    deployment_time: Optional[int] = None,
) -> Json:
    """Initialize the store at cycle 0 and write the deployment record.

    Two files land in `deployments_dir`:
      <network>-<ts_ms>.json   (immutable history)
      <network>-latest.json    (overwritten on every deploy)
    """
    svc = EmissionService(store=open_state_store(db_path), emission_interval=emission_interval)
    st = svc.deploy(config=cfg, owner=owner, deployment_time=deployment_time)
    sched = st["schedule"]

    record: Json = {
        "network": network,
        "db_path": str(db_path),
        "owner": owner,
        "foundation": sched["foundation_account"],
        "deployment_time": int(sched["deployment_time"]),
        "emission_interval": int(sched["emission_interval"]),
        "deployed_at_ms": _now_ms(),
        "config": cfg.to_json(),
        "plan": _plan_json(cfg),
    }

    out_dir = Path(deployments_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    body = json.dumps(record, indent=2, sort_keys=True)
    (out_dir / f"{network}-{record['deployed_at_ms']}.json").write_text(body, encoding="utf-8")
    (out_dir / f"{network}-latest.json").write_text(body, encoding="utf-8")
    return record


def show(*, network: str, deployments_dir: str) -> Json:
    p = Path(deployments_dir) / f"{network}-latest.json"
    if not p.is_file():
        raise FileNotFoundError(f"no deployment recorded for network {network!r} in {deployments_dir}")
    return json.loads(p.read_text(encoding="utf-8"))


def format_plan(record: Json) -> str:
    decimals = int((record.get("config") or {}).get("decimals", 18))
    unit = 10**decimals
    lines = ["cycle  pct      amount(tokens)        cumulative(tokens)"]
    for r in record.get("plan") or []:
        pct = f"{int(r['bps']) / 100:.2f}%"
        lines.append(f"{int(r['cycle']):>5}  {pct:>6}  {int(r['amount']) // unit:>20}  {int(r['cumulative']) // unit:>24}")
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv_if_present()
    configure_structured_logging()

    p = argparse.ArgumentParser(description="AtlasOra emission deployer (initialize schedule, record deployment)")
    sub = p.add_subparsers(dest="cmd", required=True)

    d = sub.add_parser("deploy", help="initialize the schedule at cycle 0")
    d.add_argument("--config", default=os.environ.get("ATLASORA_TOKEN_CONFIG_PATH", ""))
    d.add_argument("--db", default=os.environ.get("ATLASORA_DB_PATH", "./data/atlasora.db"))
    d.add_argument("--owner", default=os.environ.get("ATLASORA_OWNER_ACCOUNT", ""))
    d.add_argument("--network", default=os.environ.get("ATLASORA_NETWORK", "localhost"))
    d.add_argument("--deployments-dir", default=os.environ.get("ATLASORA_DEPLOYMENTS_DIR", "./deployments"))
    d.add_argument("--interval", type=int, default=None, help="emission interval in seconds (default 180 days)")

    s = sub.add_parser("show", help="print the latest deployment record for a network")
    s.add_argument("--network", default=os.environ.get("ATLASORA_NETWORK", "localhost"))
    s.add_argument("--deployments-dir", default=os.environ.get("ATLASORA_DEPLOYMENTS_DIR", "./deployments"))

    args = p.parse_args(argv)

    if args.cmd == "show":
        try:
            record = show(network=args.network, deployments_dir=args.deployments_dir)
        except FileNotFoundError as e:
            print(f"error: {e}")
            return 2
        print(json.dumps(record, indent=2, sort_keys=True))
        print(format_plan(record))
        return 0

    owner = str(args.owner or "").strip()
    if not owner:
        print("missing owner: set ATLASORA_OWNER_ACCOUNT or --owner")
        return 2

    interval = int(args.interval) if args.interval is not None else EMISSION_INTERVAL_SECONDS
    try:
        cfg = load_token_config(config_path=args.config or None)
        record = deploy(
            cfg=cfg,
            db_path=args.db,
            owner=owner,
            network=args.network,
            deployments_dir=args.deployments_dir,
            emission_interval=interval,
        )
    except FileNotFoundError as e:
        print(f"token config not found: {e}")
        return 2
    except (ValueError, EmissionError) as e:
        print(f"deploy failed: {e}")
        return 2
    log.info("deployment recorded network=%s owner=%s", record["network"], record["owner"])
    print(format_plan(record))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
