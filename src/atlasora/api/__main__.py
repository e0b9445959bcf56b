# src/atlasora/api/__main__.py
from __future__ import annotations

import argparse
import json
import os
from typing import Any, Dict, List, Optional

import uvicorn

from atlasora.env import load_dotenv_if_present

Json = Dict[str, Any]


def deployment_summary(svc: Any, now: Optional[int] = None) -> Json:
    """What an operator checks before exposing the API: is there a schedule, and where is it."""
    if not svc.is_deployed():
        return {"deployed": False}
    info = svc.info(now)
    st = svc.schedule_state()
    return {
        "deployed": True,
        "owner": svc.owner(),
        "cycle": info.cycle,
        "exhausted": st.exhausted,
        "due": info.due,
        "next_time": info.next_time,
        "total_issued": str(info.total_issued),
        "remaining": str(info.remaining),
    }


def main(argv: Optional[List[str]] = None) -> int:
    # Load .env early so ATLASORA_* vars exist before anything reads them.
    load_dotenv_if_present()

    p = argparse.ArgumentParser(description="AtlasOra emission API server")
    p.add_argument("--host", default=os.getenv("ATLASORA_API_HOST", "127.0.0.1"))
    p.add_argument("--port", type=int, default=int(os.getenv("ATLASORA_API_PORT", "8080")))
    p.add_argument(
        "--check",
        action="store_true",
        help="open the state store, print the deployment summary and exit (3 if not deployed)",
    )
    args = p.parse_args(argv)

    # Import after dotenv load (prevents "config read before env" surprises)
    if args.check:
        from atlasora.runtime.service_boot import build_service

        summary = deployment_summary(build_service())
        print(json.dumps(summary, sort_keys=True))
        return 0 if summary["deployed"] else 3

    from atlasora.api.app import create_app

    uvicorn.run(create_app(), host=args.host, port=int(args.port), log_level="info")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
