from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request, Response

from atlasora.runtime.metrics import format_prometheus, metrics_enabled


router = APIRouter()


@router.get("/metrics")
def metrics(request: Request, now: Optional[int] = None) -> Response:
    """Prometheus-style metrics.

    Disabled by default. Enable with:
      ATLASORA_METRICS_ENABLED=1

    Schedule gauges (cycle, issued/remaining tokens, next issuance time) are
    re-read from the store on every scrape once the schedule is deployed;
    before that only counters and uptime are exported.
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")

    svc = getattr(request.app.state, "service", None)
    if svc is not None:
        svc.refresh_metrics(now)
    return Response(content=format_prometheus(), media_type="text/plain")
