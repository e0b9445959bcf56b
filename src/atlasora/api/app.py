from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from atlasora.api.config import load_api_config
from atlasora.api.errors import install_error_handlers
from atlasora.api.routes_public import public_router
from atlasora.api.security import RequestSizeLimitMiddleware
from atlasora.api.structured_logging import RequestLogMiddleware, configure_structured_logging, log_event
from atlasora.runtime.metrics import set_gauge
from atlasora.runtime.service import EmissionService
from atlasora.runtime.service_boot import build_service as _build_service

log = logging.getLogger("atlasora.api")


def build_service() -> EmissionService:
    """Build the EmissionService for the API runtime.

    This wrapper exists so tests can monkeypatch `atlasora.api.app.build_service`
    without reaching into runtime modules.
    """
    return _build_service()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): open the state store (and auto-deploy if configured),
        attach it as app.state.service
      - False: no service attached; tests set app.state.service themselves
    """
    mode = os.environ.get("ATLASORA_MODE", "prod").strip().lower()
    configure_structured_logging()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        svc = getattr(app.state, "service", None)
        if svc is not None and svc.is_deployed():
            st = svc.schedule_state()
            set_gauge("current_cycle", st.current_cycle)
            log_event(log, "api_started", mode=mode, cycle=st.current_cycle, exhausted=st.exhausted)
        else:
            log_event(log, "api_started", mode=mode, deployed=False)
        yield

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(
            title="AtlasOra Emission API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="AtlasOra Emission API", lifespan=_lifespan)

    app.state.cfg = load_api_config()
    app.state.service = build_service() if boot_runtime else None

    # --- Middleware ---
    # Request size limiter should be early to fail fast.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    install_error_handlers(app)

    # --- Routers ---
    app.include_router(public_router)

    return app
