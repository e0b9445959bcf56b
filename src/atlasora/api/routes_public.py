# src/atlasora/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from atlasora.api.routes_public_parts.access import router as access_router
from atlasora.api.routes_public_parts.emission import router as emission_router
from atlasora.api.routes_public_parts.health import router as health_router
from atlasora.api.routes_public_parts.ledger import router as ledger_router
from atlasora.api.routes_public_parts.metrics import router as metrics_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(emission_router, prefix="/v1", tags=["emission"])
public_router.include_router(ledger_router, prefix="/v1", tags=["ledger"])
public_router.include_router(access_router, prefix="/v1", tags=["access"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
