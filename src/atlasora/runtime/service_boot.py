# src/atlasora/runtime/service_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from atlasora.config.token_config import load_token_config
from atlasora.emission.constants import EMISSION_INTERVAL_SECONDS
from atlasora.runtime.service import EmissionService
from atlasora.runtime.state_store import open_state_store


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return bool(default)
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except Exception:
        return int(default)


@dataclass
class ServiceBootConfig:
    db_path: str
    owner_account: str
    emission_interval_s: int
    auto_deploy: bool
    token_config_path: Optional[str] = None


def boot_config_from_env() -> ServiceBootConfig:
    return ServiceBootConfig(
        db_path=os.environ.get("ATLASORA_DB_PATH", "./data/atlasora.db"),
        owner_account=(os.environ.get("ATLASORA_OWNER_ACCOUNT") or "").strip(),
        emission_interval_s=max(1, _env_int("ATLASORA_EMISSION_INTERVAL_S", EMISSION_INTERVAL_SECONDS)),
        auto_deploy=_env_bool("ATLASORA_AUTO_DEPLOY", False),
        token_config_path=os.environ.get("ATLASORA_TOKEN_CONFIG_PATH") or None,
    )


def build_service(cfg: Optional[ServiceBootConfig] = None) -> EmissionService:
    """Build an EmissionService from an explicit boot config or, if omitted, from env.

    With auto_deploy, a store with no snapshot yet is initialized from the token
    config with `owner_account` as owner and initial-grant recipient.
    """
    c = cfg or boot_config_from_env()
    svc = EmissionService(store=open_state_store(c.db_path), emission_interval=c.emission_interval_s)

    if c.auto_deploy and not svc.is_deployed():
        if not c.owner_account:
            raise ValueError("ATLASORA_OWNER_ACCOUNT is required when ATLASORA_AUTO_DEPLOY is on")
        svc.deploy(config=load_token_config(config_path=c.token_config_path), owner=c.owner_account)

    return svc
