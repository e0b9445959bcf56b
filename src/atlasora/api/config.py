from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "testnet" | "prod"
    # account -> api key, for callers of the mutating endpoints
    api_keys: Dict[str, str] = field(default_factory=dict)


def parse_api_keys(raw: str | None) -> Dict[str, str]:
    """
    Parse ATLASORA_API_KEYS.

    Format: "account=key,account2=key2". Entries without "=" or with an empty
    side are skipped; later entries for the same account win.
    """
    out: Dict[str, str] = {}
    if not raw:
        return out
    for part in raw.split(","):
        if "=" not in part:
            continue
        acct, key = part.split("=", 1)
        acct = acct.strip()
        key = key.strip()
        if acct and key:
            out[acct] = key
    return out


def load_api_config() -> ApiConfig:
    mode = os.getenv("ATLASORA_MODE", "prod").strip().lower()
    keys = parse_api_keys(os.getenv("ATLASORA_API_KEYS"))
    return ApiConfig(mode=mode, api_keys=keys)
