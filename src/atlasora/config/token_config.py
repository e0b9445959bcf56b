# src/atlasora/config/token_config.py
from __future__ import annotations

import json
import os
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from atlasora.emission.constants import BPS_DENOMINATOR, INITIAL_EMISSION_BPS, TOKEN_DECIMALS
from atlasora.emission.schedule import is_null_account

Json = Dict[str, Any]

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_INT_RE = re.compile(r"^[+-]?\d+$")


def _as_int(v: Any, default: int, *, field: str) -> int:
    """Present values must be integers (or decimal digit strings); absent ones take the default."""
    if v is None:
        return int(default)
    if isinstance(v, bool):
        raise ValueError(f"{field} must be an integer; got: {v!r}")
    if isinstance(v, int):
        return v
    if isinstance(v, str) and _INT_RE.match(v.strip()):
        return int(v.strip())
    raise ValueError(f"{field} must be an integer; got: {v!r}")


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    return str(v)


def _as_bool(v: Any, default: bool, *, field: str) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"{field} must be a boolean; got: {v!r}")


@dataclass(frozen=True)
class TokenConfig:
    name: str
    symbol: str
    decimals: int

    # Whole tokens (multiply by 10**decimals for base units).
    initial_supply: int
    max_supply: int

    initial_percent_bps: int
    burnable: bool

    # Receives every scheduled emission (cycles 1..9).
    foundation_address: str

    @property
    def unit(self) -> int:
        return 10 ** int(self.decimals)

    @property
    def max_supply_units(self) -> int:
        return int(self.max_supply) * self.unit

    @property
    def initial_supply_units(self) -> int:
        return int(self.initial_supply) * self.unit

    def to_json(self) -> Json:
        return asdict(self)


def default_token_config() -> TokenConfig:
    return TokenConfig(
        name="AtlasOra",
        symbol="AORA",
        decimals=TOKEN_DECIMALS,
        initial_supply=30_000_000,
        max_supply=200_000_000,
        initial_percent_bps=INITIAL_EMISSION_BPS,
        burnable=True,
        foundation_address="0x9c819acC5c2112C0495D5dC794a516e76C269170",
    )


def validate_token_config(cfg: TokenConfig) -> None:
    """Fail-fast validation for token config.

    The 15% rule is checked here, outside the scheduler, which keeps its own
    basis-point constants and its own supply-cap check.
    """
    if not isinstance(cfg.name, str) or not cfg.name.strip():
        raise ValueError("Token name cannot be empty")

    if not isinstance(cfg.symbol, str) or not cfg.symbol.strip():
        raise ValueError("Token symbol cannot be empty")

    if int(cfg.decimals) < 0 or int(cfg.decimals) > 18:
        raise ValueError(f"Decimals must be between 0 and 18; got: {cfg.decimals}")

    initial = int(cfg.initial_supply)
    if initial <= 0:
        raise ValueError("Initial supply must be greater than 0")

    max_supply = int(cfg.max_supply)
    if max_supply < initial:
        raise ValueError("Max supply cannot be less than initial supply")

    expected_initial = (max_supply * 15) // 100
    if initial != expected_initial:
        raise ValueError(f"Initial supply must be exactly 15% of max supply ({expected_initial} tokens)")

    bps = int(cfg.initial_percent_bps)
    if bps <= 0 or bps > BPS_DENOMINATOR:
        raise ValueError(f"initial_percent_bps must be 1..{BPS_DENOMINATOR}; got: {bps}")
    if (max_supply * bps) // BPS_DENOMINATOR != initial:
        raise ValueError(f"initial_percent_bps={bps} does not yield the configured initial supply ({initial} tokens)")

    addr = str(cfg.foundation_address or "").strip()
    if is_null_account(addr):
        raise ValueError("Foundation address cannot be the zero address")
    if not _ADDRESS_RE.match(addr):
        raise ValueError(f"Foundation address must be 0x followed by 40 hex chars; got: {addr!r}")


def _parse_file(p: Path) -> Any:
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        import yaml

        return yaml.safe_load(text)
    return json.loads(text)


def token_config_from_mapping(raw: Json) -> TokenConfig:
    if not isinstance(raw, dict):
        raise ValueError("token config must be a mapping")

    d = default_token_config()
    cfg = TokenConfig(
        name=_as_str(raw.get("name"), d.name),
        symbol=_as_str(raw.get("symbol"), d.symbol),
        decimals=_as_int(raw.get("decimals"), d.decimals, field="decimals"),
        initial_supply=_as_int(raw.get("initial_supply", raw.get("initialSupply")), d.initial_supply, field="initial_supply"),
        max_supply=_as_int(raw.get("max_supply", raw.get("maxSupply")), d.max_supply, field="max_supply"),
        initial_percent_bps=_as_int(
            raw.get("initial_percent_bps", raw.get("initialPercentBps")), d.initial_percent_bps, field="initial_percent_bps"
        ),
        burnable=_as_bool(raw.get("burnable"), d.burnable, field="burnable"),
        foundation_address=_as_str(raw.get("foundation_address", raw.get("foundationAddress")), d.foundation_address),
    )
    validate_token_config(cfg)
    return cfg


def read_token_config_file(path: str) -> TokenConfig:
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(str(p))
    return token_config_from_mapping(_parse_file(p))


def load_token_config(*, config_path: Optional[str] = None) -> TokenConfig:
    p = config_path or os.environ.get("ATLASORA_TOKEN_CONFIG_PATH")
    if p:
        return read_token_config_file(p)

    cfg = default_token_config()
    validate_token_config(cfg)
    return cfg


__all__ = [
    "TokenConfig",
    "default_token_config",
    "load_token_config",
    "read_token_config_file",
    "token_config_from_mapping",
    "validate_token_config",
]
