# src/atlasora/access/gate.py
from __future__ import annotations

"""Single-authority access gate.

Exactly one account (the owner) is authorized at a time. Ownership can be
handed over or renounced by the current owner; after renouncing nobody is
authorized, which freezes the emission schedule for good.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from atlasora.emission.constants import NULL_ACCOUNT
from atlasora.emission.errors import InvalidConfiguration, Unauthorized
from atlasora.emission.schedule import is_null_account

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class OwnershipTransferred:
    previous_owner: str
    new_owner: str

    def to_json(self) -> Json:
        return {"previous_owner": self.previous_owner, "new_owner": self.new_owner}


@dataclass
class OwnerGate:
    owner: str
    events: List[OwnershipTransferred] = field(default_factory=list)
    # Renounced gates hold the null owner and authorize nobody.
    renounced: bool = False

    def __post_init__(self) -> None:
        if self.renounced:
            self.owner = NULL_ACCOUNT
            return
        if is_null_account(self.owner):
            raise InvalidConfiguration("invalid_owner", {"owner": repr(self.owner)})
        self.owner = str(self.owner).strip()
        if not self.events:
            self.events.append(OwnershipTransferred(previous_owner=NULL_ACCOUNT, new_owner=self.owner))

    def is_authorized(self, caller: Optional[str]) -> bool:
        if self.renounced or is_null_account(caller):
            return False
        return str(caller).strip() == self.owner

    def _require_owner(self, caller: Optional[str]) -> None:
        if not self.is_authorized(caller):
            raise Unauthorized("caller_not_owner", {"caller": str(caller)})

    def transfer_ownership(self, caller: Optional[str], new_owner: Optional[str]) -> OwnershipTransferred:
        self._require_owner(caller)
        if is_null_account(new_owner):
            raise InvalidConfiguration("invalid_owner", {"owner": repr(new_owner)})
        return self._set_owner(str(new_owner).strip())

    def renounce_ownership(self, caller: Optional[str]) -> OwnershipTransferred:
        self._require_owner(caller)
        ev = self._set_owner(NULL_ACCOUNT)
        self.renounced = True
        return ev

    def _set_owner(self, new_owner: str) -> OwnershipTransferred:
        ev = OwnershipTransferred(previous_owner=self.owner, new_owner=new_owner)
        self.owner = new_owner
        self.events.append(ev)
        return ev

    def to_json(self) -> Json:
        return {"owner": self.owner, "renounced": self.renounced, "events": [e.to_json() for e in self.events]}

    @classmethod
    def from_json(cls, obj: Optional[Json]) -> "OwnerGate":
        raw = obj if isinstance(obj, dict) else {}
        owner = str(raw.get("owner") or "").strip()
        events: List[OwnershipTransferred] = []
        for rec in raw.get("events") or []:
            if not isinstance(rec, dict):
                continue
            events.append(
                OwnershipTransferred(
                    previous_owner=str(rec.get("previous_owner") or NULL_ACCOUNT),
                    new_owner=str(rec.get("new_owner") or NULL_ACCOUNT),
                )
            )
        # a null owner without the renounced flag is rejected by __post_init__
        return cls(owner=owner, events=events, renounced=bool(raw.get("renounced")))


__all__ = ["OwnerGate", "OwnershipTransferred"]
