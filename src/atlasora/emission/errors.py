# src/atlasora/emission/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional

Json = Dict[str, Any]


@dataclass
class EmissionError(Exception):
    """Canonical error type for emission schedule failures.

    Every failure leaves the schedule state unchanged. Subclasses pin `code` so
    callers can tell "try again later" from "nothing left to do" from
    "not allowed" from "misconfigured".
    """

    code: str
    reason: str
    details: Optional[Json] = None

    http_status: ClassVar[int] = 500

    def __str__(self) -> str:
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class InvalidConfiguration(EmissionError):
    http_status: ClassVar[int] = 500

    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("invalid_configuration", reason, details)


class Unauthorized(EmissionError):
    http_status: ClassVar[int] = 403

    def __init__(self, reason: str = "caller_not_authorized", details: Optional[Json] = None) -> None:
        super().__init__("unauthorized", reason, details)


class ScheduleExhausted(EmissionError):
    http_status: ClassVar[int] = 410

    def __init__(self, reason: str = "all_emissions_completed", details: Optional[Json] = None) -> None:
        super().__init__("schedule_exhausted", reason, details)


class NotYetDue(EmissionError):
    http_status: ClassVar[int] = 409

    def __init__(self, reason: str = "next_emission_not_yet_available", details: Optional[Json] = None) -> None:
        super().__init__("not_yet_due", reason, details)


class SupplyCapExceeded(EmissionError):
    http_status: ClassVar[int] = 500

    def __init__(self, reason: str = "would_exceed_max_supply", details: Optional[Json] = None) -> None:
        super().__init__("supply_cap_exceeded", reason, details)


__all__ = [
    "EmissionError",
    "InvalidConfiguration",
    "NotYetDue",
    "ScheduleExhausted",
    "SupplyCapExceeded",
    "Unauthorized",
]
