from __future__ import annotations

"""Pydantic request schemas for the API.

These exist only for HTTP input validation. Amounts are integers in base
units (10**decimals per token); JSON has no integer size limit, so 18-decimal
amounts pass through unchanged.
"""

from pydantic import BaseModel, Field


class BurnRequest(BaseModel):
    amount: int = Field(..., ge=0, description="Units to destroy from the caller's own balance")


class OwnershipTransferRequest(BaseModel):
    new_owner: str = Field(..., min_length=1, description="Account that becomes the sole authority")
