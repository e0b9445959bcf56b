# src/atlasora/emission/constants.py
from __future__ import annotations

"""Emission schedule constants.

Schedule shape (fixed):
- Deployment: initial grant (15% of max supply) to the deployer
- Cycles 1-8: 10% of max supply each, one cycle every 180 days
- Cycle 9: 5% of max supply, final emission
- Total: 100%
"""

# Basis points (1 bps = 0.01%)
BPS_DENOMINATOR: int = 10_000

INITIAL_EMISSION_BPS: int = 1_500
REGULAR_EMISSION_BPS: int = 1_000
FINAL_EMISSION_BPS: int = 500

# Cycle 0 is the initial grant; cycle 9 is terminal.
FIRST_CYCLE: int = 1
REGULAR_CYCLES: int = 8
FINAL_CYCLE: int = REGULAR_CYCLES + 1
MAX_CYCLE: int = FINAL_CYCLE

# bps issued by cycles 1..9 combined (must sum with the initial grant to 100%)
SCHEDULED_EMISSION_BPS: int = REGULAR_CYCLES * REGULAR_EMISSION_BPS + FINAL_EMISSION_BPS

# 180 days in seconds
EMISSION_INTERVAL_SECONDS: int = 180 * 24 * 60 * 60

# Token precision (1 AORA = 1e18 units)
TOKEN_DECIMALS: int = 18

# Null account marker (zero address)
NULL_ACCOUNT: str = "0x" + "0" * 40
