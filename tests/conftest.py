from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "atlasora" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _reset_metrics(monkeypatch):
    from atlasora.runtime import metrics

    monkeypatch.delenv("ATLASORA_METRICS_ENABLED", raising=False)
    metrics.reset()
    yield
    metrics.reset()
