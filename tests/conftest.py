"""
Shared test configuration.

Adds src/ to sys.path so the flat modules (signal_engine, daily_aggregator,
etc.) and the analytics/pipeline/routes packages import by plain name.
"""

import os
import sys

import pytest

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)


@pytest.fixture(autouse=True)
def _clean_health_env(monkeypatch):
    """Keep HEALTH_* variables from the developer shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("HEALTH_"):
            monkeypatch.delenv(key, raising=False)
