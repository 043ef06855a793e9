"""
Shared pytest configuration for the companion engine tests.

Sets environment variables at module level BEFORE any project imports.
pydantic-settings reads env vars when config.py is first imported, so these
must be set before test collection triggers project imports.
"""

import os
import sys
import tempfile
from pathlib import Path

# Project root on sys.path so the flat top-level packages import without install
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep test runs away from the real data directory
_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="companion-tests-"))
os.environ.setdefault("COMPANION_DATA_DIR", str(_TEST_DATA_DIR))
os.environ.setdefault("COMPANION_STRATEGY_FILE", str(_TEST_DATA_DIR / "behavior-strategies.json"))
os.environ.setdefault("COMPANION_BACKUP_DIR", str(_TEST_DATA_DIR / "backups"))
os.environ.setdefault("COMPANION_STATS_FILE", str(_TEST_DATA_DIR / "execution-stats.json"))
os.environ.setdefault("COMPANION_LOG_LEVEL", "DEBUG")

import pytest  # noqa: E402


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
