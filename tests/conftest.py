"""Pytest configuration for chainward tests.

Every test gets its own temporary data directory; no test touches the
user's real ledger.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from chainward.audit.ledger import Ledger
from chainward.audit.segments import SegmentStore
from chainward.core.config import ChainwardConfig


class FixedClock:
    """Controllable clock for month-rotation and retention tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir):
    """Configuration rooted in the temporary directory."""
    return ChainwardConfig(base_dir=temp_dir, sync_on_write=False)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def segment_store(config):
    """Segment store in the temporary ledger directory."""
    return SegmentStore(config.ledger_dir, sync_on_write=False)


@pytest.fixture
def ledger(config):
    """Ledger writing to the temporary directory."""
    return Ledger.from_config(config)
