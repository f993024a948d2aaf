"""
Chainward

"A ledger that can be rewritten isn't a ledger, it's a draft."

Tamper-evident compliance event ledger and retention engine:
- audit: hash-chained monthly JSONL segments, redaction, integrity replay
- retention: declarative policies, schedules, delete/archive of expired data
- core: configuration, errors, owner-only file helpers
"""

from .bootstrap import Components, build_components
from .core.config import ChainwardConfig

__version__ = "0.1.0"

__all__ = ["Components", "build_components", "ChainwardConfig", "__version__"]
