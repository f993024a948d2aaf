"""
Chainward Retention

Time-based disposal of stored data driven by declarative policies:
- Built-in regulatory policies merged with user-defined ones
- Schedule checks (daily / weekly / monthly) independent of policy edits
- Delete or archive-then-delete of expired files, logged to the ledger
"""

from .engine import RetentionEngine, ScanResult, is_expired
from .locations import DEFAULT_LOCATIONS, DirectoryLocationResolver
from .policies import (
    BUILTIN_POLICIES,
    DataClassification,
    RetentionAction,
    RetentionPolicy,
    RetentionResult,
    RetentionSchedule,
)
from .scheduler import due_in_days, is_due
from .store import RetentionPolicyStore, RetentionRunLog

__all__ = [
    "RetentionEngine",
    "ScanResult",
    "is_expired",
    "DEFAULT_LOCATIONS",
    "DirectoryLocationResolver",
    "BUILTIN_POLICIES",
    "DataClassification",
    "RetentionAction",
    "RetentionPolicy",
    "RetentionResult",
    "RetentionSchedule",
    "due_in_days",
    "is_due",
    "RetentionPolicyStore",
    "RetentionRunLog",
]
