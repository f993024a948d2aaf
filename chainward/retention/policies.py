"""
Retention Policy Models

Declarative rules mapping data categories to a maximum age and a disposal
action, plus the built-in policies that are always present.

Built-in policies cover the regulatory minimums (CSSF 7-year retention for
audit and consent records) and routine cleanup of session and cache data.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DataClassification(str, Enum):
    """Data sensitivity classification levels."""

    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"
    REGULATED = "regulated"


class RetentionAction(str, Enum):
    """What happens to an expired item."""

    DELETE = "delete"
    ARCHIVE = "archive"
    # Declared but not implemented: expired items are left in place
    ANONYMIZE = "anonymize"


class RetentionSchedule(str, Enum):
    """Minimum interval between two runs of a policy."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RetentionPolicy(BaseModel):
    """A retention rule over one or more logical data types."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    data_types: List[str] = Field(..., min_length=1)
    classifications: Optional[List[DataClassification]] = None
    retention_days: int = Field(..., ge=0)
    action: RetentionAction
    schedule: RetentionSchedule
    regulatory_requirement: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class RetentionResult(BaseModel):
    """Outcome of applying one policy to one data type."""

    policy_id: str
    policy_name: str
    executed_at: datetime
    data_type: str
    action: RetentionAction
    items_expired: int = 0
    items_processed: int = 0
    bytes_freed: int = 0
    success: bool = True
    error: Optional[str] = None


SEVEN_YEARS_DAYS = 7 * 365

BUILTIN_POLICIES: List[RetentionPolicy] = [
    RetentionPolicy(
        id="policy_audit_logs",
        name="Audit Log Retention",
        data_types=["audit_logs", "compliance_events", "security_logs"],
        classifications=[DataClassification.REGULATED],
        retention_days=SEVEN_YEARS_DAYS,
        action=RetentionAction.ARCHIVE,
        schedule=RetentionSchedule.MONTHLY,
        regulatory_requirement="CSSF Circular 20/750",
    ),
    RetentionPolicy(
        id="policy_consent",
        name="Consent Record Retention",
        data_types=["consent_records"],
        retention_days=SEVEN_YEARS_DAYS,
        action=RetentionAction.ARCHIVE,
        schedule=RetentionSchedule.MONTHLY,
        regulatory_requirement="GDPR Article 7",
    ),
    RetentionPolicy(
        id="policy_session",
        name="Session Data Cleanup",
        data_types=["session_state", "browser_local_storage"],
        retention_days=1,
        action=RetentionAction.DELETE,
        schedule=RetentionSchedule.DAILY,
    ),
    RetentionPolicy(
        id="policy_browser_cache",
        name="Browser Cache Cleanup",
        data_types=["browser_cache"],
        retention_days=7,
        action=RetentionAction.DELETE,
        schedule=RetentionSchedule.WEEKLY,
    ),
    RetentionPolicy(
        id="policy_error_logs",
        name="Error Log Cleanup",
        data_types=["error_logs"],
        retention_days=30,
        action=RetentionAction.DELETE,
        schedule=RetentionSchedule.MONTHLY,
    ),
]

BUILTIN_POLICY_IDS = frozenset(p.id for p in BUILTIN_POLICIES)
