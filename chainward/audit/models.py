"""
Ledger Event Models

Defines the immutable records appended to the compliance ledger:
- Enumerated categories, actor types and outcomes
- Actor provenance with irreversible IP masking
- Hash chain fields (hash, previous_hash) for tamper evidence
- Retention hint per event (days or "indefinite")
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .redaction import mask_ip

INDEFINITE = "indefinite"

RetentionDays = Union[int, Literal["indefinite"]]


class EventCategory(str, Enum):
    """Categories of compliance events."""

    CONSENT = "consent"
    DATA_ACCESS = "data_access"
    DATA_EXPORT = "data_export"
    DATA_DELETION = "data_deletion"
    DATA_PROCESSING = "data_processing"
    SECURITY_INCIDENT = "security_incident"
    POLICY_CHANGE = "policy_change"
    ACCESS_CONTROL = "access_control"
    RETENTION = "retention"
    BREACH = "breach"


class ActorType(str, Enum):
    USER = "user"
    SYSTEM = "system"
    ADMIN = "admin"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class LegalBasis(str, Enum):
    """GDPR Article 6 legal bases for processing."""

    CONSENT = "consent"
    CONTRACT = "contract"
    LEGAL_OBLIGATION = "legal_obligation"
    VITAL_INTERESTS = "vital_interests"
    PUBLIC_INTEREST = "public_interest"
    LEGITIMATE_INTEREST = "legitimate_interest"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Actor(BaseModel):
    """Who triggered the event. The IP is masked on construction."""

    model_config = ConfigDict(frozen=True)

    type: ActorType = ActorType.SYSTEM
    id: Optional[str] = None
    ip: Optional[str] = None

    @field_validator("ip", mode="before")
    @classmethod
    def mask(cls, v):
        if isinstance(v, str):
            return mask_ip(v) or None
        return v


class Resource(BaseModel):
    """Object the event acted upon."""

    model_config = ConfigDict(frozen=True)

    type: str
    id: Optional[str] = None


class EventBody(BaseModel):
    """Every hashed field of a ledger event except the chain links."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: str = Field(default_factory=utc_now_iso)
    category: EventCategory
    event_type: str = Field(..., min_length=1)
    actor: Actor
    resource: Optional[Resource] = None
    details: Optional[Dict[str, Any]] = None
    legal_basis: Optional[LegalBasis] = None
    data_categories: Optional[List[str]] = None
    outcome: Outcome
    failure_reason: Optional[str] = None
    retention_days: RetentionDays

    @field_validator("timestamp")
    @classmethod
    def ensure_iso(cls, v: str) -> str:
        parse_timestamp(v)
        return v

    @field_validator("retention_days")
    @classmethod
    def non_negative(cls, v):
        if isinstance(v, int) and v < 0:
            raise ValueError("retention_days must be >= 0 or 'indefinite'")
        return v

    @property
    def occurred_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict of the fields covered by the hash."""
        return self.model_dump(mode="json")


class LedgerEvent(EventBody):
    """
    One immutable record in the hash chain.

    hash: SHA256 of the canonical form of every other field
    previous_hash: hash of the preceding event, or the genesis value
    """

    hash: str
    previous_hash: str

    def to_record(self) -> Dict[str, Any]:
        """Full JSON-ready dict, as stored on one segment line."""
        return self.model_dump(mode="json")

    @property
    def hash_prefix(self) -> str:
        return self.hash[:8]
