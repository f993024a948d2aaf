"""
Chainward Ledger

Tamper-evident storage for compliance events:
- Append-only monthly JSONL segments (owner-only permissions)
- Hash-chained events (each references the previous event's hash)
- Irreversible redaction and IP masking before hashing
- Full-chain replay that reports the extent of any damage
"""

from .chain import GENESIS_HASH, canonicalize, compute_hash
from .ledger import Ledger
from .models import (
    Actor,
    ActorType,
    EventCategory,
    LedgerEvent,
    LegalBasis,
    Outcome,
    Resource,
)
from .redaction import REDACTED, mask_ip, redact_details
from .segments import SegmentReadResult, SegmentStore
from .verifier import IntegrityReport, IntegrityVerifier

__all__ = [
    "GENESIS_HASH",
    "canonicalize",
    "compute_hash",
    "Ledger",
    "Actor",
    "ActorType",
    "EventCategory",
    "LedgerEvent",
    "LegalBasis",
    "Outcome",
    "Resource",
    "REDACTED",
    "mask_ip",
    "redact_details",
    "SegmentReadResult",
    "SegmentStore",
    "IntegrityReport",
    "IntegrityVerifier",
]
