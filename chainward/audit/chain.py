"""
Hash chaining for ledger events.

hash = SHA256(canonical JSON of every field except "hash", including
"previous_hash"). Canonical JSON sorts keys at every level and uses compact
separators, so the same fields always produce the same bytes.
"""

import hashlib
import json
from typing import Any, Dict, Mapping

GENESIS_HASH = "0" * 64

HASH_FIELD = "hash"
PREVIOUS_HASH_FIELD = "previous_hash"


def canonicalize(payload: Mapping[str, Any]) -> str:
    """Deterministic JSON serialization (hash field excluded)."""
    data = {k: v for k, v in payload.items() if k != HASH_FIELD}
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_hash(payload: Mapping[str, Any], previous_hash: str) -> str:
    """Hash an event payload threaded onto previous_hash."""
    data: Dict[str, Any] = dict(payload)
    data[PREVIOUS_HASH_FIELD] = previous_hash
    return hashlib.sha256(canonicalize(data).encode("utf-8")).hexdigest()


def recompute_hash(record: Mapping[str, Any]) -> str:
    """Recompute the hash of a stored record from its own fields."""
    return compute_hash(record, record.get(PREVIOUS_HASH_FIELD))
