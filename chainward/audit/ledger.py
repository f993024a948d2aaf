"""
Compliance Ledger

Public append/read API over the hash-chained segment files.

Every append:
1. Builds the event (actor IP masked, details redacted)
2. Computes its hash over the current tip hash
3. Serializes it to one JSON line
4. Appends the line to the current month's segment (flushed)
5. Moves the in-memory tip to the new hash

The tip is restored from disk when the ledger is constructed: the hash of
the last parseable event in the newest non-empty segment, or the genesis
hash for an empty ledger.

One writer per ledger directory. Appends from several threads of the same
process are serialized; several processes appending to the same directory
will fork the chain.
"""

import json
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from ..core.config import ChainwardConfig
from .chain import GENESIS_HASH, compute_hash
from .models import (
    Actor,
    ActorType,
    EventBody,
    EventCategory,
    LedgerEvent,
    LegalBasis,
    Outcome,
    Resource,
    RetentionDays,
)
from .redaction import DEFAULT_REDACTION_THRESHOLD, redact_details, redact_value
from .segments import Clock, SegmentStore
from .verifier import IntegrityReport, IntegrityVerifier

ActorLike = Union[Actor, Dict[str, Any], ActorType, str]
ResourceLike = Union[Resource, Dict[str, Any], str]


def _coerce_actor(actor: Optional[ActorLike]) -> Actor:
    if actor is None:
        return Actor()
    if isinstance(actor, Actor):
        return actor
    if isinstance(actor, dict):
        return Actor(**actor)
    return Actor(type=actor)


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _coerce_resource(resource: Optional[ResourceLike]) -> Optional[Resource]:
    if resource is None or isinstance(resource, Resource):
        return resource
    if isinstance(resource, dict):
        return Resource(**resource)
    return Resource(type=resource)


class Ledger:
    """
    Append-only, hash-chained compliance event ledger.

    Usage:
        ledger = Ledger.from_config(ChainwardConfig.from_env())

        event = ledger.append(
            "data_access",
            "data_view",
            {"type": "user", "id": "u-42", "ip": "10.1.2.3"},
            "success",
            resource={"type": "notebook", "id": "nb-7"},
        )

        recent = ledger.read(category="data_access", limit=10)
        report = ledger.verify_integrity()
    """

    def __init__(
        self,
        store: SegmentStore,
        enabled: bool = True,
        default_retention_days: RetentionDays = 7 * 365,
        redaction_threshold: int = DEFAULT_REDACTION_THRESHOLD,
    ):
        self._store = store
        self._enabled = enabled
        self._default_retention_days = default_retention_days
        self._redaction_threshold = redaction_threshold
        self._verifier = IntegrityVerifier(store)
        self._lock = threading.Lock()
        self._tip_hash = GENESIS_HASH
        self._append_count = 0

        if self._enabled:
            self._store.ensure_directory()
            self._restore_tip()

    @classmethod
    def from_config(cls, config: ChainwardConfig, clock: Optional[Clock] = None) -> "Ledger":
        store = SegmentStore(
            config.ledger_dir,
            prefix=config.segment_prefix,
            sync_on_write=config.sync_on_write,
            clock=clock,
        )
        return cls(
            store,
            enabled=config.enabled,
            default_retention_days=config.default_retention_days,
            redaction_threshold=config.redaction_threshold,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def store(self) -> SegmentStore:
        return self._store

    @property
    def tip_hash(self) -> str:
        return self._tip_hash

    def _restore_tip(self) -> None:
        """Adopt the hash of the newest stored event, or genesis."""
        last = self._store.last_record()
        stored_hash = last.get("hash") if last else None

        if isinstance(stored_hash, str) and stored_hash:
            self._tip_hash = stored_hash
            logger.info(
                "Ledger tip restored",
                directory=str(self._store.directory),
                event_id=last.get("id"),
                tip=stored_hash[:16],
            )
        else:
            self._tip_hash = GENESIS_HASH
            logger.info("Ledger starting at genesis", directory=str(self._store.directory))

    # ── Write ──

    def _build_body(
        self,
        now: datetime,
        category: Union[EventCategory, str],
        event_type: str,
        actor: Optional[ActorLike],
        outcome: Union[Outcome, str],
        resource: Optional[ResourceLike],
        details: Optional[Dict[str, Any]],
        legal_basis: Optional[Union[LegalBasis, str]],
        data_categories: Optional[Iterable[str]],
        retention_days: Optional[RetentionDays],
        failure_reason: Optional[str],
    ) -> EventBody:
        if retention_days is None:
            retention_days = self._default_retention_days

        return EventBody(
            id=str(uuid4()),
            timestamp=now.isoformat(),
            category=category,
            event_type=event_type,
            actor=_coerce_actor(actor),
            resource=_coerce_resource(resource),
            details=redact_details(details, self._redaction_threshold),
            legal_basis=legal_basis,
            data_categories=list(data_categories) if data_categories is not None else None,
            outcome=outcome,
            failure_reason=redact_value(failure_reason, self._redaction_threshold),
            retention_days=retention_days,
        )

    def append(
        self,
        category: Union[EventCategory, str],
        event_type: str,
        actor: Optional[ActorLike] = None,
        outcome: Union[Outcome, str] = Outcome.SUCCESS,
        *,
        resource: Optional[ResourceLike] = None,
        details: Optional[Dict[str, Any]] = None,
        legal_basis: Optional[Union[LegalBasis, str]] = None,
        data_categories: Optional[Iterable[str]] = None,
        retention_days: Optional[RetentionDays] = None,
        failure_reason: Optional[str] = None,
    ) -> LedgerEvent:
        """
        Append an event to the chain and return it.

        The line is on disk (flushed) when this returns. When the ledger is
        disabled the event is built and returned but neither written nor
        chained.

        Raises:
            pydantic.ValidationError: invalid category, outcome or fields
            LedgerWriteError: the current segment cannot be appended to
        """
        with self._lock:
            # One clock reading for both the timestamp and the segment
            now = self._store.clock()
            body = self._build_body(
                now, category, event_type, actor, outcome, resource, details,
                legal_basis, data_categories, retention_days, failure_reason,
            )
            payload = body.to_payload()

            previous_hash = self._tip_hash
            record = dict(payload)
            record["previous_hash"] = previous_hash
            record["hash"] = compute_hash(payload, previous_hash)
            event = LedgerEvent.model_validate(record)

            if not self._enabled:
                return event

            line = json.dumps(record, separators=(",", ":"), ensure_ascii=False)
            path = self._store.segment_path_for(now)
            self._store.append(path, line)

            self._tip_hash = record["hash"]
            self._append_count += 1

        logger.debug(
            "Ledger event appended",
            event_id=event.id,
            category=event.category.value,
            event_type=event.event_type,
            segment=path.name,
        )
        return event

    # ── Convenience appenders ──

    def log_consent(
        self,
        action: str,
        actor: Optional[ActorLike],
        purposes: List[str],
        success: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> LedgerEvent:
        """Consent granted / revoked / updated."""
        return self.append(
            EventCategory.CONSENT,
            f"consent_{action}",
            actor,
            Outcome.SUCCESS if success else Outcome.FAILURE,
            details={**(details or {}), "purposes": purposes},
            legal_basis=LegalBasis.CONSENT,
        )

    def log_data_access(
        self,
        action: str,
        actor: Optional[ActorLike],
        data_type: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> LedgerEvent:
        return self.append(
            EventCategory.DATA_ACCESS,
            f"data_{action}",
            actor,
            Outcome.SUCCESS if success else Outcome.FAILURE,
            resource=Resource(type=data_type),
            details=details,
        )

    def log_data_export(
        self,
        actor: Optional[ActorLike],
        data_types: List[str],
        success: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> LedgerEvent:
        """Data portability export (GDPR Article 20)."""
        return self.append(
            EventCategory.DATA_EXPORT,
            "data_portability_export",
            actor,
            Outcome.SUCCESS if success else Outcome.FAILURE,
            details={**(details or {}), "data_types": data_types},
            legal_basis=LegalBasis.CONSENT,
        )

    def log_data_deletion(
        self,
        actor: Optional[ActorLike],
        data_type: str,
        item_count: int,
        success: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> LedgerEvent:
        """Erasure completed (GDPR Article 17)."""
        return self.append(
            EventCategory.DATA_DELETION,
            "erasure_completed",
            actor,
            Outcome.SUCCESS if success else Outcome.FAILURE,
            resource=Resource(type=data_type),
            details={**(details or {}), "items_deleted": item_count},
        )

    def log_security_incident(
        self,
        incident_type: str,
        severity: str,
        details: Dict[str, Any],
    ) -> LedgerEvent:
        return self.append(
            EventCategory.SECURITY_INCIDENT,
            incident_type,
            Actor(type=ActorType.SYSTEM),
            Outcome.SUCCESS,
            details={**details, "severity": severity},
        )

    def log_policy_change(
        self,
        setting: str,
        old_value: Any,
        new_value: Any,
        changed_by: Union[ActorType, str] = ActorType.SYSTEM,
    ) -> LedgerEvent:
        return self.append(
            EventCategory.POLICY_CHANGE,
            "configuration_changed",
            Actor(type=changed_by),
            Outcome.SUCCESS,
            resource=Resource(type="configuration", id=setting),
            details={"old_value": old_value, "new_value": new_value},
        )

    def log_access_control(
        self,
        action: str,
        actor: Optional[ActorLike],
        success: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> LedgerEvent:
        """Login / logout / auth_failed / locked_out."""
        return self.append(
            EventCategory.ACCESS_CONTROL,
            action,
            actor,
            Outcome.SUCCESS if success else Outcome.FAILURE,
            details=details,
        )

    def log_retention(
        self,
        action: str,
        data_type: str,
        item_count: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> LedgerEvent:
        return self.append(
            EventCategory.RETENTION,
            f"retention_{action}",
            Actor(type=ActorType.SYSTEM),
            Outcome.SUCCESS,
            resource=Resource(type=data_type),
            details={**(details or {}), "items_affected": item_count},
        )

    def log_breach(
        self,
        breach_type: str,
        severity: str,
        notification_sent: bool,
        details: Dict[str, Any],
    ) -> LedgerEvent:
        return self.append(
            EventCategory.BREACH,
            breach_type,
            Actor(type=ActorType.SYSTEM),
            Outcome.SUCCESS,
            details={**details, "severity": severity, "notification_sent": notification_sent},
        )

    # ── Read ──

    def read(
        self,
        category: Optional[Union[EventCategory, str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[LedgerEvent]:
        """
        Events newest first: newest segment first, last line first.

        start/end are inclusive bounds on the event timestamp.
        Unparsable lines and records that are not valid events are skipped.
        """
        if not self._enabled or limit <= 0:
            return []

        wanted = EventCategory(category).value if category is not None else None
        start = _as_utc(start)
        end = _as_utc(end)
        events: List[LedgerEvent] = []

        for path in self._store.list_segments(newest_first=True):
            result = self._store.read_lines(path)
            for record in reversed(result.records):
                if wanted is not None and record.data.get("category") != wanted:
                    continue
                try:
                    event = LedgerEvent.model_validate(record.data)
                    occurred_at = event.occurred_at
                except (ValidationError, ValueError) as e:
                    logger.debug(
                        "Skipping invalid ledger record",
                        path=str(path),
                        line=record.line_number,
                        error=str(e),
                    )
                    continue

                if start is not None and occurred_at < start:
                    continue
                if end is not None and occurred_at > end:
                    continue

                events.append(event)
                if len(events) >= limit:
                    return events

        return events

    # ── Verify ──

    def verify_integrity(self) -> IntegrityReport:
        """Replay the whole chain; see IntegrityVerifier.verify."""
        if not self._enabled:
            return IntegrityReport(valid=True, total_events=0, valid_events=0)
        return self._verifier.verify()

    def get_stats(self) -> Dict[str, Any]:
        """Ledger statistics."""
        stats: Dict[str, Any] = {
            "enabled": self._enabled,
            "directory": str(self._store.directory),
            "default_retention_days": self._default_retention_days,
            "segment_count": 0,
            "total_events": 0,
            "skipped_lines": 0,
            "events_by_category": {c.value: 0 for c in EventCategory},
            "tip_hash": self._tip_hash[:16],
            "appended_this_session": self._append_count,
        }
        if not self._enabled:
            return stats

        segments = self._store.list_segments()
        stats["segment_count"] = len(segments)
        for path in segments:
            result = self._store.read_lines(path)
            stats["skipped_lines"] += len(result.skipped)
            for record in result.records:
                stats["total_events"] += 1
                category = record.data.get("category")
                if category in stats["events_by_category"]:
                    stats["events_by_category"][category] += 1

        return stats
