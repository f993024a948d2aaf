"""
Retention Engine

Applies retention policies to the storage locations they govern.

Per policy run: IDLE -> SCANNING -> DISPOSING -> RECORDED

1. Skip policies that are not due (unless forced)
2. Resolve each data type to a path; a missing location is a zero-item success,
   one that cannot be resolved or inspected is a failed result
3. Find items older than now - retention_days
4. Delete, or archive (copy first, then delete the original)
5. Append one retention event to the ledger
6. Record the run, only after the ledger event is written

Nothing is persisted mid-run: a crash before step 6 leaves the policy due,
so it runs again (at-least-once). Disposal is idempotent to allow that.
Item-level failures are logged and left out of the counters; they never
abort the batch.
"""

import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ..audit.ledger import Ledger
from ..audit.models import ActorType, EventCategory, Outcome, Resource
from ..audit.segments import Clock, utc_now
from ..core.errors import LedgerError
from ..core.fs import ensure_private_dir
from .locations import ItemClassifier, LocationResolver
from .policies import RetentionAction, RetentionPolicy, RetentionResult
from .scheduler import due_in_days, is_due
from .store import RetentionPolicyStore, RetentionRunLog

FILENAME_DATE = re.compile(r"(\d{4}-\d{2}-\d{2})")

ANONYMIZE_NOT_IMPLEMENTED = "anonymize action is not implemented; expired items were left in place"


class RunState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DISPOSING = "disposing"
    RECORDED = "recorded"


@dataclass
class ScanResult:
    """Expired items found at one location, plus any scan errors."""

    location: Path
    items: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def mtime_utc(path: Path) -> datetime:
    """Modification time as an aware datetime, exact to the microsecond."""
    seconds, nanos = divmod(path.stat().st_mtime_ns, 1_000_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(microseconds=nanos // 1000)


def uses_filename_dates(data_type: str) -> bool:
    """Rotated log/event files expire by the date in their name."""
    return "logs" in data_type or "events" in data_type


def filename_date(name: str) -> Optional[datetime]:
    match = FILENAME_DATE.search(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def item_age_reference(path: Path, data_type: str, from_listing: bool) -> datetime:
    """The timestamp an item's expiry is judged by."""
    if from_listing and uses_filename_dates(data_type):
        dated = filename_date(path.name)
        if dated is not None:
            return dated
    return mtime_utc(path)


def is_expired(path: Path, cutoff: datetime, data_type: str, from_listing: bool = True) -> bool:
    """Strictly older than the cutoff; an item exactly at the cutoff is kept."""
    return item_age_reference(path, data_type, from_listing) < cutoff


class RetentionEngine:
    """
    Runs due retention policies and reports what they did.

    Usage:
        engine = RetentionEngine(
            policy_store=RetentionPolicyStore(config.policies_file),
            run_log=RetentionRunLog(config.last_run_file),
            ledger=ledger,
            resolver=DirectoryLocationResolver(config.base_dir),
            archive_root=config.archive_dir,
        )
        results = engine.run_due_policies()
        status = engine.get_status()
    """

    def __init__(
        self,
        policy_store: RetentionPolicyStore,
        run_log: RetentionRunLog,
        ledger: Ledger,
        resolver: LocationResolver,
        archive_root,
        classifier: Optional[ItemClassifier] = None,
        clock: Optional[Clock] = None,
    ):
        self._policies = policy_store
        self._run_log = run_log
        self._ledger = ledger
        self._resolver = resolver
        self._archive_root = Path(archive_root)
        self._classifier = classifier
        self._clock = clock or utc_now

    @property
    def policy_store(self) -> RetentionPolicyStore:
        return self._policies

    # ── Runs ──

    def run_due_policies(self) -> List[RetentionResult]:
        """Execute every policy whose schedule says it is due."""
        now = self._clock()
        last_runs = self._run_log.load()
        results: List[RetentionResult] = []
        executed = 0

        for policy in self._policies.list():
            if not is_due(policy.schedule, last_runs.get(policy.id), now):
                logger.debug("Retention policy not due", policy_id=policy.id)
                continue
            results.extend(self._run_policy(policy))
            executed += 1

        logger.info(
            "Retention run complete",
            policies_executed=executed,
            items_processed=sum(r.items_processed for r in results),
            bytes_freed=sum(r.bytes_freed for r in results),
        )
        return results

    def force_run_policy(self, policy_id: str) -> List[RetentionResult]:
        """Run one policy regardless of its schedule. Unknown ids yield []."""
        policy = self._policies.get(policy_id)
        if policy is None:
            logger.warning("Forced run of unknown retention policy", policy_id=policy_id)
            return []
        return self._run_policy(policy)

    def _run_policy(self, policy: RetentionPolicy) -> List[RetentionResult]:
        self._transition(policy, RunState.SCANNING)
        now = self._clock()
        cutoff = now - timedelta(days=policy.retention_days)

        results = [self._apply(policy, data_type, now, cutoff) for data_type in policy.data_types]

        try:
            self._log_execution(policy, results)
        except LedgerError as e:
            logger.error("Retention event not recorded; run stays due", policy_id=policy.id, error=str(e))
            return [
                r.model_copy(update={"success": False, "error": f"ledger append failed: {e}"})
                for r in results
            ]

        try:
            self._run_log.record(policy.id, now)
        except OSError as e:
            logger.error("Could not record retention run", policy_id=policy.id, error=str(e))
            return results

        self._transition(policy, RunState.RECORDED)
        return results

    def _apply(
        self,
        policy: RetentionPolicy,
        data_type: str,
        now: datetime,
        cutoff: datetime,
    ) -> RetentionResult:
        result = RetentionResult(
            policy_id=policy.id,
            policy_name=policy.name,
            executed_at=now,
            data_type=data_type,
            action=policy.action,
        )

        try:
            location = self._resolver(data_type)
            if location is None or not Path(location).exists():
                logger.debug("Retention location missing", policy_id=policy.id, data_type=data_type)
                return result
            scan = self.find_expired_items(Path(location), cutoff, data_type, policy)
        except Exception as e:
            # Resolvers are host code; one bad data type must not abort the run
            logger.error(
                "Retention scan failed",
                policy_id=policy.id,
                data_type=data_type,
                error=str(e),
            )
            result.success = False
            result.error = str(e) or type(e).__name__
            return result

        result.items_expired = len(scan.items)
        if scan.errors and not scan.items:
            result.success = False
            result.error = "; ".join(scan.errors)
            return result

        if policy.action == RetentionAction.ANONYMIZE:
            if scan.items:
                logger.warning(
                    "Anonymize is not implemented; expired items kept",
                    policy_id=policy.id,
                    data_type=data_type,
                    items=len(scan.items),
                )
                result.success = False
                result.error = ANONYMIZE_NOT_IMPLEMENTED
            return result

        self._transition(policy, RunState.DISPOSING)
        today = now.date().isoformat()
        for item in scan.items:
            try:
                size = self._dispose(item, policy.action, data_type, today)
            except OSError as e:
                logger.warning(
                    "Retention disposal failed",
                    policy_id=policy.id,
                    path=str(item),
                    error=str(e),
                )
                continue
            result.items_processed += 1
            result.bytes_freed += size

        return result

    # ── Scanning ──

    def find_expired_items(
        self,
        location: Path,
        cutoff: datetime,
        data_type: str,
        policy: Optional[RetentionPolicy] = None,
    ) -> ScanResult:
        """
        Expired items at a location.

        A single file is judged by its modification time. Directory entries
        (regular files, not recursive) of log/event data types are judged by
        a YYYY-MM-DD date in their name when there is one.
        """
        scan = ScanResult(location=location)

        try:
            if location.is_file():
                candidates = [(location, False)]
            elif location.is_dir():
                candidates = [(entry, True) for entry in sorted(location.iterdir())]
            else:
                return scan
        except OSError as e:
            scan.errors.append(f"{location}: {e}")
            return scan

        for path, from_listing in candidates:
            try:
                if not path.is_file():
                    continue
                if not self._matches_classification(policy, data_type, path):
                    continue
                if is_expired(path, cutoff, data_type, from_listing):
                    scan.items.append(path)
            except OSError as e:
                scan.errors.append(f"{path}: {e}")

        return scan

    def _matches_classification(
        self,
        policy: Optional[RetentionPolicy],
        data_type: str,
        path: Path,
    ) -> bool:
        if policy is None or not policy.classifications or self._classifier is None:
            return True
        return self._classifier(data_type, path) in policy.classifications

    # ── Disposal ──

    def _dispose(self, item: Path, action: RetentionAction, data_type: str, today: str) -> int:
        """Dispose of one item; returns its size. Safe to repeat."""
        size = item.stat().st_size

        if action == RetentionAction.ARCHIVE:
            target = self.archive_path_for(item, data_type, today)
            ensure_private_dir(target.parent)
            shutil.copy2(item, target)

        # Only reached after a successful copy when archiving
        item.unlink(missing_ok=True)
        return size

    def archive_path_for(self, item: Path, data_type: str, day: str) -> Path:
        """{archive_root}/{data_type}/{YYYY-MM-DD}/{filename}"""
        return self._archive_root / data_type / day / item.name

    # ── Ledger / status ──

    def _log_execution(self, policy: RetentionPolicy, results: List[RetentionResult]) -> None:
        items = sum(r.items_processed for r in results)
        freed = sum(r.bytes_freed for r in results)
        all_ok = all(r.success for r in results)

        self._ledger.append(
            EventCategory.RETENTION,
            f"retention_{policy.action.value}",
            {"type": ActorType.SYSTEM},
            Outcome.SUCCESS if all_ok else Outcome.FAILURE,
            resource=Resource(type="retention_policy", id=policy.id),
            details={
                "policy_id": policy.id,
                "policy_name": policy.name,
                "items_processed": items,
                "bytes_freed": freed,
                "data_types": list(policy.data_types),
                "results": [
                    {
                        "data_type": r.data_type,
                        "items_expired": r.items_expired,
                        "items_processed": r.items_processed,
                        "bytes_freed": r.bytes_freed,
                        "success": r.success,
                    }
                    for r in results
                ],
            },
        )
        logger.info(
            "Retention policy executed",
            policy_id=policy.id,
            action=policy.action.value,
            items_processed=items,
            bytes_freed=freed,
        )

    def _transition(self, policy: RetentionPolicy, state: RunState) -> None:
        logger.debug("Retention policy state", policy_id=policy.id, state=state.value)

    def get_status(self) -> Dict[str, Any]:
        """Policy count, last runs, and policies ordered by time until due."""
        now = self._clock()
        policies = self._policies.list()
        last_runs = self._run_log.load()

        next_due = [
            {
                "policy_id": p.id,
                "policy_name": p.name,
                "schedule": p.schedule.value,
                "due_in_days": round(due_in_days(p.schedule, last_runs.get(p.id), now), 1),
            }
            for p in policies
        ]
        next_due.sort(key=lambda entry: entry["due_in_days"])

        return {
            "total_policies": len(policies),
            "builtin_policies": sum(1 for p in policies if self._policies.is_builtin(p.id)),
            "last_runs": {pid: ts.isoformat() for pid, ts in last_runs.items()},
            "next_due": next_due,
        }
