"""
Retention Policy Store

Durable policy set: the built-in policies (always present, read-only)
merged with a persisted list of user-added policies. Built-ins win on id
collision and are never written to disk.

Last-run bookkeeping lives in a separate file so editing a policy never
resets its schedule.

Files:
    retention-policies.json  {"version", "last_updated", "policies": [...]}
    retention-last-run.json  {"runs": {"<policy_id>": "<ISO timestamp>"}}
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from ..audit.models import parse_timestamp
from ..core.errors import PolicyError
from ..core.fs import write_json_atomic
from .policies import BUILTIN_POLICIES, RetentionPolicy

STORE_VERSION = "1.0.0"


def _read_json(path: Path) -> Optional[Any]:
    """Parsed JSON document, or None when missing or unreadable."""
    if not path.exists():
        return None
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable retention file", path=str(path), error=str(e))
        return None


class RetentionPolicyStore:
    """
    Built-in plus user-defined retention policies.

    Usage:
        store = RetentionPolicyStore(config.policies_file)
        policy = store.add({
            "name": "Temp exports",
            "data_types": ["exports"],
            "retention_days": 14,
            "action": "delete",
            "schedule": "daily",
        })
        store.update(policy.id, {"retention_days": 30})
        store.remove(policy.id)
    """

    def __init__(
        self,
        policies_file,
        builtins: Optional[List[RetentionPolicy]] = None,
    ):
        self._file = Path(policies_file)
        self._builtins: Dict[str, RetentionPolicy] = {
            p.id: p for p in (BUILTIN_POLICIES if builtins is None else builtins)
        }
        self._user: Dict[str, RetentionPolicy] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._file

    def is_builtin(self, policy_id: str) -> bool:
        return policy_id in self._builtins

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True

        data = _read_json(self._file)
        if data is None:
            return

        entries = data.get("policies") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            logger.warning("Retention policy file has no policy list", path=str(self._file))
            return

        for entry in entries:
            try:
                policy = RetentionPolicy.model_validate(entry)
            except ValidationError as e:
                logger.warning("Skipping invalid stored policy", error=str(e))
                continue
            if policy.id in self._builtins:
                logger.warning("Stored policy shadows a built-in; ignored", policy_id=policy.id)
                continue
            self._user[policy.id] = policy

    def _save(self) -> None:
        data = {
            "version": STORE_VERSION,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "policies": [p.to_record() for p in self._user.values()],
        }
        write_json_atomic(self._file, data)

    def _new_id(self) -> str:
        while True:
            policy_id = f"policy_{uuid4().hex[:8]}"
            if policy_id not in self._builtins and policy_id not in self._user:
                return policy_id

    def list(self) -> List[RetentionPolicy]:
        """Built-ins first, then user policies in insertion order."""
        self._load()
        return list(self._builtins.values()) + list(self._user.values())

    def get(self, policy_id: str) -> Optional[RetentionPolicy]:
        self._load()
        return self._builtins.get(policy_id) or self._user.get(policy_id)

    def add(self, policy: Union[RetentionPolicy, Mapping[str, Any]]) -> RetentionPolicy:
        """
        Persist a new user policy under a freshly generated id.

        Any id in the input is ignored.

        Raises:
            PolicyError: the payload is not a valid policy
        """
        self._load()

        if isinstance(policy, RetentionPolicy):
            fields = policy.model_dump()
        else:
            fields = dict(policy)
        fields["id"] = self._new_id()

        try:
            new_policy = RetentionPolicy.model_validate(fields)
        except ValidationError as e:
            raise PolicyError(f"Invalid retention policy: {e}", e.errors()) from e

        self._user[new_policy.id] = new_policy
        self._save()

        logger.info("Retention policy added", policy_id=new_policy.id, name=new_policy.name)
        return new_policy

    def update(self, policy_id: str, updates: Mapping[str, Any]) -> Optional[RetentionPolicy]:
        """
        Apply a partial update to a user policy.

        Returns None for unknown ids and for built-in policies.

        Raises:
            PolicyError: the updated policy is not valid
        """
        self._load()

        current = self._user.get(policy_id)
        if current is None:
            return None

        fields = current.model_dump()
        fields.update({k: v for k, v in updates.items() if k != "id"})

        try:
            updated = RetentionPolicy.model_validate(fields)
        except ValidationError as e:
            raise PolicyError(f"Invalid retention policy update: {e}", e.errors()) from e

        self._user[policy_id] = updated
        self._save()

        logger.info("Retention policy updated", policy_id=policy_id)
        return updated

    def remove(self, policy_id: str) -> bool:
        """False for built-in and unknown ids."""
        self._load()

        if policy_id in self._builtins or policy_id not in self._user:
            return False

        del self._user[policy_id]
        self._save()

        logger.info("Retention policy removed", policy_id=policy_id)
        return True


class RetentionRunLog:
    """Last successful run per policy."""

    def __init__(self, last_run_file):
        self._file = Path(last_run_file)

    @property
    def path(self) -> Path:
        return self._file

    def load(self) -> Dict[str, datetime]:
        data = _read_json(self._file)
        runs = data.get("runs") if isinstance(data, dict) else None
        if not isinstance(runs, dict):
            return {}

        parsed: Dict[str, datetime] = {}
        for policy_id, stamp in runs.items():
            try:
                parsed[policy_id] = parse_timestamp(stamp)
            except (TypeError, ValueError, AttributeError):
                logger.warning("Ignoring invalid last-run timestamp", policy_id=policy_id)
        return parsed

    def last_run(self, policy_id: str) -> Optional[datetime]:
        return self.load().get(policy_id)

    def record(self, policy_id: str, when: Optional[datetime] = None) -> datetime:
        when = when or datetime.now(timezone.utc)
        runs = {pid: ts.isoformat() for pid, ts in self.load().items()}
        runs[policy_id] = when.isoformat()
        write_json_atomic(self._file, {"runs": runs})
        return when
