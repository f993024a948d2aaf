"""
Storage location resolution for retention.

The engine never hardcodes the host application's directory layout: it asks
a resolver for the path of each logical data type. DirectoryLocationResolver
maps data types to subdirectories of one data directory.
"""

from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from .policies import DataClassification

LocationResolver = Callable[[str], Optional[Path]]

# (data_type, item path) -> classification, or None when unknown
ItemClassifier = Callable[[str, Path], Optional[DataClassification]]

DEFAULT_LOCATIONS: Dict[str, str] = {
    "audit_logs": "audit",
    "compliance_events": "compliance",
    "security_logs": "security",
    "consent_records": "consent",
    "session_state": "sessions",
    "browser_cache": "browser_cache",
    "browser_local_storage": "browser_state",
    "error_logs": "logs",
}


class DirectoryLocationResolver:
    """Resolve data types to paths relative to a base directory."""

    def __init__(self, base_dir, locations: Optional[Mapping[str, str]] = None):
        self.base_dir = Path(base_dir)
        self.locations = dict(DEFAULT_LOCATIONS if locations is None else locations)

    def __call__(self, data_type: str) -> Optional[Path]:
        relative = self.locations.get(data_type)
        if relative is None:
            return None
        return self.base_dir / relative
