"""
Integrity Verifier

Replays every segment oldest to newest and recomputes the hash chain.

The verifier describes damage, it does not stop at it: a broken event is
recorded and the scan continues, so the report shows how much of the chain
is still intact. Hashes are recomputed from the raw stored record, not from
a re-parsed model, so any change to any stored field is visible.
"""

from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from .chain import GENESIS_HASH, recompute_hash
from .segments import SegmentStore


class BrokenLink(BaseModel):
    """Where and why one event failed verification."""

    event_id: Optional[str] = None
    segment: str
    line: int
    error: str


class IntegrityReport(BaseModel):
    """Outcome of a full chain replay."""

    valid: bool
    total_events: int
    valid_events: int
    last_valid_event_id: Optional[str] = None
    first_invalid_event_id: Optional[str] = None
    invalid_event_ids: List[str] = Field(default_factory=list)
    broken_links: List[BrokenLink] = Field(default_factory=list)
    skipped_lines: int = 0
    segments_checked: int = 0


class IntegrityVerifier:
    """
    Read-only chain replay over a segment store.

    Usage:
        report = IntegrityVerifier(store).verify()
        if not report.valid:
            print(report.first_invalid_event_id)
    """

    def __init__(self, store: SegmentStore):
        self._store = store

    def verify(self) -> IntegrityReport:
        total_events = 0
        valid_events = 0
        skipped_lines = 0
        expected_previous_hash = GENESIS_HASH
        last_valid_event_id: Optional[str] = None
        first_invalid_event_id: Optional[str] = None
        first_invalid_seen = False
        invalid_event_ids: List[str] = []
        broken_links: List[BrokenLink] = []

        segments: List[Path] = self._store.list_segments()

        for path in segments:
            result = self._store.read_lines(path)
            skipped_lines += len(result.skipped)

            for record in result.records:
                total_events += 1
                data = record.data
                event_id = data.get("id")
                event_id = str(event_id) if event_id is not None else None

                error = None
                if data.get("previous_hash") != expected_previous_hash:
                    error = "previous_hash mismatch"
                elif recompute_hash(data) != data.get("hash"):
                    error = "hash mismatch (tampering detected)"

                if error is None:
                    valid_events += 1
                    expected_previous_hash = data["hash"]
                    last_valid_event_id = event_id
                    continue

                if not first_invalid_seen:
                    first_invalid_seen = True
                    first_invalid_event_id = event_id
                if event_id is not None:
                    invalid_event_ids.append(event_id)
                broken_links.append(
                    BrokenLink(
                        event_id=event_id,
                        segment=path.name,
                        line=record.line_number,
                        error=error,
                    )
                )

        report = IntegrityReport(
            valid=valid_events == total_events,
            total_events=total_events,
            valid_events=valid_events,
            last_valid_event_id=last_valid_event_id,
            first_invalid_event_id=first_invalid_event_id,
            invalid_event_ids=invalid_event_ids,
            broken_links=broken_links,
            skipped_lines=skipped_lines,
            segments_checked=len(segments),
        )

        if report.valid:
            logger.info(
                "Ledger chain verified",
                total_events=total_events,
                segments=len(segments),
            )
        else:
            logger.warning(
                "Ledger chain broken",
                total_events=total_events,
                valid_events=valid_events,
                first_invalid_event_id=first_invalid_event_id,
            )
        return report
