"""
Segment Store

Monthly append-only JSONL files holding contiguous slices of the ledger.

Format: one JSON object per line, files named <prefix>-<YYYY>-<MM>.jsonl.
Filenames embed the period, so lexicographic order is chronological order.

Segments are only ever opened for append. Readers skip malformed lines
(including a partially written final line) one at a time, so one corrupted
line never hides the rest of a segment.
"""

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ..core.errors import LedgerWriteError
from ..core.fs import OWNER_READ_WRITE, ensure_private_dir

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SegmentRecord:
    """One parsed line of a segment."""

    line_number: int
    data: Dict[str, Any]


@dataclass
class SkippedLine:
    """A line that could not be parsed, with the reason."""

    line_number: int
    error: str


@dataclass
class SegmentReadResult:
    """Parsed records of a segment plus the lines that were skipped."""

    path: Path
    records: List[SegmentRecord] = field(default_factory=list)
    skipped: List[SkippedLine] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped


class SegmentStore:
    """
    On-disk segment management for one ledger directory.

    Usage:
        store = SegmentStore("/var/lib/chainward/compliance")
        store.append(store.current_segment_path(), '{"id": "..."}')
        for path in store.list_segments():
            result = store.read_lines(path)
    """

    def __init__(
        self,
        directory,
        prefix: str = "events",
        sync_on_write: bool = True,
        clock: Optional[Clock] = None,
    ):
        self.directory = Path(directory)
        self.prefix = prefix
        self.sync_on_write = sync_on_write
        self.clock: Clock = clock or utc_now
        self._segment_pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{4}})-(\d{{2}})\.jsonl$")

    def ensure_directory(self) -> None:
        """Create the segment directory with owner-only access."""
        try:
            ensure_private_dir(self.directory)
        except OSError as e:
            raise LedgerWriteError(str(self.directory), str(e)) from e

    def segment_path_for(self, moment: datetime) -> Path:
        moment = moment.astimezone(timezone.utc) if moment.tzinfo else moment
        return self.directory / f"{self.prefix}-{moment.year:04d}-{moment.month:02d}.jsonl"

    def current_segment_path(self) -> Path:
        """Segment for the current month; recomputed on every call."""
        return self.segment_path_for(self.clock())

    def append(self, path: Path, line: str) -> int:
        """
        Append one line (a newline is added) and flush it to disk.

        Returns the number of bytes written.

        Raises:
            LedgerWriteError: directory or file cannot be created or written
        """
        if "\n" in line:
            raise ValueError("segment lines must not contain newlines")

        path = Path(path)
        data = (line + "\n").encode("utf-8")
        try:
            ensure_private_dir(path.parent)
            if self._has_torn_tail(path):
                # Terminate a partially written line so it stays one bad line
                data = b"\n" + data
            fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, OWNER_READ_WRITE)
            try:
                written = 0
                while written < len(data):
                    written += os.write(fd, data[written:])
                if self.sync_on_write:
                    os.fsync(fd)
            finally:
                os.close(fd)
        except OSError as e:
            logger.error("Segment append failed", path=str(path), error=str(e))
            raise LedgerWriteError(str(path), str(e)) from e

        return len(data)

    @staticmethod
    def _has_torn_tail(path: Path) -> bool:
        try:
            with open(path, "rb") as f:
                f.seek(0, os.SEEK_END)
                if f.tell() == 0:
                    return False
                f.seek(-1, os.SEEK_END)
                return f.read(1) != b"\n"
        except FileNotFoundError:
            return False

    def list_segments(self, newest_first: bool = False) -> List[Path]:
        """Segment files in chronological order (or newest first)."""
        if not self.directory.is_dir():
            return []

        segments = sorted(
            p for p in self.directory.iterdir()
            if self._segment_pattern.match(p.name) and p.is_file()
        )
        if newest_first:
            segments.reverse()
        return segments

    def read_lines(self, path: Path) -> SegmentReadResult:
        """Parse every line of a segment, skipping malformed ones."""
        result = SegmentReadResult(path=Path(path))

        try:
            raw = Path(path).read_bytes()
        except FileNotFoundError:
            return result
        except OSError as e:
            logger.warning("Cannot read segment", path=str(path), error=str(e))
            result.skipped.append(SkippedLine(line_number=0, error=str(e)))
            return result

        for line_number, raw_line in enumerate(raw.split(b"\n"), 1):
            if not raw_line.strip():
                continue
            try:
                data = json.loads(raw_line.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                result.skipped.append(SkippedLine(line_number=line_number, error=str(e)))
                continue
            if not isinstance(data, dict):
                result.skipped.append(
                    SkippedLine(line_number=line_number, error="line is not a JSON object")
                )
                continue
            result.records.append(SegmentRecord(line_number=line_number, data=data))

        if result.skipped:
            logger.warning(
                "Skipped malformed segment lines",
                path=str(path),
                skipped=len(result.skipped),
            )
        return result

    def last_record(self) -> Optional[Dict[str, Any]]:
        """Last parseable record of the most recent non-empty segment."""
        for path in self.list_segments(newest_first=True):
            result = self.read_lines(path)
            if result.records:
                return result.records[-1].data
        return None
