"""
Tests for the compliance ledger.

Tests:
- Genesis and chain linkage across appends
- Tip restore on restart and across month rotation
- Redaction and IP masking before anything reaches disk
- Read filters and ordering
- Disabled ledger and write failures
- Concurrent appends from several threads
"""

import json
import shutil
import threading
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from chainward.audit.chain import GENESIS_HASH, recompute_hash
from chainward.audit.ledger import Ledger
from chainward.audit.models import EventCategory, LegalBasis, Outcome
from chainward.audit.redaction import REDACTED
from chainward.core.config import ChainwardConfig
from chainward.core.errors import LedgerWriteError


def stored_records(ledger):
    """Every stored record, oldest first."""
    records = []
    for path in ledger.store.list_segments():
        records.extend(r.data for r in ledger.store.read_lines(path).records)
    return records


class TestLedgerAppend:
    """Tests for append and hash linkage."""

    def test_first_event_links_to_genesis(self, ledger):
        """Test first event links to genesis."""
        event = ledger.append("consent", "consent_granted", {"type": "user", "id": "u-1"})

        assert event.previous_hash == GENESIS_HASH
        assert ledger.tip_hash == event.hash

    def test_events_link_to_predecessor(self, ledger):
        """Test events link to predecessor."""
        events = [ledger.append("data_access", f"view_{i}") for i in range(3)]

        assert events[1].previous_hash == events[0].hash
        assert events[2].previous_hash == events[1].hash

    def test_stored_hash_matches_recomputation(self, ledger):
        """Test stored hash matches recomputation."""
        ledger.append("data_access", "data_view", details={"rows": 3})

        record = stored_records(ledger)[0]

        assert recompute_hash(record) == record["hash"]

    def test_one_line_per_event(self, ledger):
        """Test one line per event."""
        ledger.append("consent", "consent_granted")
        ledger.append("consent", "consent_revoked")

        path = ledger.store.current_segment_path()
        lines = path.read_text().splitlines()

        assert len(lines) == 2
        assert json.loads(lines[1])["event_type"] == "consent_revoked"

    def test_default_retention_applied(self, config):
        """Test default retention applied."""
        ledger = Ledger.from_config(config)

        event = ledger.append("consent", "consent_granted")

        assert event.retention_days == config.default_retention_days

    def test_explicit_retention_kept(self, ledger):
        """Test explicit retention kept."""
        event = ledger.append("breach", "breach_detected", retention_days="indefinite")

        assert event.retention_days == "indefinite"

    def test_invalid_category_rejected(self, ledger):
        """Test invalid category rejected."""
        with pytest.raises(ValidationError):
            ledger.append("gossip", "rumour")

        assert ledger.tip_hash == GENESIS_HASH
        assert stored_records(ledger) == []

    def test_details_redacted_on_disk(self, ledger):
        """Test details redacted on disk."""
        ledger.append(
            "access_control",
            "login",
            details={"password": "hunter2", "note": "x" * 150, "method": "sso"},
        )

        details = stored_records(ledger)[0]["details"]

        assert details == {"password": REDACTED, "note": REDACTED, "method": "sso"}

    def test_actor_ip_masked_on_disk(self, ledger):
        """Test actor IP masked on disk."""
        ledger.append("access_control", "login", {"type": "user", "id": "u-1", "ip": "192.168.1.77"})

        assert stored_records(ledger)[0]["actor"]["ip"] == "192.168.1.0"

    def test_timestamp_comes_from_clock(self, config, clock):
        """Test timestamp comes from clock."""
        ledger = Ledger.from_config(config, clock=clock)

        event = ledger.append("consent", "consent_granted")

        assert event.occurred_at == clock.now


class TestLedgerTip:
    """Tests for tip restore and segment rotation."""

    def test_restart_continues_chain(self, config):
        """Test restart continues chain."""
        first = Ledger.from_config(config)
        last = first.append("consent", "consent_granted")

        reopened = Ledger.from_config(config)
        event = reopened.append("consent", "consent_revoked")

        assert reopened.tip_hash == event.hash
        assert event.previous_hash == last.hash
        assert reopened.verify_integrity().valid

    def test_month_rotation_keeps_chain(self, config, clock):
        """Test month rotation keeps chain."""
        clock.now = datetime(2026, 3, 31, 23, 59, 59, tzinfo=timezone.utc)
        ledger = Ledger.from_config(config, clock=clock)
        march = ledger.append("data_access", "data_view")

        clock.advance(timedelta(seconds=2))
        april = ledger.append("data_access", "data_view")

        names = [p.name for p in ledger.store.list_segments()]
        assert names == ["events-2026-03.jsonl", "events-2026-04.jsonl"]
        assert april.previous_hash == march.hash
        assert ledger.verify_integrity().valid

    def test_restart_in_new_month_restores_previous_month_tip(self, config, clock):
        """Test restart in new month restores previous month tip."""
        ledger = Ledger.from_config(config, clock=clock)
        last = ledger.append("consent", "consent_granted")

        clock.advance(timedelta(days=30))
        reopened = Ledger.from_config(config, clock=clock)

        assert reopened.tip_hash == last.hash
        event = reopened.append("consent", "consent_updated")
        assert event.previous_hash == last.hash

    def test_partial_last_line_ignored_on_restore(self, config):
        """Test partial last line ignored on restore."""
        ledger = Ledger.from_config(config)
        last = ledger.append("consent", "consent_granted")
        with open(ledger.store.current_segment_path(), "a") as f:
            f.write('{"id": "half-written')

        reopened = Ledger.from_config(config)

        assert reopened.tip_hash == last.hash

        event = reopened.append("consent", "consent_revoked")
        report = reopened.verify_integrity()
        assert event.previous_hash == last.hash
        assert report.valid
        assert report.total_events == 2
        assert report.skipped_lines == 1

    def test_write_failure_leaves_tip_unchanged(self, ledger):
        """Test write failure leaves tip unchanged."""
        ledger.append("consent", "consent_granted")
        tip = ledger.tip_hash
        shutil.rmtree(ledger.store.directory)
        ledger.store.directory.write_text("not a directory")

        with pytest.raises(LedgerWriteError):
            ledger.append("consent", "consent_revoked")

        assert ledger.tip_hash == tip


class TickingClock:
    """Returns each given moment once, then repeats the last."""

    def __init__(self, *moments):
        self.moments = list(moments)

    def __call__(self):
        if len(self.moments) > 1:
            return self.moments.pop(0)
        return self.moments[0]


class TestMonthBoundary:
    """Tests for appends that straddle a month change."""

    def test_event_lands_in_segment_of_its_timestamp(self, config):
        """Test that one clock reading decides both timestamp and segment."""
        clock = TickingClock(
            datetime(2026, 3, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
            datetime(2026, 4, 1, 0, 0, 0, 1, tzinfo=timezone.utc),
        )
        ledger = Ledger.from_config(config, clock=clock)

        event = ledger.append("data_access", "data_view")

        assert event.timestamp == "2026-03-31T23:59:59.999999+00:00"
        assert [p.name for p in ledger.store.list_segments()] == ["events-2026-03.jsonl"]

    def test_next_event_rotates(self, config):
        """Test that the following append moves to the new month."""
        clock = TickingClock(
            datetime(2026, 3, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
            datetime(2026, 4, 1, 0, 0, 0, 1, tzinfo=timezone.utc),
        )
        ledger = Ledger.from_config(config, clock=clock)

        ledger.append("data_access", "data_view")
        april = ledger.append("data_access", "data_view")

        assert april.occurred_at.month == 4
        assert [p.name for p in ledger.store.list_segments()] == [
            "events-2026-03.jsonl",
            "events-2026-04.jsonl",
        ]
        assert ledger.verify_integrity().valid


class TestLedgerRead:
    """Tests for read."""

    def test_newest_first(self, ledger):
        """Test newest first."""
        for i in range(3):
            ledger.append("data_access", f"view_{i}")

        assert [e.event_type for e in ledger.read()] == ["view_2", "view_1", "view_0"]

    def test_category_filter_and_limit(self, ledger):
        """Test category filter and limit."""
        for i in range(5):
            ledger.append("consent", f"consent_{i}")
            ledger.append("data_access", f"view_{i}")

        events = ledger.read(category=EventCategory.CONSENT, limit=2)

        assert [e.event_type for e in events] == ["consent_4", "consent_3"]

    def test_time_bounds_inclusive(self, config, clock):
        """Test time bounds inclusive."""
        ledger = Ledger.from_config(config, clock=clock)
        stamps = []
        for i in range(4):
            stamps.append(clock.now)
            ledger.append("data_access", f"view_{i}")
            clock.advance(timedelta(hours=1))

        events = ledger.read(start=stamps[1], end=stamps[2])

        assert [e.event_type for e in events] == ["view_2", "view_1"]

    def test_naive_bounds_treated_as_utc(self, config, clock):
        """Test naive bounds treated as UTC."""
        ledger = Ledger.from_config(config, clock=clock)
        ledger.append("data_access", "data_view")

        events = ledger.read(start=clock.now.replace(tzinfo=None))

        assert len(events) == 1

    def test_reads_across_segments(self, config, clock):
        """Test reads across segments."""
        ledger = Ledger.from_config(config, clock=clock)
        ledger.append("consent", "in_march")
        clock.advance(timedelta(days=31))
        ledger.append("consent", "in_april")

        assert [e.event_type for e in ledger.read()] == ["in_april", "in_march"]

    def test_malformed_records_skipped(self, ledger):
        """Test malformed records skipped."""
        ledger.append("consent", "consent_granted")
        with open(ledger.store.current_segment_path(), "a") as f:
            f.write('{"id": "x", "category": "consent"}\n')
            f.write("garbage\n")

        events = ledger.read()

        assert [e.event_type for e in events] == ["consent_granted"]


class TestConvenienceAppenders:
    """Tests for the typed logging helpers."""

    def test_log_consent(self, ledger):
        """Test log consent."""
        event = ledger.log_consent("granted", {"type": "user", "id": "u-1"}, ["analytics"], True)

        assert event.category == EventCategory.CONSENT
        assert event.event_type == "consent_granted"
        assert event.legal_basis == LegalBasis.CONSENT
        assert event.details["purposes"] == ["analytics"]

    def test_log_data_access_failure(self, ledger):
        """Test log data access failure."""
        event = ledger.log_data_access("view", None, "notebook", False)

        assert event.event_type == "data_view"
        assert event.outcome == Outcome.FAILURE
        assert event.resource.type == "notebook"

    def test_log_data_deletion(self, ledger):
        """Test log data deletion."""
        event = ledger.log_data_deletion({"type": "user", "id": "u-1"}, "sessions", 4, True)

        assert event.category == EventCategory.DATA_DELETION
        assert event.details["items_deleted"] == 4

    def test_log_policy_change(self, ledger):
        """Test log policy change."""
        event = ledger.log_policy_change("retention_years", 7, 10, "admin")

        assert event.category == EventCategory.POLICY_CHANGE
        assert event.actor.type.value == "admin"
        assert event.resource.id == "retention_years"
        assert event.details == {"old_value": 7, "new_value": 10}

    def test_log_breach(self, ledger):
        """Test log breach."""
        event = ledger.log_breach("unauthorized_access", "high", True, {"records": 12})

        assert event.category == EventCategory.BREACH
        assert event.details["notification_sent"] is True
        assert event.details["severity"] == "high"

    def test_helpers_share_one_chain(self, ledger):
        """Test helpers share one chain."""
        ledger.log_access_control("login", {"type": "user", "id": "u-1"}, True)
        ledger.log_security_incident("rate_limited", "low", {"requests": 500})
        ledger.log_retention("delete", "browser_cache", 3)
        ledger.log_data_export({"type": "user", "id": "u-1"}, ["notes"], True)

        report = ledger.verify_integrity()

        assert report.valid
        assert report.total_events == 4


class TestDisabledLedger:
    """Tests for a disabled ledger."""

    def test_nothing_written(self, temp_dir):
        """Test nothing written."""
        config = ChainwardConfig(base_dir=temp_dir, enabled=False, sync_on_write=False)
        ledger = Ledger.from_config(config)

        event = ledger.append("consent", "consent_granted")

        assert event.previous_hash == GENESIS_HASH
        assert not config.ledger_dir.exists()
        assert ledger.read() == []
        assert ledger.get_stats()["enabled"] is False

    def test_verify_reports_empty_valid(self, temp_dir):
        """Test verify reports empty valid."""
        ledger = Ledger.from_config(ChainwardConfig(base_dir=temp_dir, enabled=False))

        report = ledger.verify_integrity()

        assert report.valid
        assert report.total_events == 0


class TestConcurrency:
    """Tests for thread-safe appends."""

    def test_concurrent_appends_form_one_chain(self, ledger):
        """Test concurrent appends form one chain."""
        def worker(n):
            for i in range(25):
                ledger.append("data_processing", f"job_{n}_{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        report = ledger.verify_integrity()

        assert report.valid
        assert report.total_events == 100


class TestStats:
    """Tests for get_stats."""

    def test_counts_by_category(self, ledger):
        """Test counts by category."""
        ledger.append("consent", "consent_granted")
        ledger.append("consent", "consent_revoked")
        ledger.append("breach", "breach_detected")

        stats = ledger.get_stats()

        assert stats["total_events"] == 3
        assert stats["segment_count"] == 1
        assert stats["events_by_category"]["consent"] == 2
        assert stats["events_by_category"]["breach"] == 1
        assert stats["appended_this_session"] == 3
        assert stats["tip_hash"] == ledger.tip_hash[:16]
