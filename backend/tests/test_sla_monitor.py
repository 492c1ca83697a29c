"""
Tests for the SLA Monitor — 30-minute removal rule.

Covers:
  - Threshold boundary (exactly 30m compliant, 30m + 1s violation)
  - Resolved vs pending branches
  - Most recent removal wins
  - Half-up rounding of delay minutes
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from compliance.models import AuditEntry, SLAStatus
from compliance.sla import check_compliance, latest_removals, round_half_up
from tests.conftest import NOW, make_item, removal

EXPIRY = NOW - timedelta(hours=3)

# ── Threshold Boundary ─────────────────────────────────────────────────


class TestThresholdBoundary:
    def test_removed_exactly_at_threshold_is_compliant(self):
        item = make_item(expiry=EXPIRY)
        violations = check_compliance([item], [removal(item.id, EXPIRY + timedelta(minutes=30))], now=NOW)
        assert violations == []

    def test_one_second_late_is_violation(self):
        item = make_item(expiry=EXPIRY)
        entries = [removal(item.id, EXPIRY + timedelta(minutes=30, seconds=1))]
        violations = check_compliance([item], entries, now=NOW)
        assert len(violations) == 1
        assert violations[0].status == SLAStatus.RESOLVED
        assert violations[0].delay_minutes >= 0

    def test_removed_within_threshold(self):
        item = make_item(expiry=EXPIRY)
        assert check_compliance([item], [removal(item.id, EXPIRY + timedelta(minutes=5))], now=NOW) == []

    def test_custom_threshold(self):
        item = make_item(expiry=EXPIRY)
        entries = [removal(item.id, EXPIRY + timedelta(minutes=20))]
        violations = check_compliance([item], entries, threshold_minutes=10, now=NOW)
        assert violations[0].delay_minutes == 10


# ── Resolved Branch ───────────────────────────────────────────────────


class TestResolved:
    def test_delay_minutes_over_threshold(self):
        item = make_item(expiry=EXPIRY)
        entries = [removal(item.id, EXPIRY + timedelta(minutes=95))]
        violation = check_compliance([item], entries, now=NOW)[0]
        assert violation.delay_minutes == 65
        assert violation.removed_at == EXPIRY + timedelta(minutes=95)
        assert violation.expired_at == EXPIRY

    def test_most_recent_removal_used(self):
        item = make_item(expiry=EXPIRY)
        entries = [
            removal(item.id, EXPIRY + timedelta(minutes=10)),
            removal(item.id, EXPIRY + timedelta(minutes=100)),
        ]
        violation = check_compliance([item], entries, now=NOW)[0]
        assert violation.delay_minutes == 70

    def test_non_removal_actions_ignored(self):
        item = make_item(expiry=EXPIRY)
        entries = [AuditEntry(item_id=item.id, action="edited", timestamp=EXPIRY + timedelta(minutes=1))]
        violation = check_compliance([item], entries, now=NOW)[0]
        assert violation.status == SLAStatus.PENDING

    def test_removed_at_on_item_used_without_audit_entry(self):
        item = make_item(expiry=EXPIRY, removed=True, removed_at=EXPIRY + timedelta(minutes=45))
        violation = check_compliance([item], [], now=NOW)[0]
        assert violation.status == SLAStatus.RESOLVED
        assert violation.delay_minutes == 15

    def test_iso_string_timestamps(self):
        item = make_item(expiry=EXPIRY.isoformat())
        entries = [AuditEntry(item_id=item.id, action="removed", timestamp=(EXPIRY + timedelta(hours=1)).isoformat())]
        assert check_compliance([item], entries, now=NOW)[0].delay_minutes == 30


# ── Pending Branch ────────────────────────────────────────────────────


class TestPending:
    def test_pending_thirty_five_minutes_past(self):
        item = make_item(expiry=NOW - timedelta(minutes=35))
        violations = check_compliance([item], [], now=NOW)
        assert len(violations) == 1
        assert violations[0].status == SLAStatus.PENDING
        assert violations[0].removed_at is None
        assert violations[0].delay_minutes == 5

    def test_pending_within_threshold(self):
        item = make_item(expiry=NOW - timedelta(minutes=29))
        assert check_compliance([item], [], now=NOW) == []

    def test_pending_delay_grows_across_ticks(self):
        item = make_item(expiry=NOW - timedelta(minutes=40))
        first = check_compliance([item], [], now=NOW)[0]
        later = check_compliance([item], [], now=NOW + timedelta(minutes=15))[0]
        assert later.delay_minutes == first.delay_minutes + 15

    def test_future_expiry_never_violates(self):
        assert check_compliance([make_item(days=2)], [], now=NOW) == []

    def test_unparseable_expiry_ignored(self):
        assert check_compliance([make_item(expiry="??")], [], now=NOW) == []


# ── Helpers ───────────────────────────────────────────────────────────


class TestHelpers:
    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2

    def test_latest_removals_keeps_max(self):
        entries = [removal("a", NOW - timedelta(hours=2)), removal("a", NOW), removal("b", NOW)]
        latest = latest_removals(entries)
        assert latest == {"a": NOW, "b": NOW}

    def test_half_minute_rounds_up(self):
        item = make_item(expiry=EXPIRY)
        entries = [removal(item.id, EXPIRY + timedelta(minutes=32, seconds=30))]
        assert check_compliance([item], entries, now=NOW)[0].delay_minutes == 3


# ── Daylight Saving ────────────────────────────────────────────────────

NEW_YORK = ZoneInfo("America/New_York")


class TestDaylightSaving:
    def test_pending_delay_across_spring_forward(self):
        # 01:50 EST is 06:50Z; 07:25Z is 35 minutes later
        now = datetime(2025, 3, 9, 7, 25, tzinfo=timezone.utc).astimezone(NEW_YORK)
        [violation] = check_compliance([make_item(expiry="2025-03-09T01:50:00")], [], now=now, tz=NEW_YORK)
        assert violation.status == SLAStatus.PENDING
        assert violation.delay_minutes == 5

    def test_pending_delay_across_fall_back(self):
        # 01:10 EDT is 05:10Z; 06:15Z reads 01:15 EST on the wall clock
        now = datetime(2025, 11, 2, 6, 15, tzinfo=timezone.utc).astimezone(NEW_YORK)
        [violation] = check_compliance([make_item(expiry="2025-11-02T01:10:00")], [], now=now, tz=NEW_YORK)
        assert violation.delay_minutes == 35

    def test_resolved_delay_across_spring_forward(self):
        item = make_item(expiry="2025-03-09T01:40:00")
        entries = [AuditEntry(item_id=item.id, action="removed", timestamp="2025-03-09T03:20:00")]
        now = datetime(2025, 3, 9, 9, 0, tzinfo=timezone.utc).astimezone(NEW_YORK)
        [violation] = check_compliance([item], entries, now=now, tz=NEW_YORK)
        assert violation.status == SLAStatus.RESOLVED
        assert violation.delay_minutes == 10
