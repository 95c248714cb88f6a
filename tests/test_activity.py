"""Tests for stab.activity ledger, engagement tracker, log and history."""

import pytest

from stab.activity.ledger import ActivityLedger
from stab.activity.log import ActivityLog, ClosedHistory
from stab.activity.tracker import EngagementTracker
from stab.core.types import EvictionReason, Resource


class TestActivityLedger:
    def test_touch_and_last_active(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch("1")
        assert ledger.last_active("1") == clock.now

    def test_unknown_uses_fallback(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        assert ledger.last_active("nope", 42) == 42
        assert ledger.last_active("nope") is None

    def test_forget(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch("1")
        assert ledger.forget("1") is True
        assert "1" not in ledger
        assert ledger.forget("1") is False

    def test_persists_across_instances(self, storage, clock):
        ActivityLedger(storage.local, clock=clock).touch("7", at=123)
        assert ActivityLedger(storage.local, clock=clock).last_active("7") == 123

    def test_older_timestamp_never_wins(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch("1", at=200)
        ledger.touch("1", at=100)
        assert ledger.last_active("1") == 200

    def test_reconcile_seeds_missing(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch("a", at=5)
        seeded = ledger.reconcile(["a", "b", "c"])
        assert seeded == ["b", "c"]
        assert ledger.last_active("a") == 5
        assert ledger.last_active("b") == clock.now
        assert ActivityLedger(storage.local).last_active("c") == clock.now

    def test_reconcile_noop_when_complete(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch("a")
        assert ledger.reconcile(["a"]) == []

    def test_rebuild_after_lost_store(self, storage, clock, config):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch("a", at=1)
        config.local_path.unlink()
        ledger.reload()
        assert len(ledger) == 0
        ledger.reconcile(["a"])
        assert ledger.last_active("a") == clock.now

    def test_int_ids_are_normalised(self, storage, clock):
        ledger = ActivityLedger(storage.local, clock=clock)
        ledger.touch(12, at=9)
        assert ledger.last_active("12") == 9


class TestEngagementTracker:
    def test_first_event_sets_focus_only(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        change = tracker.focus_changed("a")
        assert change.previous is None
        assert not change.engagement_updated
        assert tracker.focus() == {"id": "a", "since": clock.now}
        assert tracker.engagements() == {}

    def test_sub_threshold_dwell_updates_engagement_only(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        tracker.focus_changed("a", at=0)
        change = tracker.focus_changed("b", at=2999)
        assert change.engagement_updated
        assert not change.relationship_updated
        record = tracker.engagement("a")
        assert record.seconds == pytest.approx(2.999)
        assert record.visits == 1
        assert tracker.relationships() == []

    def test_threshold_dwell_creates_relationship(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        tracker.focus_changed("b", at=0)
        tracker.focus_changed("a", at=3000)
        edges = tracker.relationships()
        assert len(edges) == 1
        edge = edges[0]
        assert (edge.a, edge.b) == ("a", "b")
        assert edge.count == 1
        assert edge.total_dwell_seconds == pytest.approx(3.0)

    def test_pair_is_unordered(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        tracker.focus_changed("a", at=0)
        tracker.focus_changed("b", at=10_000)
        tracker.focus_changed("a", at=14_000)
        edges = tracker.relationships()
        assert len(edges) == 1
        assert edges[0].count == 2
        assert edges[0].total_dwell_seconds == pytest.approx(14.0)
        assert edges[0].average_dwell_seconds == pytest.approx(7.0)

    def test_self_transition_counts_engagement_not_relationship(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        tracker.focus_changed("a", at=0)
        tracker.focus_changed("a", at=60_000)
        assert tracker.engagement("a").visits == 1
        assert tracker.engagement("a").seconds == pytest.approx(60.0)
        assert tracker.relationships() == []

    def test_replayed_event_is_not_double_counted(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        tracker.focus_changed("a", at=0)
        tracker.focus_changed("b", at=5000)
        before = (tracker.engagements(), tracker.relationships())
        change = tracker.focus_changed("b", at=5000)
        assert change.replay
        assert (tracker.engagements(), tracker.relationships()) == before

    def test_focus_survives_restart(self, storage, clock):
        EngagementTracker(storage.local, clock=clock).focus_changed("a", at=0)
        restarted = EngagementTracker(storage.local, clock=clock)
        restarted.focus_changed("b", at=8000)
        assert restarted.engagement("a").seconds == pytest.approx(8.0)
        assert restarted.relationships()[0].count == 1

    def test_engagement_is_monotonic(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        tracker.focus_changed("a", at=1000)
        tracker.focus_changed("b", at=500)  # out of order: dwell clamped
        record = tracker.engagement("a")
        assert record.seconds == 0
        assert record.visits == 1

    def test_top_relationships_ranking_and_filtering(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        t = 0
        # a-b: 5 switches, 47 s total (strength 47)
        # a-c: 2 switches of 30 s (strength 60)
        # b-d: 5 switches but d is closed; c-e: a single switch
        for src, dst, dwell in [
            ("a", "b", 4000), ("b", "a", 4000), ("a", "b", 4000),
            ("b", "a", 30_000), ("a", "c", 30_000), ("c", "a", 30_000),
            ("a", "b", 5000), ("b", "d", 5000), ("d", "b", 5000),
            ("b", "d", 5000), ("d", "b", 5000), ("b", "d", 5000),
            ("d", "c", 5000), ("c", "e", 5000),
        ]:
            tracker.focus_changed(src, at=t)
            t += dwell
            tracker.focus_changed(dst, at=t)
        top = tracker.top_relationships(["a", "b", "c", "e"])
        keys = [(e.a, e.b) for e in top]
        assert ("b", "d") not in keys
        assert ("c", "e") not in keys
        assert keys.index(("a", "c")) < keys.index(("a", "b"))

    def test_top_relationships_limit(self, storage, clock):
        tracker = EngagementTracker(storage.local, clock=clock)
        t = 0
        ids = [str(i) for i in range(6)]
        for _ in range(2):
            for rid in ids:
                tracker.focus_changed(rid, at=t)
                t += 4000
        assert len(tracker.top_relationships(ids, limit=2)) == 2


class TestActivityLog:
    def test_newest_first(self, storage, clock):
        activity = ActivityLog(storage.local, clock=clock)
        activity.append("one")
        clock.advance(1)
        activity.append("two")
        assert [e.message for e in activity.entries()] == ["two", "one"]

    def test_truncates_to_twenty(self, storage, clock):
        activity = ActivityLog(storage.local, clock=clock)
        for i in range(30):
            clock.advance(1)
            activity.append(f"event {i}")
        entries = activity.entries()
        assert len(entries) == 20
        assert entries[0].message == "event 29"
        assert entries[-1].message == "event 10"

    def test_mirrors_to_logger(self, storage, clock, caplog):
        with caplog.at_level("INFO", logger="stab"):
            ActivityLog(storage.local, clock=clock).append("Closed 2 idle tab(s)")
        assert "[Stab] Closed 2 idle tab(s)" in caplog.text

    def test_clear_removes_key(self, storage, clock):
        activity = ActivityLog(storage.local, clock=clock)
        activity.append("one")
        activity.clear()
        assert activity.entries() == []
        assert "logs" not in storage.local.get()


class TestClosedHistory:
    def test_record_uses_url_when_untitled(self, storage, clock):
        history = ClosedHistory(storage.local, clock=clock)
        history.record([Resource(id="1", url="https://x.test/")], EvictionReason.IDLE)
        entry = history.entries()[0]
        assert entry.title == "https://x.test/"
        assert entry.reason is EvictionReason.IDLE
        assert entry.closed_at == clock.now

    def test_truncates_to_hundred(self, storage, clock):
        history = ClosedHistory(storage.local, clock=clock)
        for i in range(150):
            clock.advance(1)
            history.record([Resource(id=str(i), url=f"https://x.test/{i}")], EvictionReason.DUPLICATE)
        entries = history.entries()
        assert len(entries) == 100
        assert entries[0].url == "https://x.test/149"
        assert entries[-1].url == "https://x.test/50"

    def test_clear(self, storage, clock):
        history = ClosedHistory(storage.local, clock=clock)
        history.record([Resource(id="1", url="u")], EvictionReason.MEMORY)
        history.clear()
        assert history.entries() == []
