"""
Tests for Event Replay -- folding a log prefix into state

These tests validate:
- Ref snapshots follow ref events in cursor order
- Hide/unhide markers toggle
- Rewrite chains resolve to their latest target
- Out-of-order events are refused
"""

import pytest

from branchless.core.events import Event, EventType
from branchless.core.replay import EventReplayer

A = "a" * 40
B = "b" * 40
C = "c" * 40
D = "d" * 40


def make_events(*specs):
    """(type, fields) pairs -> Events with cursors 1..n"""
    return [
        Event(cursor=i, type=kind, timestamp="t", **fields)
        for i, (kind, fields) in enumerate(specs, start=1)
    ]


class TestRefs:
    """Ref snapshot at the end of the prefix."""

    def test_updates_and_deletes(self):
        history = EventReplayer.replay(make_events(
            (EventType.REF_UPDATED, {"ref_name": "refs/heads/main", "new_oid": A}),
            (EventType.REF_UPDATED, {"ref_name": "HEAD", "new_oid": A}),
            (EventType.REF_UPDATED, {"ref_name": "refs/heads/main", "old_oid": A, "new_oid": B}),
            (EventType.REF_DELETED, {"ref_name": "HEAD", "old_oid": A}),
        ))
        assert dict(history.ref_snapshot()) == {"refs/heads/main": B}
        assert history.head is None
        assert history.ref_targets_ever == {A, B}

    def test_mentioned_keeps_first_appearance_order(self):
        history = EventReplayer.replay(make_events(
            (EventType.COMMIT_CREATED, {"new_oid": B}),
            (EventType.COMMIT_CREATED, {"new_oid": A}),
            (EventType.COMMIT_REWRITTEN, {"old_oid": B, "new_oid": C}),
        ))
        assert history.mentioned == [B, A, C]
        assert history.last_event[B].cursor == 3

    def test_cursor_must_increase(self):
        history = EventReplayer()
        event = make_events((EventType.COMMIT_CREATED, {"new_oid": A}))[0]
        history.apply(event)
        with pytest.raises(ValueError):
            history.apply(event)


class TestVisibilityOverrides:
    """Last marker wins."""

    def test_hide_then_unhide(self):
        history = EventReplayer.replay(make_events(
            (EventType.COMMIT_HIDDEN, {"new_oid": A}),
            (EventType.COMMIT_HIDDEN, {"new_oid": B}),
            (EventType.COMMIT_UNHIDDEN, {"new_oid": A}),
        ))
        assert history.is_manually_hidden(B)
        assert not history.is_manually_hidden(A)


class TestRewrites:
    """Rewrite links and chains."""

    def test_chain_resolves_to_latest(self):
        history = EventReplayer.replay(make_events(
            (EventType.COMMIT_REWRITTEN, {"old_oid": A, "new_oid": B}),
            (EventType.COMMIT_REWRITTEN, {"old_oid": B, "new_oid": C}),
        ))
        assert history.rewrite_target(A) == C
        assert history.rewrite_target(B) == C
        assert history.rewrite_target(C) is None
        assert history.is_rewritten(A)

    def test_later_rewrite_of_same_commit_wins(self):
        history = EventReplayer.replay(make_events(
            (EventType.COMMIT_REWRITTEN, {"old_oid": A, "new_oid": B}),
            (EventType.COMMIT_REWRITTEN, {"old_oid": A, "new_oid": D}),
        ))
        assert history.rewrite_target(A) == D

    def test_cycle_terminates(self):
        history = EventReplayer.replay(make_events(
            (EventType.COMMIT_REWRITTEN, {"old_oid": A, "new_oid": B}),
            (EventType.COMMIT_REWRITTEN, {"old_oid": B, "new_oid": A}),
        ))
        assert history.rewrite_target(A) == B
        assert history.rewrite_target(B) == A
