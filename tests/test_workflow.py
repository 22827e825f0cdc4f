"""
Tests for Workflow -- baseline recording and manual visibility
"""

import pytest

from branchless.core.errors import StorageError, UserAbort
from branchless.core.events import EventType
from branchless.services.repository import RefUpdate
from tests.factories import branch


class TestBaseline:
    """record_baseline / ref_sync_events."""

    def test_records_unlogged_refs_once(self, stack_env):
        f = stack_env
        f.store.refs[branch("topic")] = f.b
        assert f.workflow.record_baseline("sync") == 1
        assert f.workflow.record_baseline("sync") == 0

    def test_deleted_ref_recorded(self, stack_env):
        f = stack_env
        del f.store.refs[branch("feature")]
        events = f.workflow.ref_sync_events()
        assert [(e.type, e.ref_name) for e in events] == [(EventType.REF_DELETED, branch("feature"))]

    def test_untracked_namespace_skipped(self, stack_env):
        f = stack_env
        f.store.refs["refs/tags/v1"] = f.a
        assert f.workflow.ref_sync_events() == []


class TestVisibility:
    """hide / unhide."""

    def test_hide_abandoned_commit(self, stack_env):
        f = stack_env
        f.set_ref("feature", None)
        f.checkout(f.root)
        assert f.workflow.hide(f.c) == [f.c]
        labels = f.labels()
        assert labels[f.c] == "hidden"
        assert labels[f.b] == "abandoned"

    def test_refs_beat_hide_markers(self, stack_env):
        f = stack_env
        f.workflow.hide(f.c)
        assert f.labels()[f.c] == "visible"

    def test_hide_is_idempotent(self, stack_env):
        f = stack_env
        f.workflow.hide(f.b)
        assert f.workflow.hide(f.b) == []

    def test_recursive_hide_and_unhide(self, stack_env):
        f = stack_env
        assert f.workflow.hide(f.a, recursive=True) == [f.a, f.b, f.c]
        assert f.workflow.unhide(f.a) == [f.a]
        assert f.workflow.unhide(f.a, recursive=True) == [f.b, f.c]

    def test_resolve_branch_name(self, stack_env):
        assert stack_env.workflow.resolve("feature") == stack_env.c


class TestObjectStoreMutations:
    """Mutations through the store record their own events."""

    def test_checkout_records_head(self, stack_env):
        f = stack_env
        cursor = f.log.current_cursor()
        f.store.checkout(f.a)
        event = f.log.read_all()[-1]
        assert event.cursor == cursor + 1
        assert (event.ref_name, event.old_oid, event.new_oid) == ("HEAD", f.c, f.a)

    def test_failed_write_records_nothing(self, stack_env):
        f = stack_env
        f.store.fail_writes = True
        cursor = f.log.current_cursor()
        with pytest.raises(StorageError):
            f.store.checkout(f.a)
        assert f.log.current_cursor() == cursor
        assert f.head == f.c

    def test_restore_refs_records_nothing(self, stack_env):
        f = stack_env
        cursor = f.log.current_cursor()
        f.store.restore_refs([RefUpdate("HEAD", f.c, f.a), RefUpdate("HEAD", f.a, f.a)])
        assert f.head == f.a
        assert f.log.current_cursor() == cursor

    def test_lock_is_exclusive(self, stack_env):
        with stack_env.store.lock():
            with pytest.raises(UserAbort, match="holds the lock"):
                with stack_env.store.lock():
                    pass
