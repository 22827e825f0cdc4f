"""
Tests for Hook Recorder -- git hook input turned into events

These tests validate:
- Parsing of post-rewrite and reference-transaction stdin
- Each hook records its events plus any refs the log missed
- Hook script blocks are inserted and removed without touching user content
- hook-* commands stay silent when suppressed or uninitialized
"""

import pytest

from branchless.commands.hook_cmd import HookCommand
from branchless.core.events import EventType, ZERO_OID
from branchless.services.git import (
    MARKER_START, MARKER_END, SHEBANG, update_between_lines, remove_between_lines
)
from branchless.services.hooks import HookRecorder, parse_post_rewrite, parse_reference_transaction
from tests.factories import branch

OLD = "a" * 40
NEW = "b" * 40


class TestParsing:
    """Hook stdin formats."""

    def test_post_rewrite_pairs(self):
        text = f"{OLD} {NEW}\n{NEW} {OLD} extra-info\n"
        assert parse_post_rewrite(text) == [(OLD, NEW), (NEW, OLD)]

    def test_post_rewrite_skips_garbage(self):
        assert parse_post_rewrite("abc def\n\n") == []

    def test_reference_transaction_lines(self):
        text = f"{ZERO_OID} {NEW} refs/heads/topic\n{OLD} {ZERO_OID} refs/heads/gone\n"
        assert parse_reference_transaction(text) == [
            (None, NEW, "refs/heads/topic"),
            (OLD, None, "refs/heads/gone"),
        ]

    def test_reference_transaction_skips_symbolic(self):
        text = "ref:refs/heads/main ref:refs/heads/topic HEAD\n"
        assert parse_reference_transaction(text) == []


class TestRecorder:
    """HookRecorder over the in-memory store."""

    def test_post_commit(self, stack_env):
        f = stack_env
        d = f.store.make_commit("D", (f.c,))
        f.store.refs["HEAD"] = d
        f.store.refs[branch("feature")] = d

        assert HookRecorder(f.ctx).post_commit() == 3
        assert f.log.transactions()[-1].message == "post-commit"
        assert f.labels()[d] == "visible"

    def test_post_rewrite(self, stack_env):
        f = stack_env
        new = f.store.make_commit("C amended", (f.b,))
        f.store.refs["HEAD"] = new
        f.store.refs[branch("feature")] = new

        assert HookRecorder(f.ctx).post_rewrite("amend", f"{f.c} {new}\n") == 3
        rewrite = [e for e in f.log.read_all() if e.type == EventType.COMMIT_REWRITTEN][-1]
        assert rewrite.metadata["rewrite_type"] == "amend"
        assert f.labels()[f.c] == "abandoned"

    def test_post_checkout(self, stack_env):
        f = stack_env
        f.store.refs["HEAD"] = f.a
        assert HookRecorder(f.ctx).post_checkout() == 1
        assert f.snapshot().head == f.a

    def test_reference_transaction_prepared_ignored(self, stack_env):
        f = stack_env
        cursor = f.log.current_cursor()
        f.store.refs[branch("topic")] = f.b
        stdin = f"{ZERO_OID} {f.b} refs/heads/topic\n"
        assert HookRecorder(f.ctx).reference_transaction("prepared", stdin) == 0
        assert f.log.current_cursor() == cursor

    def test_reference_transaction_committed(self, stack_env):
        f = stack_env
        f.store.refs[branch("topic")] = f.b
        stdin = f"{ZERO_OID} {f.b} refs/heads/topic\n"
        recorder = HookRecorder(f.ctx)

        assert recorder.reference_transaction("committed", stdin) == 1
        assert f.snapshot().graph.refs.get(branch("topic")) == f.b
        # Already recorded
        assert recorder.reference_transaction("committed", stdin) == 0

    def test_reference_transaction_delete(self, stack_env):
        f = stack_env
        del f.store.refs[branch("feature")]
        stdin = f"{f.c} {ZERO_OID} refs/heads/feature\n"

        assert HookRecorder(f.ctx).reference_transaction("committed", stdin) == 1
        event = f.log.read_all()[-1]
        assert event.type == EventType.REF_DELETED
        assert event.old_oid == f.c

    def test_untracked_refs_ignored(self, stack_env):
        f = stack_env
        f.store.refs["refs/tags/v1"] = f.b
        stdin = f"{ZERO_OID} {f.b} refs/tags/v1\n"
        assert HookRecorder(f.ctx).reference_transaction("committed", stdin) == 0

    def test_missed_ref_changes_heal(self, stack_env):
        f = stack_env
        f.store.refs[branch("other")] = f.a
        f.store.refs[branch("topic")] = f.b
        stdin = f"{ZERO_OID} {f.b} refs/heads/topic\n"

        assert HookRecorder(f.ctx).reference_transaction("committed", stdin) == 2
        refs = f.snapshot().graph.refs
        assert refs.get(branch("other")) == f.a

    def test_pre_auto_gc_pins_unhidden(self, stack_env):
        f = stack_env
        d = f.commit("D", parent=f.root, checkout=False)
        f.workflow.hide(d)

        assert HookRecorder(f.ctx).pre_auto_gc() == 4
        assert set(f.store.pinned) == {f.root, f.a, f.b, f.c}


class TestHookScripts:
    """Marker blocks in hook files."""

    def test_new_hook_file(self):
        assert update_between_lines("", "branchless hook-post-commit\n") == (
            f"{SHEBANG}\n{MARKER_START}\nbranchless hook-post-commit\n{MARKER_END}\n"
        )

    def test_existing_content_kept(self):
        text = update_between_lines("#!/bin/sh\necho hi\n", "body\n")
        assert text.splitlines() == ["#!/bin/sh", "echo hi", MARKER_START, "body", MARKER_END]

    def test_block_replaced_in_place(self):
        first = update_between_lines("#!/bin/sh\necho hi\n", "old body\n")
        second = update_between_lines(first + "echo after\n", "new body\n")
        assert second.splitlines() == [
            "#!/bin/sh", "echo hi", MARKER_START, "new body", MARKER_END, "echo after"
        ]

    def test_remove_keeps_user_lines(self):
        text = update_between_lines("#!/bin/sh\necho hi\n", "body\n")
        assert remove_between_lines(text) == "#!/bin/sh\necho hi\n"


class TestHookCommand:
    """hook-* entry points."""

    def test_suppressed_records_nothing(self, stack_env, monkeypatch):
        f = stack_env
        monkeypatch.setenv("BRANCHLESS_SUPPRESS_HOOKS", "1")
        f.store.refs["HEAD"] = f.a
        cursor = f.log.current_cursor()

        assert f.create_command(HookCommand).run("post-checkout", []) == 0
        assert f.log.current_cursor() == cursor

    def test_uninitialized_records_nothing(self, stack_env):
        f = stack_env
        cli = f.create_cli_mock()
        cli.is_initialized = False
        f.store.refs["HEAD"] = f.a
        cursor = f.log.current_cursor()

        assert f.create_command(HookCommand, cli).run("post-checkout", []) == 0
        assert f.log.current_cursor() == cursor

    def test_reference_transaction_state_from_args(self, stack_env):
        f = stack_env
        f.store.refs[branch("topic")] = f.b
        stdin = f"{ZERO_OID} {f.b} refs/heads/topic\n"

        f.create_command(HookCommand).run("reference-transaction", ["committed"], stdin)
        assert f.snapshot().graph.refs.get(branch("topic")) == f.b

    def test_unknown_hook(self, stack_env):
        with pytest.raises(AssertionError):
            stack_env.create_command(HookCommand).run("pre-push", [])
