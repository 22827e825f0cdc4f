"""
Hook Recorder -- Turn git hook invocations into events

Installed hooks call `branchless hook-<name>`. Each invocation appends
at most one transaction: the events git's input describes, plus any ref
changes the log has not seen yet (so a missed hook heals on the next one).
"""

import logging
from typing import List, Tuple, Optional

from ..core.context import RepoContext
from ..core.workflow import Workflow
from ..core.events import (
    NewEvent, normalize_oid,
    commit_created, commit_rewritten, ref_updated, ref_deleted,
)
from .git import GitRepository, is_oid

logger = logging.getLogger(__name__)


def parse_post_rewrite(text: str) -> List[Tuple[str, str]]:
    """
    Parse post-rewrite stdin: "<old> <new> [<extra>]" per line.

    Returns (old_oid, new_oid) pairs.
    """
    pairs = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2 and is_oid(parts[0]) and is_oid(parts[1]):
            pairs.append((parts[0], parts[1]))
    return pairs


def parse_reference_transaction(text: str) -> List[Tuple[Optional[str], Optional[str], str]]:
    """
    Parse reference-transaction stdin: "<old> <new> <ref>" per line.

    Zero oids become None. Symbolic-ref values ("ref:...") are skipped.
    """
    updates = []
    for line in text.splitlines():
        parts = line.split(" ", 2)
        if len(parts) != 3:
            continue
        old, new, ref_name = parts
        if not (is_oid(old) and is_oid(new)):
            continue
        updates.append((normalize_oid(old), normalize_oid(new), ref_name.strip()))
    return updates


class HookRecorder:
    """Records what a git hook reports into the context's event log."""

    def __init__(self, ctx: RepoContext):
        self.ctx = ctx
        self.workflow = Workflow(ctx)

    @property
    def repo(self) -> GitRepository:
        return self.ctx.repo

    def _logged_refs(self):
        return self.ctx.replayer(self.ctx.event_log.current_cursor()).refs

    def _append(self, events: List[NewEvent], message: str) -> int:
        if not events:
            return 0
        self.ctx.event_log.append_all(events, message)
        logger.debug("%s: recorded %d event(s)", message, len(events))
        return len(events)

    def post_commit(self) -> int:
        head = self.repo.list_refs().get("HEAD")
        if head is None:
            return 0
        node = self.repo.read_commit(head)
        parents = node.parents if node else ()
        events = [commit_created(head, parents, source="post-commit")]
        events.extend(self.workflow.ref_sync_events())
        return self._append(events, "post-commit")

    def post_rewrite(self, rewrite_type: str, stdin: str) -> int:
        events: List[NewEvent] = [
            commit_rewritten(old, new, rewrite_type=rewrite_type)
            for old, new in parse_post_rewrite(stdin)
            if old != new
        ]
        events.extend(self.workflow.ref_sync_events())
        return self._append(events, f"post-rewrite ({rewrite_type})")

    def post_checkout(self) -> int:
        return self._append(self.workflow.ref_sync_events(), "post-checkout")

    def reference_transaction(self, state: str, stdin: str) -> int:
        """Only the "committed" state is recorded; earlier states may still abort."""
        if state != "committed":
            return 0
        logged = dict(self._logged_refs())
        hooks = self.ctx.config.hooks

        events: List[NewEvent] = []
        for old, new, ref_name in parse_reference_transaction(stdin):
            if not hooks.tracks(ref_name) or logged.get(ref_name) == new:
                continue
            if new is None:
                if logged.get(ref_name) is None and old is None:
                    continue
                events.append(ref_deleted(ref_name, old or logged.get(ref_name), source="reference-transaction"))
            else:
                events.append(ref_updated(ref_name, old, new, source="reference-transaction"))
            logged[ref_name] = new

        seen = {e.ref_name for e in events}
        events.extend(e for e in self.workflow.ref_sync_events(logged) if e.ref_name not in seen)
        return self._append(events, "reference-transaction")

    def pre_auto_gc(self) -> int:
        """Pin every commit the log mentions that is not manually hidden."""
        history = self.ctx.replayer(self.ctx.event_log.current_cursor())
        oids = [oid for oid in history.mentioned if not history.is_manually_hidden(oid)]
        pinned = self.repo.keep_alive(oids)
        logger.info("pre-auto-gc: pinned %d commit(s)", pinned)
        return pinned
