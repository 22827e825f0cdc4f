"""
Undo/Redo Engine -- Move the repository to an earlier or later log cursor

Undo never deletes events. It computes the ref and visibility changes
that make the repository look like it did at the target cursor, applies
them (which appends new events), and records the target as the view
cursor in the same transaction.

  undo(n):  target = max(0, view - n)
  redo(n):  target = min(history_head, view + n)

Steps are counted in log cursors.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple

from ..services.repository import RefUpdate, order_ref_updates
from .classify import ClassificationResult
from .context import RepoContext, RepoSnapshot
from .errors import StorageError, UserAbort
from .events import NewEvent, commit_hidden, commit_unhidden

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefMutation:
    ref_name: str
    old_oid: Optional[str]
    new_oid: Optional[str]

    @property
    def kind(self) -> str:
        if self.old_oid is None:
            return "create"
        if self.new_oid is None:
            return "delete"
        return "update"

    def to_update(self) -> RefUpdate:
        return RefUpdate(self.ref_name, self.old_oid, self.new_oid)

    def describe(self) -> str:
        old = (self.old_oid or "")[:8]
        new = (self.new_oid or "")[:8]
        if self.kind == "create":
            return f"create {self.ref_name} at {new}"
        if self.kind == "delete":
            return f"delete {self.ref_name} (was {old})"
        return f"move {self.ref_name} {old} -> {new}"


@dataclass(frozen=True)
class VisibilityMutation:
    oid: str
    hide: bool

    def to_event(self) -> NewEvent:
        if self.hide:
            return commit_hidden(self.oid, reason="undo")
        return commit_unhidden(self.oid, reason="undo")

    def describe(self) -> str:
        return f"{'hide' if self.hide else 'unhide'} {self.oid[:8]}"


@dataclass(frozen=True)
class UndoPlan:
    source_cursor: int
    target_cursor: int
    ref_mutations: Tuple[RefMutation, ...] = ()
    visibility_mutations: Tuple[VisibilityMutation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.ref_mutations and not self.visibility_mutations

    def describe(self) -> List[str]:
        lines = [f"cursor {self.source_cursor} -> {self.target_cursor}"]
        lines.extend(m.describe() for m in self.ref_mutations)
        lines.extend(m.describe() for m in self.visibility_mutations)
        return lines


@dataclass(frozen=True)
class UndoResult:
    plan: UndoPlan
    applied: bool
    cursor: int


class UndoEngine:
    """Plans and applies moves of the view cursor."""

    def __init__(self, ctx: RepoContext):
        self.ctx = ctx

    def current_cursor(self) -> int:
        return self.ctx.event_log.view_cursor()

    def undo(self, steps: int = 1, dry_run: bool = False) -> UndoResult:
        if steps < 0:
            raise UserAbort("Undo steps must not be negative")
        current = self.current_cursor()
        return self._goto(max(0, current - steps), dry_run, "undo")

    def redo(self, steps: int = 1, dry_run: bool = False) -> UndoResult:
        if steps < 0:
            raise UserAbort("Redo steps must not be negative")
        current = self.current_cursor()
        head = self.ctx.event_log.history_head()
        return self._goto(max(current, min(head, current + steps)), dry_run, "redo")

    def goto(self, cursor: int, dry_run: bool = False) -> UndoResult:
        """Jump straight to `cursor` (bounded by [0, history_head])."""
        head = self.ctx.event_log.history_head()
        return self._goto(max(0, min(head, cursor)), dry_run, f"goto {cursor}")

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    def plan(self, target: int) -> UndoPlan:
        """
        Ref and visibility changes that take the repository to `target`.

        Ref changes are computed against the repository's actual refs, so
        the compare-and-swap old values are what is really there.
        """
        source = self.current_cursor()
        target_history = self.ctx.replayer(target)
        current_overrides = self.ctx.replayer(self.ctx.event_log.current_cursor()).hidden_overrides

        actual = self.ctx.repo.list_refs()
        wanted = target_history.ref_snapshot()

        updates = []
        for name in sorted(set(actual) | set(wanted)):
            old, new = actual.get(name), wanted.get(name)
            if old == new:
                continue
            if name == "HEAD" and new is None:
                logger.warning("HEAD did not exist at cursor %d; leaving it at %s", target, old[:8])
                continue
            updates.append(RefUpdate(name, old, new))
        ref_mutations = tuple(
            RefMutation(u.ref_name, u.old_oid, u.new_oid) for u in order_ref_updates(updates)
        )

        target_overrides = target_history.hidden_overrides
        visibility_mutations = tuple(
            [VisibilityMutation(oid, hide=True) for oid in sorted(target_overrides - current_overrides)] +
            [VisibilityMutation(oid, hide=False) for oid in sorted(current_overrides - target_overrides)]
        )

        plan = UndoPlan(source, target, ref_mutations, visibility_mutations)
        logger.debug("Undo plan: %s", "; ".join(plan.describe()))
        return plan

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    def _goto(self, target: int, dry_run: bool, message: str) -> UndoResult:
        if dry_run:
            plan = self.plan(target)
            return UndoResult(plan=plan, applied=False, cursor=plan.source_cursor)

        repo = self.ctx.repo
        with repo.lock():
            # Plan under the lock: compare-and-swap old values must be current
            plan = self.plan(target)
            if target == plan.source_cursor:
                return UndoResult(plan=plan, applied=False, cursor=plan.source_cursor)
            if not repo.is_working_tree_clean():
                raise UserAbort("Working tree has uncommitted changes; commit or stash them first")

            expected = self.ctx.snapshot(target)
            with self.ctx.event_log.transaction(f"{message} to cursor {target}") as tx:
                for mutation in plan.visibility_mutations:
                    self.ctx.event_log.append_event(mutation.to_event())
                updates = [m.to_update() for m in plan.ref_mutations]
                repo.update_refs(updates, message=message)
                try:
                    self._check(expected)
                except StorageError:
                    # Events roll back with the transaction; refs must be put back by hand
                    repo.restore_refs(u.inverse() for u in updates)
                    raise
                tx.set_view_cursor(target)

        logger.info("%s: moved to cursor %d (%d ref change(s))", message, target, len(plan.ref_mutations))
        return UndoResult(plan=plan, applied=True, cursor=target)

    def _check(self, expected: RepoSnapshot):
        """
        The repository, classified against the target's history, must match
        the classification recorded at the target.
        """
        refs = self.ctx.repo.ref_snapshot()
        if expected.head is None:
            # HEAD is never deleted; it stays where it was
            refs = refs.with_ref("HEAD", None)
        graph = self.ctx.builder.build(refs, expected.history.mentioned)
        actual: ClassificationResult = self.ctx.classifier.classify(graph, expected.history)
        domain = list(expected.classification.labels)
        if actual.restricted_to(domain).digest() != expected.classification.digest():
            raise StorageError(
                f"Repository does not match cursor {expected.cursor} after undo; changes reverted"
            )

        overrides = self.ctx.replayer(self.ctx.event_log.current_cursor()).hidden_overrides
        if overrides != expected.history.hidden_overrides:
            raise StorageError(
                f"Visibility overrides do not match cursor {expected.cursor} after undo"
            )
