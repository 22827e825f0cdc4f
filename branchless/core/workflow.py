"""
Workflow -- The operations a user runs

smartlog, hide/unhide, undo/redo, move, restack and the move
continue/abort pair. Each call builds what it needs from the context,
delegates to the engines, and returns their result unchanged.
"""

import logging
from typing import Optional, List, Dict

from .classify import Classification
from .context import RepoContext, RepoSnapshot
from .errors import UserAbort
from .events import NewEvent, commit_hidden, commit_unhidden, ref_updated, ref_deleted
from .rewrite import MovePlan, MovePlanner, MoveResult, PlanExecutor
from .undo import UndoEngine, UndoResult

logger = logging.getLogger(__name__)


class Workflow:
    """Command surface over one RepoContext."""

    def __init__(self, ctx: RepoContext):
        self.ctx = ctx
        self.undo_engine = UndoEngine(ctx)
        self.executor = PlanExecutor(ctx)

    def smartlog(self) -> RepoSnapshot:
        return self.ctx.snapshot()

    def resolve(self, spec: str) -> str:
        return self.ctx.repo.resolve(spec)

    # -------------------------------------------------------------------------
    # Baseline
    # -------------------------------------------------------------------------

    def ref_sync_events(self, logged: Optional[Dict[str, Optional[str]]] = None,
                        source: str = "sync") -> List[NewEvent]:
        """
        Events that bring the log's refs in line with the repository.

        `logged` defaults to the refs replayed from the whole log.
        """
        if logged is None:
            logged = self.ctx.replayer(self.ctx.event_log.current_cursor()).refs
        actual = self.ctx.repo.list_refs()
        hooks = self.ctx.config.hooks

        events = []
        for name in sorted(set(actual) | set(logged), key=lambda n: (n == "HEAD", n)):
            if not hooks.tracks(name):
                continue
            old, new = logged.get(name), actual.get(name)
            if old == new:
                continue
            if new is None:
                events.append(ref_deleted(name, old, source=source))
            else:
                events.append(ref_updated(name, old, new, source=source))
        return events

    def record_baseline(self, message: str = "init") -> int:
        """
        Record the repository's current refs as events.

        Only refs that differ from what the log already says are written,
        so running it twice records nothing the second time.
        """
        events = self.ref_sync_events(source=message)
        if events:
            self.ctx.event_log.append_all(events, message)
        return len(events)

    # -------------------------------------------------------------------------
    # Visibility
    # -------------------------------------------------------------------------

    def hide(self, spec: str, recursive: bool = False) -> List[str]:
        """
        Manually hide a commit (and with `recursive`, its descendants).

        Commits still reachable from a ref stay visible; refs win.
        Returns the oids newly marked hidden.
        """
        oid = self.resolve(spec)
        snapshot = self.ctx.snapshot()
        new = [o for o in self._targets(snapshot, oid, recursive)
               if not snapshot.history.is_manually_hidden(o)]
        if new:
            self.ctx.event_log.append_all([commit_hidden(o) for o in new], f"hide {oid[:8]}")

        still_visible = [o for o in new if snapshot.classification.get(o) == Classification.VISIBLE]
        if still_visible:
            logger.warning("%d commit(s) stay visible: reachable from a ref", len(still_visible))
        return new

    @staticmethod
    def _targets(snapshot: RepoSnapshot, oid: str, recursive: bool) -> List[str]:
        if not recursive:
            return [oid]
        return snapshot.graph.topo_sort(snapshot.graph.descendants(oid))

    def unhide(self, spec: str, recursive: bool = False) -> List[str]:
        oid = self.resolve(spec)
        snapshot = self.ctx.snapshot()
        restored = [o for o in self._targets(snapshot, oid, recursive)
                    if snapshot.history.is_manually_hidden(o)]
        if restored:
            self.ctx.event_log.append_all([commit_unhidden(o) for o in restored], f"unhide {oid[:8]}")
        return restored

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def undo(self, steps: int = 1, dry_run: bool = False) -> UndoResult:
        return self.undo_engine.undo(steps, dry_run=dry_run)

    def redo(self, steps: int = 1, dry_run: bool = False) -> UndoResult:
        return self.undo_engine.redo(steps, dry_run=dry_run)

    # -------------------------------------------------------------------------
    # Rewriting
    # -------------------------------------------------------------------------

    def _planner(self, snapshot: RepoSnapshot) -> MovePlanner:
        return MovePlanner(snapshot.graph, snapshot.classification, main_ref=self.ctx.main_ref)

    def plan_move(self, source: Optional[str] = None, destination: Optional[str] = None,
                  base: bool = False) -> MovePlan:
        """Source and destination default to HEAD."""
        source_oid = self.resolve(source or "HEAD")
        destination_oid = self.resolve(destination or "HEAD")
        snapshot = self.ctx.snapshot()
        return self._planner(snapshot).plan_move(source_oid, destination_oid, base=base)

    def move(self, source: Optional[str] = None, destination: Optional[str] = None,
             dry_run: bool = False, base: bool = False) -> MoveResult:
        plan = self.plan_move(source, destination, base=base)
        return self.executor.execute(plan, dry_run=dry_run)

    def restack(self, dry_run: bool = False) -> MoveResult:
        snapshot = self.ctx.snapshot()
        plan = self._planner(snapshot).plan_restack(snapshot.history)
        return self.executor.execute(plan, dry_run=dry_run)

    def continue_move(self, resolved: Optional[str] = None) -> MoveResult:
        resolved_oid = self.resolve(resolved) if resolved else None
        return self.executor.resume(resolved_oid)

    def abort_move(self) -> MoveResult:
        return self.executor.abort()

    def move_in_progress(self) -> bool:
        return self.executor.in_progress()

    def require_no_move(self):
        if self.move_in_progress():
            raise UserAbort("A move is in progress; run `branchless move --continue` or `--abort`")
