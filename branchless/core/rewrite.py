"""
Move/Rebase Planner -- Replay subtrees of the commit graph onto new parents

Planning is pure: MovePlanner reads an immutable graph and classification
and returns a MovePlan. Execution goes through the object store, one log
transaction per step, so an interrupted plan leaves exactly the completed
steps in the log and in the repository.

A conflict does not raise: the plan pauses, its state is saved next to the
event log, and `resume` / `abort` pick it up later.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Set, Tuple, Iterator, Any

import orjson

from ..services.repository import RefUpdate
from .classify import Classification, ClassificationResult
from .context import RepoContext
from .errors import ConflictError, StorageError, UserAbort
from .events import commit_hidden, commit_rewritten
from .graph import CommitGraph
from .replay import EventReplayer

logger = logging.getLogger(__name__)


STATE_VERSION = 1


class MoveStatus(Enum):
    COMPLETED = "completed"
    PAUSED = "paused"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ReplayStep:
    """
    One commit to replay.

    `new_parent_oid` is None when the parent is produced by an earlier step
    that has not run yet (dry run). `parent_step` names that step.
    """
    index: int
    commit_oid: str
    new_parent_oid: Optional[str]
    parent_step: Optional[int] = None
    other_parent_oids: Tuple[str, ...] = ()
    refs_to_move: Tuple[str, ...] = ()
    parent_position: int = 0

    @property
    def new_parents(self) -> Tuple[Optional[str], ...]:
        others = self.other_parent_oids
        pos = self.parent_position
        return others[:pos] + (self.new_parent_oid,) + others[pos:]


class MovePlan:
    """
    Ordered replay of commits onto new parents.

    moves:   root commit -> destination oid
    order:   every commit to replay, parents first
    parents: original parents of each commit
    refs:    refs pointing at each commit when the plan was made (HEAD included)
    results: commit -> replayed oid, filled in by record()
    replaced: root commit -> the original parent its destination replaces
              (the first parent when absent)
    remap:    original oid -> replacement used for other parents
    """

    def __init__(self, moves: Dict[str, str], order: List[str],
                 parents: Dict[str, List[str]], refs: Dict[str, List[str]],
                 results: Optional[Dict[str, str]] = None,
                 replaced: Optional[Dict[str, str]] = None,
                 remap: Optional[Dict[str, str]] = None):
        self.moves = dict(moves)
        self.order = list(order)
        self.parents = {oid: list(ps) for oid, ps in parents.items()}
        self.refs = {oid: list(names) for oid, names in refs.items() if names}
        self.results: Dict[str, str] = dict(results or {})
        self.replaced = dict(replaced or {})
        self.remap = dict(remap or {})
        self._index = {oid: i for i, oid in enumerate(self.order)}

    def __len__(self) -> int:
        return len(self.order)

    @property
    def is_empty(self) -> bool:
        return not self.order

    @property
    def rewritten(self) -> Dict[str, str]:
        return dict(self.results)

    def step_at(self, index: int) -> ReplayStep:
        oid = self.order[index]
        parents = self.parents.get(oid, [])
        refs = tuple(self.refs.get(oid, ()))

        if oid in self.moves:
            old = self.replaced.get(oid)
            position = parents.index(old) if old in parents else 0
            others = tuple(self._other_parent(p) for i, p in enumerate(parents) if i != position)
            return ReplayStep(index, oid, self.moves[oid], None, others, refs, position)

        position = next(i for i, p in enumerate(parents) if p in self._index)
        primary = parents[position]
        others = tuple(self._other_parent(p) for i, p in enumerate(parents) if i != position)
        return ReplayStep(
            index=index,
            commit_oid=oid,
            new_parent_oid=self.results.get(primary),
            parent_step=self._index[primary],
            other_parent_oids=others,
            refs_to_move=refs,
            parent_position=position,
        )

    def _other_parent(self, oid: str) -> str:
        return self.results.get(oid) or self.remap.get(oid, oid)

    def steps(self, start: int = 0) -> Iterator[ReplayStep]:
        """
        Yield steps lazily from `start`.

        Each step is built when requested, so parents produced by earlier
        steps are resolved from what record() has stored by then.
        """
        for index in range(start, len(self.order)):
            yield self.step_at(index)

    def record(self, step: ReplayStep, new_oid: str):
        self.results[step.commit_oid] = new_oid

    def describe(self) -> List[str]:
        lines = []
        for step in self.steps():
            if step.parent_step is None:
                onto = step.new_parent_oid[:8]
            elif step.new_parent_oid:
                onto = step.new_parent_oid[:8]
            else:
                onto = f"<step {step.parent_step}>"
            line = f"{step.index}: {step.commit_oid[:8]} onto {onto}"
            if step.refs_to_move:
                line += f" ({', '.join(step.refs_to_move)})"
            lines.append(line)
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moves": self.moves,
            "order": self.order,
            "parents": self.parents,
            "refs": self.refs,
            "results": self.results,
            "replaced": self.replaced,
            "remap": self.remap,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MovePlan':
        return cls(
            moves=data["moves"],
            order=data["order"],
            parents=data["parents"],
            refs=data.get("refs") or {},
            results=data.get("results") or {},
            replaced=data.get("replaced") or {},
            remap=data.get("remap") or {},
        )


@dataclass(frozen=True)
class MoveResult:
    status: MoveStatus
    plan: MovePlan
    applied: int = 0
    halted_index: Optional[int] = None
    conflict: Optional[ConflictError] = None
    steps: Tuple[ReplayStep, ...] = field(default_factory=tuple)


class MovePlanner:
    """Computes MovePlans from one immutable snapshot."""

    def __init__(self, graph: CommitGraph, classification: ClassificationResult,
                 main_ref: Optional[str] = None):
        self.graph = graph
        self.classification = classification
        self.main_ref = main_ref

    def plan_move(self, source: str, destination: str,
                  within: Optional[Set[str]] = None, base: bool = False) -> MovePlan:
        """
        Move `source` and its descendants (inside `within`) onto `destination`.

        Raises:
            UserAbort: destination is the source or one of its descendants
            GraphError: source or destination is not in the graph
        """
        self.graph.node(destination)
        if base:
            source = self.resolve_base(source)
        self.graph.node(source)

        if source == destination:
            raise UserAbort(f"Cannot move {source[:8]} onto itself")
        if destination in self.graph.descendants(source):
            raise UserAbort(f"Cannot move {source[:8]} onto its own descendant {destination[:8]}")

        if within is None:
            within = self.classification.visible
        commits = self.graph.descendants(source, within=set(within))
        plan = self._build({source: destination}, commits)
        logger.debug("Move plan %s -> %s: %d step(s)", source[:8], destination[:8], len(plan))
        return plan

    def resolve_base(self, oid: str) -> str:
        """
        The first commit of `oid`'s line of work: the ancestor whose parent
        is the merge-base with the main branch.

        Returns `oid` unchanged when there is no main branch or `oid`
        is already on it.
        """
        main = self.graph.refs.get(self.main_ref) if self.main_ref else None
        if main is None:
            return oid
        merge_base = self.graph.merge_base(oid, main)
        if merge_base is None or merge_base == oid:
            return oid
        line = self.graph.ancestors([oid]) - self.graph.ancestors([merge_base])
        for candidate in self.graph.topo_sort(line):
            if merge_base in self.graph.parents_of(candidate):
                return candidate
        return oid

    def plan_restack(self, history: EventReplayer) -> MovePlan:
        """
        Move the children of rewritten commits onto the rewrite targets.

        A child is moved when it is not itself rewritten, not manually
        hidden and not already an ancestor of the target. Its non-hidden
        descendants come along.
        """
        visible = self.classification.visible
        within = {
            oid for oid, label in self.classification.labels.items()
            if label != Classification.HIDDEN
        } - set(history.rewrites)

        moves: Dict[str, str] = {}
        replaced: Dict[str, str] = {}
        remap: Dict[str, str] = {}
        for old in sorted(history.rewrites):
            target = history.rewrite_target(old)
            if target is None or target not in visible or old not in self.graph:
                continue
            remap[old] = target
            under_target = self.graph.ancestors([target])
            for child in self.graph.children_of(old):
                if child in history.rewrites or history.is_manually_hidden(child):
                    continue
                if child in under_target or child not in within:
                    continue
                moves[child] = target
                replaced[child] = old

        commits: Set[str] = set()
        for root in moves:
            commits |= self.graph.descendants(root, within=within)
        plan = self._build(moves, commits, replaced=replaced, remap=remap)
        logger.debug("Restack plan: %d root(s), %d step(s)", len(moves), len(plan))
        return plan

    def _build(self, moves: Dict[str, str], commits: Set[str],
               replaced: Optional[Dict[str, str]] = None,
               remap: Optional[Dict[str, str]] = None) -> MovePlan:
        order = self.graph.topo_sort(commits)
        parents = {oid: list(self.graph.parents_of(oid)) for oid in order}
        refs = {oid: self.graph.refs.refs_at(oid) for oid in order}
        return MovePlan(moves=moves, order=order, parents=parents, refs=refs,
                        replaced=replaced, remap=remap)


class PlanExecutor:
    """
    Applies MovePlans through the repository context.

    Only one plan can be in flight; a paused plan lives in move-state.json
    until it is resumed or aborted.
    """

    def __init__(self, ctx: RepoContext):
        self.ctx = ctx

    @property
    def state_path(self) -> Path:
        return self.ctx.move_state_path

    def in_progress(self) -> bool:
        return self.state_path.exists()

    def execute(self, plan: MovePlan, dry_run: bool = False) -> MoveResult:
        if dry_run:
            return MoveResult(status=MoveStatus.COMPLETED, plan=plan, steps=tuple(plan.steps()))
        if self.in_progress():
            raise UserAbort("A move is already in progress; run with --continue or --abort")
        self._require_clean()
        with self.ctx.repo.lock():
            return self._run(plan, start=0)

    def resume(self, resolved_oid: Optional[str] = None) -> MoveResult:
        """
        Continue a paused plan from its halted step.

        With `resolved_oid`, that commit is taken as the result of the
        halted step instead of replaying it again.
        """
        plan, halted = self.load_state()
        self._require_clean()
        with self.ctx.repo.lock():
            return self._run(plan, start=halted, resolved_oid=resolved_oid)

    def abort(self) -> MoveResult:
        """Put moved refs back on the original commits and drop the saved state."""
        plan, halted = self.load_state()
        with self.ctx.repo.lock():
            actual = self.ctx.repo.list_refs()
            updates = []
            for old_oid, new_oid in plan.results.items():
                for ref_name in plan.refs.get(old_oid, ()):
                    if actual.get(ref_name) != new_oid:
                        logger.warning("%s moved since the plan ran; leaving it alone", ref_name)
                        continue
                    updates.append(RefUpdate(ref_name, new_oid, old_oid))

            with self.ctx.event_log.transaction("abort move"):
                self.ctx.repo.update_refs(updates, message="abort move")
                for new_oid in plan.results.values():
                    self.ctx.event_log.append_event(commit_hidden(new_oid, reason="move aborted"))
            self.clear_state()

        logger.info("Move aborted at step %d; %d ref(s) restored", halted, len(updates))
        return MoveResult(status=MoveStatus.ABORTED, plan=plan, applied=0, halted_index=halted)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _require_clean(self):
        if not self.ctx.repo.is_working_tree_clean():
            raise UserAbort("Working tree has uncommitted changes; commit or stash them first")

    def _run(self, plan: MovePlan, start: int, resolved_oid: Optional[str] = None) -> MoveResult:
        repo = self.ctx.repo
        log = self.ctx.event_log
        applied = start

        for step in plan.steps(start):
            try:
                with log.transaction(f"move {step.commit_oid[:8]}"):
                    if resolved_oid is not None and step.index == start:
                        new_oid = resolved_oid
                        log.append_event(commit_rewritten(step.commit_oid, new_oid, resolved=True))
                        updates = self._resolved_ref_updates(step, new_oid)
                    else:
                        new_oid = repo.replay_commit(step.commit_oid, step.new_parents)
                        updates = [RefUpdate(name, step.commit_oid, new_oid) for name in step.refs_to_move]
                    repo.update_refs(updates, message=f"move refs of {step.commit_oid[:8]}")
            except ConflictError as e:
                self.save_state(plan, step.index)
                logger.info("Move paused at step %d (%s): %s", step.index, step.commit_oid[:8], e)
                return MoveResult(
                    status=MoveStatus.PAUSED,
                    plan=plan,
                    applied=applied,
                    halted_index=step.index,
                    conflict=e,
                )
            except KeyboardInterrupt:
                self.save_state(plan, step.index)
                logger.warning("Move interrupted at step %d; %d step(s) applied", step.index, applied)
                raise

            plan.record(step, new_oid)
            applied += 1
            logger.debug("Step %d: %s -> %s", step.index, step.commit_oid[:8], new_oid[:8])

        self.clear_state()
        logger.info("Move completed: %d step(s)", applied)
        return MoveResult(status=MoveStatus.COMPLETED, plan=plan, applied=applied)

    def _resolved_ref_updates(self, step: ReplayStep, new_oid: str) -> List[RefUpdate]:
        """
        Ref updates for a step resolved by hand.

        Resolving usually leaves HEAD on the resolved commit, and a ref may
        already have been moved there; both are taken from the repository
        instead of the plan. Other refs must still be on the original commit.
        """
        actual = self.ctx.repo.list_refs()
        updates = []
        for name in step.refs_to_move:
            current = actual.get(name)
            if name == "HEAD" or current == new_oid:
                old = current
            else:
                old = step.commit_oid
            updates.append(RefUpdate(name, old, new_oid))
        return updates

    # -------------------------------------------------------------------------
    # Saved state
    # -------------------------------------------------------------------------

    def save_state(self, plan: MovePlan, halted_index: int):
        data = {
            "version": STATE_VERSION,
            "halted_index": halted_index,
            "plan": plan.to_dict(),
        }
        tmp = self.state_path.with_suffix(".tmp")
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
            os.replace(tmp, self.state_path)
        except OSError as e:
            raise StorageError(f"Could not save move state to {self.state_path}: {e}") from e

    def load_state(self) -> Tuple[MovePlan, int]:
        if not self.in_progress():
            raise UserAbort("No move in progress")
        try:
            data = orjson.loads(self.state_path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise StorageError(f"Could not read move state {self.state_path}: {e}") from e
        if data.get("version") != STATE_VERSION:
            raise StorageError(f"Unsupported move state version: {data.get('version')}")
        return MovePlan.from_dict(data["plan"]), data["halted_index"]

    def clear_state(self):
        try:
            self.state_path.unlink()
        except FileNotFoundError:
            pass
