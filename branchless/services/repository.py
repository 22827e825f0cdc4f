"""
Object Store -- Contract for the repository the engine sits on

The engine never touches commits or refs directly. It reads commits and
refs through an ObjectStore and applies plans through it. Every mutation
made here appends its own events to the event log, one logical mutation
per log transaction, so the log stays the source of truth.

Subclasses implement the primitive operations (underscore methods);
the public methods add the event bookkeeping.
"""

import contextlib
import fcntl
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Iterable, Iterator

from rapidfuzz import fuzz, process

from ..core.errors import UserAbort
from ..core.eventlog import EventLogStore
from ..core.events import NewEvent, ref_updated, ref_deleted, commit_rewritten
from ..core.graph import CommitNode, RefSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefUpdate:
    """Compare-and-swap update of one ref. new_oid None deletes the ref."""
    ref_name: str
    old_oid: Optional[str]
    new_oid: Optional[str]

    @property
    def is_noop(self) -> bool:
        return self.old_oid == self.new_oid

    def inverse(self) -> 'RefUpdate':
        return RefUpdate(self.ref_name, self.new_oid, self.old_oid)

    def to_event(self, **metadata) -> NewEvent:
        if self.new_oid is None:
            return ref_deleted(self.ref_name, self.old_oid, **metadata)
        return ref_updated(self.ref_name, self.old_oid, self.new_oid, **metadata)


def order_ref_updates(updates: Iterable[RefUpdate]) -> List[RefUpdate]:
    """Sort by ref name with HEAD last, dropping no-ops."""
    kept = [u for u in updates if not u.is_noop]
    return sorted(kept, key=lambda u: (u.ref_name == "HEAD", u.ref_name))


@contextlib.contextmanager
def exclusive_lock(path: Path) -> Iterator[None]:
    """
    Hold an exclusive flock on `path` for the duration of the block.

    Non-blocking: a lock held by another process raises UserAbort.
    The OS drops the lock if this process dies.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as lock_f:
        try:
            fcntl.flock(lock_f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise UserAbort(f"Another branchless operation holds the lock ({path})") from None
        logger.debug("Acquired repository lock: %s", path)
        try:
            yield
        finally:
            fcntl.flock(lock_f.fileno(), fcntl.LOCK_UN)
            logger.debug("Released repository lock: %s", path)


class ObjectStore(ABC):
    """
    Repository collaborator: commits, refs, working tree.

    `event_log` receives the events for mutations made through this object.
    Without one, mutations are applied but not recorded (used while
    bootstrapping, before a log exists).
    """

    def __init__(self, event_log: Optional[EventLogStore] = None):
        self.event_log = event_log

    def attach(self, event_log: EventLogStore):
        self.event_log = event_log

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    def read_commit(self, oid: str) -> Optional[CommitNode]:
        """Return the commit, or None if the object store does not have it."""

    @abstractmethod
    def list_refs(self) -> Dict[str, str]:
        """Current tracked refs (full names) plus HEAD."""

    @abstractmethod
    def is_working_tree_clean(self) -> bool:
        ...

    @abstractmethod
    def lock(self) -> contextlib.AbstractContextManager:
        """Exclusive repository lock; raises UserAbort if already held."""

    @abstractmethod
    def _write_refs(self, updates: List[RefUpdate]):
        """
        Apply all updates atomically, or none.

        Raises:
            ConflictError: a ref no longer has its expected old value
            StorageError: the store could not be written
        """

    @abstractmethod
    def _replay(self, oid: str, new_parents: Tuple[str, ...]) -> str:
        """
        Create a copy of `oid` with `new_parents`. Returns the new oid.

        Raises:
            ConflictError: the change does not apply cleanly
        """

    @abstractmethod
    def _lookup(self, spec: str) -> Optional[str]:
        """Resolve a user-supplied revision to an oid, or None."""

    # -------------------------------------------------------------------------
    # Recorded mutations
    # -------------------------------------------------------------------------

    @contextlib.contextmanager
    def _recorded(self, message: str, events: List[NewEvent]):
        if self.event_log is None:
            yield
            return
        with self.event_log.transaction(message) as tx:
            for event in events:
                self.event_log.append_event(event)
            yield tx

    def update_refs(self, updates: Iterable[RefUpdate], message: str = "update refs"):
        """Move refs atomically and record one ref event per update."""
        ordered = order_ref_updates(updates)
        if not ordered:
            return
        events = [u.to_event() for u in ordered]
        with self._recorded(message, events):
            self._write_refs(ordered)
        logger.info("%s: %s", message, ", ".join(u.ref_name for u in ordered))

    def restore_refs(self, updates: Iterable[RefUpdate]):
        """
        Apply updates WITHOUT recording events.

        Only for putting refs back while the log transaction that described
        the original updates is being rolled back.
        """
        ordered = order_ref_updates(updates)
        if ordered:
            self._write_refs(ordered)
            logger.warning("Restored refs: %s", ", ".join(u.ref_name for u in ordered))

    def replay_commit(self, oid: str, new_parents: Tuple[str, ...],
                      message: Optional[str] = None) -> str:
        """Copy `oid` onto `new_parents` and record the rewrite."""
        new_oid = self._replay(oid, tuple(new_parents))
        if new_oid != oid and self.event_log is not None:
            self.event_log.append_event(commit_rewritten(oid, new_oid), message or f"replay {oid[:8]}")
        return new_oid

    def checkout(self, oid: str, message: Optional[str] = None):
        """Point HEAD at `oid` (detached)."""
        current = self.list_refs().get("HEAD")
        self.update_refs([RefUpdate("HEAD", current, oid)], message or f"checkout {oid[:8]}")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(self.list_refs())

    def resolve(self, spec: str) -> str:
        """
        Resolve a branch name, full ref name, HEAD or (abbreviated) oid.

        Raises:
            UserAbort: nothing matches; the message suggests close branch names
        """
        oid = self._lookup(spec)
        if oid is not None:
            return oid
        hint = ""
        suggestions = self.suggest(spec)
        if suggestions:
            hint = f" (did you mean: {', '.join(suggestions)}?)"
        raise UserAbort(f"Unknown revision '{spec}'{hint}")

    def suggest(self, spec: str, limit: int = 3, cutoff: float = 60.0) -> List[str]:
        """Branch names similar to `spec`, best first."""
        names = [short_ref_name(name) for name in self.list_refs() if name != "HEAD"]
        matches = process.extract(spec, names, scorer=fuzz.ratio, limit=limit, score_cutoff=cutoff)
        return [name for name, _score, _index in matches]


def short_ref_name(ref_name: str) -> str:
    """refs/heads/feature -> feature. Other names unchanged."""
    for prefix in ("refs/heads/", "refs/remotes/", "refs/tags/"):
        if ref_name.startswith(prefix):
            return ref_name[len(prefix):]
    return ref_name
