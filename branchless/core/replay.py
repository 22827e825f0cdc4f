"""
Event Replay -- Fold a log prefix into repository state

Given the events up to some cursor, reconstruct:
- the ref snapshot (which ref points where)
- manual visibility overrides (hide/unhide)
- rewrite links (old oid -> new oid)
- every oid the prefix mentions, and every oid a ref ever pointed to

Pure: the same prefix always yields the same state.
"""

from typing import Optional, List, Dict, Set, Iterable

from .events import Event, EventType
from .graph import RefSnapshot


class EventReplayer:
    """
    Accumulates state from events in cursor order.

    Feed it with apply() or construct with replay(events).
    """

    def __init__(self):
        self.refs: Dict[str, str] = {}
        self.hidden_overrides: Set[str] = set()
        self.rewrites: Dict[str, str] = {}
        self.mentioned: List[str] = []
        self.ref_targets_ever: Set[str] = set()
        self.last_event: Dict[str, Event] = {}
        self.cursor = 0
        self._mentioned_set: Set[str] = set()

    @classmethod
    def replay(cls, events: Iterable[Event]) -> 'EventReplayer':
        replayer = cls()
        for event in events:
            replayer.apply(event)
        return replayer

    def _mention(self, event: Event):
        for oid in event.oids():
            if oid not in self._mentioned_set:
                self._mentioned_set.add(oid)
                self.mentioned.append(oid)
            self.last_event[oid] = event

    def apply(self, event: Event):
        """Apply one event. Every kind is handled; anything else is a bug."""
        if event.cursor <= self.cursor:
            raise ValueError(f"Event {event.cursor} is not after cursor {self.cursor}")
        self.cursor = event.cursor
        self._mention(event)

        if event.type == EventType.COMMIT_CREATED:
            pass

        elif event.type == EventType.COMMIT_REWRITTEN:
            self.rewrites[event.old_oid] = event.new_oid

        elif event.type == EventType.REF_UPDATED:
            self.refs[event.ref_name] = event.new_oid
            self.ref_targets_ever.update(event.oids())

        elif event.type == EventType.REF_DELETED:
            self.refs.pop(event.ref_name, None)
            self.ref_targets_ever.update(event.oids())

        elif event.type == EventType.COMMIT_HIDDEN:
            self.hidden_overrides.add(event.new_oid)

        elif event.type == EventType.COMMIT_UNHIDDEN:
            self.hidden_overrides.discard(event.new_oid)

        else:
            raise AssertionError(f"Unhandled event type: {event.type}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(dict(self.refs))

    @property
    def head(self) -> Optional[str]:
        return self.refs.get("HEAD")

    def is_rewritten(self, oid: str) -> bool:
        return oid in self.rewrites

    def is_manually_hidden(self, oid: str) -> bool:
        return oid in self.hidden_overrides

    def rewrite_target(self, oid: str) -> Optional[str]:
        """
        Follow the rewrite chain from `oid` to its latest target.

        Returns None if `oid` was never rewritten. A chain that loops back
        on itself (rewrite then undo-style rewrite back) stops at the last
        oid before the repeat.
        """
        if oid not in self.rewrites:
            return None
        seen = {oid}
        current = self.rewrites[oid]
        while current in self.rewrites and current not in seen:
            seen.add(current)
            nxt = self.rewrites[current]
            if nxt in seen:
                break
            current = nxt
        return current
