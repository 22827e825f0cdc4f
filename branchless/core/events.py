"""
Events -- Immutable records of repository mutations

Events are immutable. Once written, never modified.
The event log is the source of truth. Refs, graphs and classifications
are projections of a log prefix.

The set of event kinds is closed. Every consumer handles all of them;
adding a kind means revisiting the replayer and the classifier.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple
from enum import Enum


ZERO_OID = "0" * 40


class EventType(Enum):
    # Object store events
    COMMIT_CREATED = "commit_created"
    COMMIT_REWRITTEN = "commit_rewritten"  # amend/rebase produced new_oid from old_oid

    # Ref events
    REF_UPDATED = "ref_updated"
    REF_DELETED = "ref_deleted"

    # Manual visibility overrides (hide/unhide)
    COMMIT_HIDDEN = "commit_hidden"
    COMMIT_UNHIDDEN = "commit_unhidden"


# Fields each kind must carry. Checked before anything reaches the log.
REQUIRED_FIELDS: Dict[EventType, Tuple[str, ...]] = {
    EventType.COMMIT_CREATED: ("new_oid",),
    EventType.COMMIT_REWRITTEN: ("old_oid", "new_oid"),
    EventType.REF_UPDATED: ("ref_name", "new_oid"),
    EventType.REF_DELETED: ("ref_name", "old_oid"),
    EventType.COMMIT_HIDDEN: ("new_oid",),
    EventType.COMMIT_UNHIDDEN: ("new_oid",),
}


def normalize_oid(oid: Optional[str]) -> Optional[str]:
    """Map git's all-zero oid and empty strings to None."""
    if not oid or oid == ZERO_OID:
        return None
    return oid


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class NewEvent:
    """An event that has not been appended yet (no cursor)."""
    type: EventType
    ref_name: Optional[str] = None
    old_oid: Optional[str] = None
    new_oid: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now)

    def __post_init__(self):
        object.__setattr__(self, "old_oid", normalize_oid(self.old_oid))
        object.__setattr__(self, "new_oid", normalize_oid(self.new_oid))
        validate_fields(self.type, self.ref_name, self.old_oid, self.new_oid)

    @classmethod
    def from_payload(cls, kind: EventType, payload: Dict[str, Any]) -> 'NewEvent':
        """Build from the loose dict accepted by EventLogStore.append()."""
        kwargs = {
            "type": kind,
            "ref_name": payload.get("ref_name"),
            "old_oid": payload.get("old_oid"),
            "new_oid": payload.get("new_oid"),
            "metadata": dict(payload.get("metadata") or {}),
        }
        if payload.get("timestamp"):
            kwargs["timestamp"] = payload["timestamp"]
        return cls(**kwargs)


@dataclass(frozen=True)
class Event:
    """An appended event. `cursor` is its position in the log."""
    cursor: int
    type: EventType
    timestamp: str
    ref_name: Optional[str] = None
    old_oid: Optional[str] = None
    new_oid: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tx_id: Optional[int] = None

    def oids(self) -> Tuple[str, ...]:
        """Oids this event mentions, old before new."""
        return tuple(oid for oid in (self.old_oid, self.new_oid) if oid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cursor": self.cursor,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "ref_name": self.ref_name,
            "old_oid": self.old_oid,
            "new_oid": self.new_oid,
            "metadata": self.metadata,
            "tx_id": self.tx_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Event':
        return cls(
            cursor=d["cursor"],
            type=EventType(d["type"]),
            timestamp=d["timestamp"],
            ref_name=d.get("ref_name"),
            old_oid=d.get("old_oid"),
            new_oid=d.get("new_oid"),
            metadata=d.get("metadata") or {},
            tx_id=d.get("tx_id"),
        )


def validate_fields(kind: EventType, ref_name: Optional[str],
                    old_oid: Optional[str], new_oid: Optional[str]) -> None:
    """Raise ValueError if an event of `kind` lacks a required field."""
    values = {"ref_name": ref_name, "old_oid": old_oid, "new_oid": new_oid}
    if kind not in REQUIRED_FIELDS:
        raise AssertionError(f"Unhandled event type: {kind}")
    missing = [name for name in REQUIRED_FIELDS[kind] if not values[name]]
    if missing:
        raise ValueError(f"{kind.value} event requires: {', '.join(missing)}")


# Convenience functions for creating events

def commit_created(oid: str, parents: Tuple[str, ...] = (), **metadata) -> NewEvent:
    data = dict(metadata)
    if parents:
        data["parents"] = list(parents)
    return NewEvent(type=EventType.COMMIT_CREATED, new_oid=oid, metadata=data)


def commit_rewritten(old_oid: str, new_oid: str, **metadata) -> NewEvent:
    """
    Record that `new_oid` replaces `old_oid` (amend, rebase, move).

    The old commit is never mutated; the link lives only in the log.
    """
    return NewEvent(
        type=EventType.COMMIT_REWRITTEN,
        old_oid=old_oid,
        new_oid=new_oid,
        metadata=dict(metadata)
    )


def ref_updated(ref_name: str, old_oid: Optional[str], new_oid: str, **metadata) -> NewEvent:
    return NewEvent(
        type=EventType.REF_UPDATED,
        ref_name=ref_name,
        old_oid=old_oid,
        new_oid=new_oid,
        metadata=dict(metadata)
    )


def ref_deleted(ref_name: str, old_oid: str, **metadata) -> NewEvent:
    return NewEvent(
        type=EventType.REF_DELETED,
        ref_name=ref_name,
        old_oid=old_oid,
        metadata=dict(metadata)
    )


def commit_hidden(oid: str, **metadata) -> NewEvent:
    return NewEvent(type=EventType.COMMIT_HIDDEN, new_oid=oid, metadata=dict(metadata))


def commit_unhidden(oid: str, **metadata) -> NewEvent:
    return NewEvent(type=EventType.COMMIT_UNHIDDEN, new_oid=oid, metadata=dict(metadata))
