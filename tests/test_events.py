"""
Tests for Events -- the closed set of event kinds and their fields

These tests validate:
- Constructors fill the fields each kind requires
- Missing fields are rejected before anything reaches the log
- Git's zero oid means "no object"
"""

import pytest

from branchless.core.events import (
    Event, EventType, NewEvent, ZERO_OID, REQUIRED_FIELDS,
    normalize_oid,
    commit_created, commit_rewritten, ref_updated, ref_deleted,
    commit_hidden, commit_unhidden,
)

A = "a" * 40
B = "b" * 40


class TestConstructors:
    """Each helper builds a NewEvent of its kind."""

    def test_commit_created_records_parents(self):
        event = commit_created(B, (A,), source="post-commit")
        assert event.type == EventType.COMMIT_CREATED
        assert event.new_oid == B
        assert event.metadata == {"parents": [A], "source": "post-commit"}

    def test_commit_created_root_has_no_parents_key(self):
        assert "parents" not in commit_created(A).metadata

    def test_commit_rewritten(self):
        event = commit_rewritten(A, B, rewrite_type="amend")
        assert (event.old_oid, event.new_oid) == (A, B)
        assert event.metadata["rewrite_type"] == "amend"

    def test_ref_updated_and_deleted(self):
        created = ref_updated("refs/heads/main", None, A)
        deleted = ref_deleted("refs/heads/main", A)
        assert created.old_oid is None and created.new_oid == A
        assert deleted.old_oid == A and deleted.new_oid is None

    def test_hide_markers_use_new_oid(self):
        assert commit_hidden(A).new_oid == A
        assert commit_unhidden(A).type == EventType.COMMIT_UNHIDDEN


class TestValidation:
    """Events missing required fields never get built."""

    def test_every_kind_has_required_fields(self):
        assert set(REQUIRED_FIELDS) == set(EventType)

    def test_ref_update_without_name_rejected(self):
        with pytest.raises(ValueError, match="ref_name"):
            NewEvent(type=EventType.REF_UPDATED, new_oid=A)

    def test_ref_delete_without_old_oid_rejected(self):
        with pytest.raises(ValueError, match="old_oid"):
            ref_deleted("refs/heads/main", None)

    def test_zero_oid_counts_as_missing(self):
        with pytest.raises(ValueError):
            commit_hidden(ZERO_OID)

    def test_from_payload(self):
        event = NewEvent.from_payload(EventType.REF_UPDATED, {
            "ref_name": "HEAD",
            "old_oid": ZERO_OID,
            "new_oid": A,
            "metadata": {"source": "test"},
        })
        assert event.old_oid is None
        assert event.metadata == {"source": "test"}


class TestOids:
    """Oid normalization and mentions."""

    def test_normalize(self):
        assert normalize_oid(ZERO_OID) is None
        assert normalize_oid("") is None
        assert normalize_oid(A) == A

    def test_event_oids_old_before_new(self):
        event = Event(cursor=1, type=EventType.COMMIT_REWRITTEN, timestamp="t", old_oid=A, new_oid=B)
        assert event.oids() == (A, B)

    def test_to_dict_from_dict(self):
        event = Event(cursor=3, type=EventType.REF_UPDATED, timestamp="t",
                      ref_name="HEAD", new_oid=A, metadata={"k": 1}, tx_id=2)
        assert Event.from_dict(event.to_dict()) == event
