"""
Core -- Engine layer for branchless

Contains the foundational data structures:
- Events: Immutable event records and their constructors
- Event log: SQLite append-only store (source of truth)
- Replay: Fold events into refs, rewrites and hide markers
- Graph: Commit DAG rebuilt from a ref snapshot
- Classify: visible / hidden / abandoned labels

The engines that need a repository (context, undo, rewrite, workflow)
are imported from their own modules.
"""

from .errors import BranchlessError, StorageError, GraphError, ConflictError, UserAbort
from .events import (
    Event, EventType, NewEvent, ZERO_OID,
    commit_created, commit_rewritten, ref_updated, ref_deleted,
    commit_hidden, commit_unhidden,
)
from .eventlog import EventLogStore, LogTransaction, TransactionInfo
from .replay import EventReplayer
from .graph import CommitNode, RefSnapshot, CommitGraph, CommitGraphBuilder
from .classify import Classification, ClassificationResult, AbandonmentClassifier, classify

__all__ = [
    # Errors
    "BranchlessError", "StorageError", "GraphError", "ConflictError", "UserAbort",
    # Events
    "Event", "EventType", "NewEvent", "ZERO_OID",
    "commit_created", "commit_rewritten", "ref_updated", "ref_deleted",
    "commit_hidden", "commit_unhidden",
    # Event log
    "EventLogStore", "LogTransaction", "TransactionInfo",
    # Replay
    "EventReplayer",
    # Graph
    "CommitNode", "RefSnapshot", "CommitGraph", "CommitGraphBuilder",
    # Classification
    "Classification", "ClassificationResult", "AbandonmentClassifier", "classify",
]
