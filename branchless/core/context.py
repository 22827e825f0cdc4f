"""
Repository Context -- Explicit handle for one command invocation

Bundles the object store, event log and configuration, and builds
immutable snapshots (graph + classification) at any log cursor.
There is no global repository: every operation receives a context.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import Config, ConfigManager
from ..services.repository import ObjectStore
from .classify import AbandonmentClassifier, Classification, ClassificationResult, summarize
from .eventlog import EventLogStore
from .graph import CommitGraph, CommitGraphBuilder
from .replay import EventReplayer

logger = logging.getLogger(__name__)


MOVE_STATE_FILE = "move-state.json"


@dataclass(frozen=True)
class RepoSnapshot:
    """Everything derived from one log prefix. Read-only."""
    cursor: int
    graph: CommitGraph
    history: EventReplayer
    classification: ClassificationResult
    main_ref: str

    @property
    def head(self) -> Optional[str]:
        return self.graph.head

    @property
    def main_head(self) -> Optional[str]:
        return self.graph.refs.get(self.main_ref)

    def is_visible(self, oid: str) -> bool:
        return self.classification.get(oid) == Classification.VISIBLE


class RepoContext:
    """
    Per-invocation repository handle.

    The graph builder's commit cache lives as long as the context,
    so snapshots at several cursors share resolved commits.
    """

    def __init__(self, repo: ObjectStore, event_log: EventLogStore,
                 config: Config, state_dir: Path):
        self.repo = repo
        self.event_log = event_log
        self.config = config
        self.state_dir = Path(state_dir)
        self.repo.attach(event_log)
        self.builder = CommitGraphBuilder(repo.read_commit)
        self.classifier = AbandonmentClassifier()

    @classmethod
    def open(cls, repo: ObjectStore, state_dir: Path,
             config: Optional[Config] = None) -> 'RepoContext':
        """Open (creating if needed) the event log under `state_dir`."""
        state_dir = Path(state_dir)
        if config is None:
            config = ConfigManager(state_dir).load()
        event_log = EventLogStore(state_dir / config.core.db_name)
        return cls(repo, event_log, config, state_dir)

    @property
    def main_ref(self) -> str:
        return self.config.core.main_ref

    @property
    def move_state_path(self) -> Path:
        return self.state_dir / MOVE_STATE_FILE

    def replayer(self, cursor: Optional[int] = None) -> EventReplayer:
        """Replay the log up to `cursor` (default: the view cursor)."""
        if cursor is None:
            cursor = self.event_log.view_cursor()
        return EventReplayer.replay(self.event_log.read_since(0, cursor))

    def snapshot(self, cursor: Optional[int] = None) -> RepoSnapshot:
        """Graph and classification at `cursor` (default: the view cursor)."""
        if cursor is None:
            cursor = self.event_log.view_cursor()
        history = self.replayer(cursor)
        graph = self.builder.build(history.ref_snapshot(), history.mentioned)
        classification = self.classifier.classify(graph, history)
        logger.debug("Snapshot at cursor %d: %d commits (%s)",
                     cursor, len(graph), ", ".join(summarize(classification)))
        return RepoSnapshot(
            cursor=cursor,
            graph=graph,
            history=history,
            classification=classification,
            main_ref=self.main_ref,
        )

    def close(self):
        self.event_log.close()

    def __enter__(self) -> 'RepoContext':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
