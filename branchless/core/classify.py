"""
Abandonment Classifier -- Label every commit visible, hidden or abandoned

Rules, applied to a graph and the replayed history of the same log prefix:

  visible    reachable from a current ref head (HEAD included)
  abandoned  not visible, not manually hidden, and either
               - reachable from something a ref pointed to earlier, or
               - rewritten, with the latest rewrite target visible
  hidden     everything else

Parent links are immutable, so a non-visible commit never has a visible
descendant. Refs always win over manual hides.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Set, Iterable, Iterator

import xxhash

from .graph import CommitGraph
from .replay import EventReplayer


class Classification(Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ClassificationResult:
    """oid -> Classification for every commit in a graph."""
    labels: Dict[str, Classification]

    def __getitem__(self, oid: str) -> Classification:
        return self.labels[oid]

    def __contains__(self, oid: str) -> bool:
        return oid in self.labels

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.labels))

    def __len__(self) -> int:
        return len(self.labels)

    def get(self, oid: str, default=None):
        return self.labels.get(oid, default)

    def with_label(self, label: Classification) -> Set[str]:
        return {oid for oid, value in self.labels.items() if value == label}

    @property
    def visible(self) -> Set[str]:
        return self.with_label(Classification.VISIBLE)

    @property
    def hidden(self) -> Set[str]:
        return self.with_label(Classification.HIDDEN)

    @property
    def abandoned(self) -> Set[str]:
        return self.with_label(Classification.ABANDONED)

    def restricted_to(self, oids: Iterable[str]) -> 'ClassificationResult':
        keep = set(oids)
        return ClassificationResult({oid: v for oid, v in self.labels.items() if oid in keep})

    def digest(self) -> str:
        """Order-independent digest; equal labelings give equal digests."""
        h = xxhash.xxh64()
        for oid in sorted(self.labels):
            h.update(f"{oid}:{self.labels[oid].value}\n".encode())
        return h.hexdigest()

    def to_dict(self) -> Dict[str, str]:
        return {oid: self.labels[oid].value for oid in sorted(self.labels)}


class AbandonmentClassifier:
    """Stateless. classify() is a pure function of its inputs."""

    def classify(self, graph: CommitGraph, history: EventReplayer) -> ClassificationResult:
        visible = graph.ancestors(graph.refs.heads())
        once_reachable = graph.ancestors(history.ref_targets_ever)

        labels: Dict[str, Classification] = {}
        for oid in graph.nodes:
            if oid in visible:
                labels[oid] = Classification.VISIBLE
            elif history.is_manually_hidden(oid):
                labels[oid] = Classification.HIDDEN
            elif oid in once_reachable or self._rewritten_into(oid, history, visible):
                labels[oid] = Classification.ABANDONED
            else:
                labels[oid] = Classification.HIDDEN
        return ClassificationResult(labels)

    @staticmethod
    def _rewritten_into(oid: str, history: EventReplayer, visible: Set[str]) -> bool:
        target = history.rewrite_target(oid)
        return target is not None and target in visible


def classify(graph: CommitGraph, history: EventReplayer) -> ClassificationResult:
    return AbandonmentClassifier().classify(graph, history)


def summarize(result: ClassificationResult) -> List[str]:
    """One line per label with its count, for status output and logs."""
    return [
        f"{label.value}: {len(result.with_label(label))}"
        for label in Classification
    ]
