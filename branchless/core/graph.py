"""
Commit Graph -- DAG reconstructed from a log prefix

This is a PROJECTION, not source of truth.
Rebuilt per command from the event log and the object store; never persisted.

The graph is a pure function of (ref snapshot, mentioned oids, object store):
nodes are keyed by oid and children are sorted by (timestamp, oid), so the
result does not depend on traversal order.
"""

import heapq
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable, Optional, List, Dict, Set, Tuple, Iterable, Iterator

import xxhash

from .errors import GraphError


@dataclass(frozen=True)
class CommitNode:
    oid: str
    parents: Tuple[str, ...] = ()
    author: str = ""
    timestamp: int = 0  # Committer time, seconds since epoch
    summary: str = ""


# Resolves an oid to its node. Returns None (or raises GraphError) if missing.
OidResolver = Callable[[str], Optional[CommitNode]]


class RefSnapshot(Mapping):
    """
    Immutable mapping of ref name -> oid at one point of the log.

    Names are full git names (refs/heads/main) plus HEAD.
    """

    def __init__(self, refs: Optional[Dict[str, str]] = None):
        self._refs = {name: oid for name, oid in (refs or {}).items() if oid}

    def __getitem__(self, name: str) -> str:
        return self._refs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._refs))

    def __len__(self) -> int:
        return len(self._refs)

    def __repr__(self) -> str:
        return f"RefSnapshot({dict(sorted(self._refs.items()))!r})"

    @property
    def head(self) -> Optional[str]:
        return self._refs.get("HEAD")

    def heads(self) -> List[str]:
        """Distinct oids pointed to by any ref, sorted."""
        return sorted(set(self._refs.values()))

    def refs_at(self, oid: str) -> List[str]:
        """Ref names pointing at `oid`, HEAD last."""
        names = [name for name in sorted(self._refs) if self._refs[name] == oid and name != "HEAD"]
        if self._refs.get("HEAD") == oid:
            names.append("HEAD")
        return names

    def with_ref(self, name: str, oid: Optional[str]) -> 'RefSnapshot':
        refs = dict(self._refs)
        if oid:
            refs[name] = oid
        else:
            refs.pop(name, None)
        return RefSnapshot(refs)


class CommitGraph:
    """
    Immutable commit DAG plus the ref snapshot it was built from.

    Every parent of every node is itself a node: the builder walks to roots.
    """

    def __init__(self, nodes: Dict[str, CommitNode], refs: RefSnapshot):
        self.nodes: Dict[str, CommitNode] = dict(nodes)
        self.refs = refs

        children: Dict[str, Set[str]] = {oid: set() for oid in self.nodes}
        for node in self.nodes.values():
            for parent in node.parents:
                if parent in children:
                    children[parent].add(node.oid)
        self._children: Dict[str, Tuple[str, ...]] = {
            oid: tuple(sorted(kids, key=self.sort_key))
            for oid, kids in children.items()
        }

    def __contains__(self, oid: str) -> bool:
        return oid in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.nodes))

    def sort_key(self, oid: str) -> Tuple[int, str]:
        return (self.nodes[oid].timestamp, oid)

    @property
    def head(self) -> Optional[str]:
        return self.refs.head

    def get(self, oid: str) -> Optional[CommitNode]:
        return self.nodes.get(oid)

    def node(self, oid: str) -> CommitNode:
        node = self.nodes.get(oid)
        if node is None:
            raise GraphError(f"Commit {oid} is not in the graph", oid=oid)
        return node

    def parents_of(self, oid: str) -> Tuple[str, ...]:
        return self.node(oid).parents

    def children_of(self, oid: str) -> Tuple[str, ...]:
        self.node(oid)
        return self._children[oid]

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def ancestors(self, oids: Iterable[str]) -> Set[str]:
        """All ancestors of `oids`, inclusive."""
        seen: Set[str] = set()
        stack = [oid for oid in oids if oid in self.nodes]
        while stack:
            oid = stack.pop()
            if oid in seen:
                continue
            seen.add(oid)
            stack.extend(p for p in self.nodes[oid].parents if p not in seen)
        return seen

    def descendants(self, oid: str, within: Optional[Set[str]] = None) -> Set[str]:
        """
        All descendants of `oid`, inclusive.

        With `within`, traversal does not enter commits outside that set
        (`oid` itself is always included).
        """
        self.node(oid)
        seen = {oid}
        stack = [oid]
        while stack:
            current = stack.pop()
            for child in self._children[current]:
                if child in seen:
                    continue
                if within is not None and child not in within:
                    continue
                seen.add(child)
                stack.append(child)
        return seen

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if `ancestor` is reachable from `descendant` (or equal)."""
        if ancestor not in self.nodes or descendant not in self.nodes:
            return False
        return ancestor in self.ancestors([descendant])

    def merge_base(self, a: str, b: str) -> Optional[str]:
        """
        Best common ancestor of `a` and `b`, or None if their histories are disjoint.

        When several best candidates exist (criss-cross merges), the latest
        by (timestamp, oid) wins so the answer is deterministic.
        """
        common = self.ancestors([a]) & self.ancestors([b])
        if not common:
            return None
        proper = self.ancestors(p for c in common for p in self.nodes[c].parents)
        best = common - proper
        return max(best, key=self.sort_key)

    def topo_sort(self, oids: Iterable[str]) -> List[str]:
        """
        Order `oids` parents-first.

        Only edges between members of `oids` count. Ties are broken by
        (timestamp, oid) so the order is stable.
        """
        members = set(oids)
        for oid in members:
            self.node(oid)

        pending = {
            oid: sum(1 for p in set(self.nodes[oid].parents) if p in members)
            for oid in members
        }
        ready = [self.sort_key(oid) for oid, count in pending.items() if count == 0]
        heapq.heapify(ready)

        order: List[str] = []
        while ready:
            _, oid = heapq.heappop(ready)
            order.append(oid)
            for child in self._children[oid]:
                if child in pending:
                    pending[child] -= 1
                    if pending[child] == 0:
                        heapq.heappush(ready, self.sort_key(child))
        return order

    def fingerprint(self) -> str:
        """Stable digest of nodes, edges and refs. Equal graphs, equal fingerprints."""
        h = xxhash.xxh64()
        for oid in sorted(self.nodes):
            h.update(oid.encode())
            h.update(b"<")
            h.update(",".join(self.nodes[oid].parents).encode())
            h.update(b"\n")
        for name in self.refs:
            h.update(f"{name}={self.refs[name]}\n".encode())
        return h.hexdigest()


class CommitGraphBuilder:
    """
    Builds CommitGraphs by walking parents through an oid resolver.

    Nodes are memoised for the lifetime of the builder, which is one
    command invocation: commits are immutable, so the cache never goes stale.
    """

    def __init__(self, resolver: OidResolver):
        self.resolver = resolver
        self._cache: Dict[str, CommitNode] = {}

    def resolve(self, oid: str) -> CommitNode:
        node = self._cache.get(oid)
        if node is None:
            node = self.resolver(oid)
            if node is None:
                raise GraphError(f"Cannot resolve commit {oid}", oid=oid)
            self._cache[oid] = node
        return node

    def build(self, refs: RefSnapshot, extra_oids: Iterable[str] = ()) -> CommitGraph:
        """
        Walk from every ref head and every extra oid back to the roots.

        Raises:
            GraphError: an oid (or one of its parents) cannot be resolved
        """
        nodes: Dict[str, CommitNode] = {}
        stack = list(refs.heads()) + list(extra_oids)
        while stack:
            oid = stack.pop()
            if oid in nodes:
                continue
            node = self.resolve(oid)
            nodes[oid] = node
            stack.extend(p for p in node.parents if p not in nodes)
        return CommitGraph(nodes, refs)
