"""
Tests for Commit Graph -- DAG rebuilt from refs and mentioned oids

These tests validate:
- The builder walks every ref head and extra oid back to the roots
- Children order, traversal and topo order are deterministic
- Unresolvable oids raise GraphError
"""

import pytest

from branchless.core.errors import GraphError
from branchless.core.graph import CommitGraph, CommitGraphBuilder, CommitNode, RefSnapshot


def node(oid, *parents, timestamp=0):
    return CommitNode(oid=oid, parents=tuple(parents), timestamp=timestamp, summary=f"commit {oid}")


@pytest.fixture
def nodes():
    """
        r - a - b - m (merge of b and c)
             \\     /
              c ---
        x (unreferenced, only mentioned)
    """
    return {n.oid: n for n in [
        node("r", timestamp=1),
        node("a", "r", timestamp=2),
        node("b", "a", timestamp=3),
        node("c", "a", timestamp=4),
        node("m", "b", "c", timestamp=5),
        node("x", "r", timestamp=6),
    ]}


@pytest.fixture
def graph(nodes):
    return CommitGraphBuilder(nodes.get).build(RefSnapshot({"refs/heads/main": "m", "HEAD": "m"}))


class TestRefSnapshot:
    """Immutable ref mapping."""

    def test_drops_empty_targets(self):
        refs = RefSnapshot({"HEAD": "a", "refs/heads/gone": None})
        assert list(refs) == ["HEAD"]

    def test_refs_at_puts_head_last(self):
        refs = RefSnapshot({"HEAD": "a", "refs/heads/z": "a", "refs/heads/b": "a"})
        assert refs.refs_at("a") == ["refs/heads/b", "refs/heads/z", "HEAD"]

    def test_with_ref_returns_new_snapshot(self):
        refs = RefSnapshot({"HEAD": "a"})
        moved = refs.with_ref("HEAD", "b")
        assert refs.head == "a" and moved.head == "b"
        assert "HEAD" not in refs.with_ref("HEAD", None)


class TestBuilder:
    """Walking from heads to roots."""

    def test_walks_to_roots(self, graph):
        assert set(graph.nodes) == {"r", "a", "b", "c", "m"}

    def test_extra_oids_included(self, nodes):
        graph = CommitGraphBuilder(nodes.get).build(RefSnapshot({"HEAD": "b"}), extra_oids=["x"])
        assert "x" in graph
        assert "c" not in graph

    def test_missing_commit_raises(self, nodes):
        builder = CommitGraphBuilder(nodes.get)
        with pytest.raises(GraphError) as excinfo:
            builder.build(RefSnapshot({"HEAD": "nope"}))
        assert excinfo.value.oid == "nope"

    def test_resolves_each_commit_once(self, nodes):
        calls = []

        def resolver(oid):
            calls.append(oid)
            return nodes.get(oid)

        builder = CommitGraphBuilder(resolver)
        builder.build(RefSnapshot({"HEAD": "m"}))
        builder.build(RefSnapshot({"HEAD": "m"}), extra_oids=["b"])
        assert sorted(calls) == sorted(set(calls))

    def test_deterministic(self, nodes):
        refs = RefSnapshot({"HEAD": "m", "refs/heads/x": "x"})
        first = CommitGraphBuilder(nodes.get).build(refs)
        second = CommitGraphBuilder(nodes.get).build(refs, extra_oids=["a", "x"])
        assert first.fingerprint() == second.fingerprint()


class TestTraversal:
    """Ancestry queries."""

    def test_children_sorted_by_time(self, graph):
        assert graph.children_of("a") == ("b", "c")
        assert graph.parents_of("m") == ("b", "c")

    def test_ancestors_inclusive(self, graph):
        assert graph.ancestors(["b"]) == {"r", "a", "b"}

    def test_descendants_within(self, graph):
        assert graph.descendants("a") == {"a", "b", "c", "m"}
        assert graph.descendants("a", within={"b"}) == {"a", "b"}

    def test_is_ancestor(self, graph):
        assert graph.is_ancestor("r", "m")
        assert not graph.is_ancestor("b", "c")

    def test_merge_base(self, graph):
        assert graph.merge_base("b", "c") == "a"
        assert graph.merge_base("m", "c") == "c"

    def test_topo_sort_parents_first(self, graph):
        order = graph.topo_sort(["m", "c", "b", "a"])
        assert order == ["a", "b", "c", "m"]

    def test_unknown_oid_raises(self, graph):
        with pytest.raises(GraphError):
            graph.node("zzz")

    def test_disjoint_histories(self):
        graph = CommitGraph({"p": node("p"), "q": node("q")}, RefSnapshot({"HEAD": "p"}))
        assert graph.merge_base("p", "q") is None
