"""
Tests for Abandonment Classifier -- visible, hidden, abandoned

These tests validate:
- Everything reachable from a ref is visible (refs beat hide markers)
- Commits left behind by a rewrite are abandoned
- Another ref on the old commit keeps it visible
- Classification is a pure function of the log prefix
"""

from branchless.core.classify import AbandonmentClassifier, Classification, summarize
from branchless.core.events import commit_created


class TestVisibility:
    """Reachable from a ref head means visible."""

    def test_ancestors_of_refs_visible(self, stack_env):
        labels = stack_env.labels()
        for oid in (stack_env.root, stack_env.a, stack_env.b, stack_env.c):
            assert labels[oid] == "visible"

    def test_hide_does_not_override_refs(self, stack_env):
        stack_env.workflow.hide(stack_env.b)
        snapshot = stack_env.snapshot()
        assert snapshot.history.is_manually_hidden(stack_env.b)
        assert snapshot.is_visible(stack_env.b)

    def test_no_visible_commit_below_non_visible(self, stack_env):
        stack_env.set_ref("feature", stack_env.a)
        stack_env.checkout(stack_env.a)
        snapshot = stack_env.snapshot()
        graph = snapshot.graph
        for oid in snapshot.classification.visible:
            assert all(p in snapshot.classification.visible for p in graph.parents_of(oid))


class TestAbandonment:
    """Commits a ref used to reach, or that were rewritten."""

    def test_rewrite_abandons_old_commit_and_descendant(self, branchless_factory):
        f = branchless_factory
        a = f.commit("A", branch_name="master")
        b = f.commit("B", branch_name="master")
        a2 = f.amend(a)
        f.set_ref("master", a2)
        f.checkout(a2)

        labels = f.labels()
        assert labels[a2] == "visible"
        assert labels[a] == "abandoned"
        assert labels[b] == "abandoned"

    def test_extra_branch_keeps_old_commit_visible(self, branchless_factory):
        f = branchless_factory
        a = f.commit("A", branch_name="master")
        a2 = f.amend(a)
        assert f.labels()[a] == "abandoned"
        assert f.labels()[a2] == "visible"

        f.set_ref("old", a)
        assert f.labels()[a] == "visible"

    def test_moved_away_branch_abandons(self, stack_env):
        stack_env.set_ref("feature", stack_env.root)
        stack_env.checkout(stack_env.root)
        labels = stack_env.labels()
        assert labels[stack_env.c] == "abandoned"
        assert labels[stack_env.a] == "abandoned"
        assert labels[stack_env.root] == "visible"

    def test_manual_hide_of_abandoned_commit(self, stack_env):
        stack_env.set_ref("feature", stack_env.root)
        stack_env.checkout(stack_env.root)
        stack_env.workflow.hide(stack_env.c)
        labels = stack_env.labels()
        assert labels[stack_env.c] == "hidden"
        assert labels[stack_env.b] == "abandoned"

    def test_never_referenced_commit_is_hidden(self, branchless_factory):
        f = branchless_factory
        a = f.commit("A", branch_name="master")
        stray = f.store.make_commit("stray", (a,))
        f.log.append_event(commit_created(stray, (a,)))
        assert f.labels()[stray] == "hidden"


class TestDeterminism:
    """Same prefix, same answer."""

    def test_classify_is_repeatable(self, stack_env):
        stack_env.set_ref("feature", stack_env.a)
        first = stack_env.snapshot()
        second = stack_env.snapshot()
        assert first.classification.digest() == second.classification.digest()
        assert first.graph.fingerprint() == second.graph.fingerprint()

    def test_classifier_is_stateless(self, stack_env):
        snapshot = stack_env.snapshot()
        classifier = AbandonmentClassifier()
        result = classifier.classify(snapshot.graph, snapshot.history)
        assert result.to_dict() == snapshot.classification.to_dict()

    def test_earlier_prefix_unchanged_by_later_events(self, stack_env):
        cursor = stack_env.log.current_cursor()
        before = stack_env.snapshot(cursor).classification.to_dict()
        stack_env.set_ref("feature", stack_env.root)
        stack_env.checkout(stack_env.root)
        assert stack_env.snapshot(cursor).classification.to_dict() == before

    def test_summarize_counts_each_label(self, stack_env):
        lines = summarize(stack_env.snapshot().classification)
        assert lines == ["visible: 4", "hidden: 0", "abandoned: 0"]

    def test_restricted_to(self, stack_env):
        result = stack_env.snapshot().classification.restricted_to([stack_env.a])
        assert list(result) == [stack_env.a]
        assert result[stack_env.a] == Classification.VISIBLE
