"""
Shared pytest fixtures for the branchless test suite.

Provides common fixtures using the BranchlessTestFactory pattern:
a real SQLite event log in tmp_path over an in-memory object store,
so nothing here needs git.

Usage in tests:
    def test_something(branchless_factory):
        a = branchless_factory.commit("A", branch_name="master")
        assert branchless_factory.labels()[a] == "visible"

    def test_with_history(stack_env):
        # stack_env: master -> A, feature -> A <- B <- C
        snapshot = stack_env.snapshot()
"""

import pytest

from branchless.config import ConfigManager
from tests.factories import BranchlessTestFactory


@pytest.fixture(autouse=True)
def isolated_user_config(tmp_path, monkeypatch):
    """Keep ~/.branchless and BRANCHLESS_* settings out of every test."""
    monkeypatch.setattr(ConfigManager, "USER_CONFIG_DIR", tmp_path / "user-config")
    for name in ("BRANCHLESS_MAIN_BRANCH", "BRANCHLESS_LOG_LEVEL", "BRANCHLESS_SUPPRESS_HOOKS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def branchless_factory(tmp_path):
    """
    Create an empty BranchlessTestFactory instance.

    Use this when you need fine-grained control over test data.
    """
    factory = BranchlessTestFactory(tmp_path)
    yield factory
    factory.close()


@pytest.fixture
def stack_env(tmp_path):
    """
    A BranchlessTestFactory with a small stack of work.

        root (master)
          \\
           A - B - C (feature, HEAD)

    Oids are stored on the factory as `root`, `a`, `b`, `c`.
    """
    factory = BranchlessTestFactory(tmp_path)
    factory.root = factory.commit("root", branch_name="master")
    factory.a = factory.commit("A")
    factory.b = factory.commit("B")
    factory.c = factory.commit("C", branch_name="feature")
    yield factory
    factory.close()
