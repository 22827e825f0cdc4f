"""
BaseCommand -- Shared foundation for all CLI commands

Provides access to CLI resources via composition.
Commands receive the CLI instance and access its resources through properties.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..cli import BranchlessCLI


class BaseCommand:
    """
    Base class for CLI commands with access to shared resources.

    Commands don't open the repository themselves -- they access it via
    the CLI instance, which opens it lazily.
    """

    def __init__(self, cli: 'BranchlessCLI'):
        """
        Args:
            cli: The main BranchlessCLI instance holding all resources
        """
        self._cli = cli

    # -------------------------------------------------------------------------
    # Core resources (convenience properties)
    # -------------------------------------------------------------------------

    @property
    def repo(self):
        """Git repository (GitRepository)."""
        return self._cli.repo

    @property
    def state_dir(self):
        """Branchless state directory (<git-dir>/branchless)."""
        return self._cli.state_dir

    @property
    def config(self):
        """Application configuration."""
        return self._cli.config

    @property
    def config_manager(self):
        return self._cli.config_manager

    @property
    def symbols(self):
        """Symbol set for display (Unicode/ASCII)."""
        return self._cli.symbols

    # -------------------------------------------------------------------------
    # Engine (opened on first use)
    # -------------------------------------------------------------------------

    @property
    def ctx(self):
        """Repository context (event log + object store)."""
        return self._cli.ctx

    @property
    def workflow(self):
        """Command surface over the context."""
        return self._cli.workflow
