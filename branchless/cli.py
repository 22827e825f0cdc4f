"""
CLI -- Command interface

Quiet by default: commands print their result, logs go to stderr
at the configured level.

Resources are opened on first use, so `init`, `config` and the hook
entry points work before the event log exists.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Optional, List

from .config import Config, ConfigManager
from .core.context import RepoContext
from .core.errors import BranchlessError, UserAbort
from .core.workflow import Workflow
from .logs import configure_logging
from .presentation.symbols import get_symbols, SymbolSet
from .services.git import GitRepository
from . import __version__


class BranchlessCLI:
    """Command-line interface for branchless."""

    def __init__(self, repo_path: Path):
        self.repo_path = Path(repo_path)
        self.repo = GitRepository(self.repo_path)
        self._config_manager: Optional[ConfigManager] = None
        self._ctx: Optional[RepoContext] = None
        self._workflow: Optional[Workflow] = None

    @property
    def state_dir(self) -> Path:
        return self.repo.state_dir

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            state_dir = self.state_dir if self.repo.is_git_repo else None
            self._config_manager = ConfigManager(state_dir)
        return self._config_manager

    @property
    def config(self) -> Config:
        return self.config_manager.load()

    @property
    def symbols(self) -> SymbolSet:
        return get_symbols(self.config.display.symbols)

    @property
    def is_initialized(self) -> bool:
        return self.repo.is_git_repo and (self.state_dir / self.config.core.db_name).exists()

    @property
    def ctx(self) -> RepoContext:
        """
        Open the repository context.

        Raises:
            UserAbort: branchless has not been initialized in this repository
        """
        if self._ctx is None:
            if not self.is_initialized:
                raise UserAbort("branchless is not initialized here; run `branchless init`")
            self.open_context()
        return self._ctx

    def open_context(self) -> RepoContext:
        """Open (creating if needed) the event log and bind it to the repository."""
        if self._ctx is None:
            config = self.config
            self.repo.tracked_prefixes = tuple(config.hooks.tracked_prefixes)
            self._ctx = RepoContext.open(self.repo, self.state_dir, config=config)
        return self._ctx

    @property
    def workflow(self) -> Workflow:
        if self._workflow is None:
            self._workflow = Workflow(self.ctx)
        return self._workflow

    def reload(self):
        """Drop cached configuration and context (after `init` rewrites the config)."""
        self.close()
        self._config_manager = None

    def close(self):
        if self._ctx is not None:
            self._ctx.close()
        self._ctx = None
        self._workflow = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="branchless",
        description="branchless -- Branchless workflow for git",
        epilog="Records what happens to your commits. Undo anything."
    )

    parser.add_argument(
        '--repo', '-C',
        default=os.environ.get("BRANCHLESS_REPO_PATH", "."),
        help='Repository directory (default: BRANCHLESS_REPO_PATH or current)'
    )

    parser.add_argument(
        '--log-level',
        default=None,
        help='Override logging.level for this invocation (DEBUG, INFO, ...)'
    )

    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'branchless {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Register all commands from command modules (self-registration pattern)
    from .commands import register_all
    register_all(subparsers)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the branchless CLI.

    Uses command registry pattern for modular command handling.
    Parser definitions and dispatch logic are in individual command modules.

    Returns:
        Process exit code (0 success, 1 user error, 2 conflict,
        3 unresolvable object, 4 storage failure)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    from .commands import dispatch

    cli = BranchlessCLI(Path(args.repo))
    try:
        configure_logging(args.log_level or cli.config.logging.level)
        result = dispatch(args.command, cli, args)
    except BranchlessError as e:
        print(f"branchless: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("branchless: interrupted", file=sys.stderr)
        return 130
    finally:
        cli.close()

    return result if isinstance(result, int) else 0


if __name__ == '__main__':
    sys.exit(main())
