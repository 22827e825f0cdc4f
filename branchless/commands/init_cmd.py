"""
InitCommand -- Set up branchless in a git repository

Handles initialization:
- Detecting the main branch and saving it to the project config
- Installing the git hooks that record events
- Setting `git sl`, `git undo`, ... aliases
- Recording the current refs as the baseline transaction
"""

from ..commands.base import BaseCommand
from ..config import MAIN_BRANCH_CANDIDATES
from ..core.errors import UserAbort
from ..services.repository import short_ref_name


class InitCommand(BaseCommand):
    """Command for repository initialization."""

    def init(self, main_branch: str = None, aliases: bool = True) -> int:
        """
        Initialize branchless in the current repository.

        Args:
            main_branch: Main branch name; detected when None
            aliases: Also install the git aliases
        """
        symbols = self.symbols
        repo = self.repo
        if not repo.is_git_repo:
            raise UserAbort(f"Not a git repository: {repo.repo_path}")

        if main_branch:
            main = main_branch
        elif self.config_manager.project_config_path.exists():
            # Re-running init keeps the configured main branch
            main = self.config.core.main_branch
        else:
            main = self._detect_main_branch()
        error = self.config_manager.set("core.main_branch", main, scope="project")
        if error:
            print(f"{symbols.check_fail} {error}")
            return 1
        self._cli.reload()

        ok, hooks_message = repo.install_hooks()
        installed_aliases = repo.install_aliases() if aliases else []

        self._cli.open_context()
        recorded = self.workflow.record_baseline("init")

        print(f"{symbols.check_pass} branchless initialized in {repo.repo_path}")
        print(f"  Main branch: {main}")
        print(f"  Hooks: {hooks_message}")
        if installed_aliases:
            print(f"  Aliases: {', '.join('git ' + a for a in installed_aliases)}")
        print(f"  Baseline: {recorded} ref(s) recorded")
        return 0 if ok else 1

    def _detect_main_branch(self) -> str:
        detected = self.repo.detect_main_branch()
        if detected:
            return detected
        current = self.repo.current_branch()
        if current:
            return short_ref_name(current)
        return MAIN_BRANCH_CANDIDATES[0]

    def status(self) -> int:
        """Report whether the hooks are installed."""
        status = self.repo.hooks_status()
        mark = self.symbols.check_pass if status == "Installed" else self.symbols.check_fail
        print(f"{mark} Hooks: {status}")
        return 0 if status == "Installed" else 1

    def uninstall(self) -> int:
        """Remove the hooks. The event log is kept."""
        symbols = self.symbols
        ok, message = self.repo.uninstall_hooks()
        mark = symbols.check_pass if ok else symbols.check_fail
        print(f"{mark} {message}")
        return 0 if ok else 1


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAME = 'init'


def register_parser(subparsers):
    """Register init command parser."""
    p = subparsers.add_parser('init', help='Set up branchless in this repository')
    p.add_argument('--main-branch', metavar='NAME',
                   help=f'Main branch name (default: first of {", ".join(MAIN_BRANCH_CANDIDATES)} that exists)')
    p.add_argument('--no-aliases', action='store_true',
                   help='Do not set git aliases (git sl, git undo, ...)')
    p.add_argument('--status', action='store_true',
                   help='Show whether the branchless hooks are installed')
    p.add_argument('--uninstall', action='store_true',
                   help='Remove the branchless hooks (keeps the event log)')
    return p


def handle(cli, args):
    """Handle init command dispatch."""
    cmd = InitCommand(cli)
    if args.status:
        return cmd.status()
    if args.uninstall:
        return cmd.uninstall()
    return cmd.init(main_branch=args.main_branch, aliases=not args.no_aliases)
