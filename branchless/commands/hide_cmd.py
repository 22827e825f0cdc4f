"""
HideCommand -- Take commits out of the smartlog, or bring them back

Hiding appends commit_hidden events; nothing in the repository changes.
A commit reachable from a ref stays visible whatever its marker says.
"""

from typing import List

from ..commands.base import BaseCommand
from ..presentation.symbols import short_oid


class HideCommand(BaseCommand):
    """Command for manual visibility changes."""

    def hide(self, commits: List[str], recursive: bool = False) -> int:
        self.workflow.require_no_move()
        total = 0
        for spec in commits:
            hidden = self.workflow.hide(spec, recursive=recursive)
            for oid in hidden:
                print(f"Hid commit: {short_oid(oid)}")
            if not hidden:
                print(f"Already hidden: {spec}")
            total += len(hidden)
        if total:
            print(f"To unhide: branchless unhide {' '.join(commits)}")
        return 0

    def unhide(self, commits: List[str], recursive: bool = False) -> int:
        self.workflow.require_no_move()
        for spec in commits:
            restored = self.workflow.unhide(spec, recursive=recursive)
            for oid in restored:
                print(f"Unhid commit: {short_oid(oid)}")
            if not restored:
                print(f"Not hidden: {spec}")
        return 0


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['hide', 'unhide']


def register_parser(subparsers):
    """Register hide and unhide command parsers."""
    p1 = subparsers.add_parser('hide', help='Hide commits from the smartlog')
    p1.add_argument('commits', nargs='+', help='Commits to hide (oid, branch, HEAD, ...)')
    p1.add_argument('--recursive', '-r', action='store_true',
                    help='Also hide all descendants')

    p2 = subparsers.add_parser('unhide', help='Bring hidden commits back')
    p2.add_argument('commits', nargs='+', help='Commits to unhide')
    p2.add_argument('--recursive', '-r', action='store_true',
                    help='Also unhide all descendants')
    return p1, p2


def handle(cli, args):
    """Handle hide or unhide command dispatch."""
    cmd = HideCommand(cli)
    if args.command == 'hide':
        return cmd.hide(args.commits, recursive=args.recursive)
    return cmd.unhide(args.commits, recursive=args.recursive)
