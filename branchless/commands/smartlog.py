"""
SmartlogCommand -- Show the commits you are working on

Prints the smartlog of the view cursor: after an undo it shows the
repository as it was at that point in history.
"""

from ..commands.base import BaseCommand
from ..presentation.smartlog import render_smartlog


class SmartlogCommand(BaseCommand):
    """Command for the smartlog view."""

    def smartlog(self) -> int:
        snapshot = self.workflow.smartlog()
        output = render_smartlog(snapshot, self.symbols)
        if output:
            print(output)
        else:
            print("No commits to show.")

        if self.workflow.move_in_progress():
            print()
            print("A move is in progress: branchless move --continue | --abort")
        return 0


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['smartlog', 'sl']


def register_parser(subparsers):
    """Register smartlog command parser (and its `sl` alias)."""
    subparsers.add_parser('smartlog', aliases=['sl'], help='Show the commits you are working on')


def handle(cli, args):
    """Handle smartlog command dispatch."""
    return SmartlogCommand(cli).smartlog()
