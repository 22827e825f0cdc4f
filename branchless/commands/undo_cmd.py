"""
UndoCommand -- Move the repository backwards or forwards in its history

`undo -n N` goes N log cursors back, `redo -n N` N forward. The plan is
printed before it is applied; `--dry-run` stops there.
"""

from ..commands.base import BaseCommand
from ..core.undo import UndoResult


class UndoCommand(BaseCommand):
    """Command for undo and redo."""

    def undo(self, steps: int = 1, dry_run: bool = False) -> int:
        self.workflow.require_no_move()
        return self._report(self.workflow.undo(steps, dry_run=dry_run), "undo", dry_run)

    def redo(self, steps: int = 1, dry_run: bool = False) -> int:
        self.workflow.require_no_move()
        return self._report(self.workflow.redo(steps, dry_run=dry_run), "redo", dry_run)

    def _report(self, result: UndoResult, action: str, dry_run: bool) -> int:
        symbols = self.symbols
        plan = result.plan
        if plan.source_cursor == plan.target_cursor:
            print(f"Nothing to {action}.")
            return 0

        print(f"{action.capitalize()}: cursor {plan.source_cursor} {symbols.arrow} {plan.target_cursor}")
        for mutation in plan.ref_mutations:
            print(f"  {mutation.describe()}")
        for mutation in plan.visibility_mutations:
            print(f"  {mutation.describe()}")
        if plan.is_empty:
            print("  (no repository changes)")

        if dry_run:
            print("Dry run: nothing applied.")
        elif result.applied:
            print(f"{symbols.check_pass} Applied")
        return 0


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['undo', 'redo']


def register_parser(subparsers):
    """Register undo and redo command parsers."""
    parsers = []
    for name, help_text in (('undo', 'Go back in the event log'),
                            ('redo', 'Go forward again after undo')):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument('-n', '--steps', type=int, default=1,
                       help='Number of log cursors to move (default: 1)')
        p.add_argument('--dry-run', action='store_true',
                       help='Show what would change without applying it')
        parsers.append(p)
    return tuple(parsers)


def handle(cli, args):
    """Handle undo or redo command dispatch."""
    cmd = UndoCommand(cli)
    if args.command == 'undo':
        return cmd.undo(args.steps, dry_run=args.dry_run)
    return cmd.redo(args.steps, dry_run=args.dry_run)
