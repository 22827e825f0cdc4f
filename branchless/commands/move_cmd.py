"""
MoveCommand -- Replay commits onto new parents

Handles rewriting:
- move: a commit and its visible descendants onto a destination
- restack: children of rewritten commits onto the rewritten versions
- --continue / --abort for a move paused on a conflict
"""

from typing import Optional

from ..commands.base import BaseCommand
from ..core.errors import ConflictError
from ..core.rewrite import MoveResult, MoveStatus
from ..presentation.symbols import short_oid


class MoveCommand(BaseCommand):
    """Command for move, restack and their continue/abort."""

    def move(self, source: Optional[str] = None, destination: Optional[str] = None,
             base: bool = False, dry_run: bool = False) -> int:
        self.workflow.require_no_move()
        result = self.workflow.move(source, destination, dry_run=dry_run, base=base)
        return self._report(result, dry_run)

    def restack(self, dry_run: bool = False) -> int:
        self.workflow.require_no_move()
        result = self.workflow.restack(dry_run=dry_run)
        if result.plan.is_empty:
            print("No abandoned commits to restack.")
            return 0
        return self._report(result, dry_run)

    def continue_move(self, resolved: Optional[str] = None) -> int:
        return self._report(self.workflow.continue_move(resolved or None), dry_run=False)

    def abort(self) -> int:
        result = self.workflow.abort_move()
        print(f"{self.symbols.check_pass} Move aborted at step {result.halted_index}")
        return 0

    def _report(self, result: MoveResult, dry_run: bool) -> int:
        symbols = self.symbols
        plan = result.plan

        if dry_run:
            if plan.is_empty:
                print("Nothing to move.")
            else:
                print(f"Would replay {len(plan)} commit(s):")
                for line in plan.describe():
                    print(f"  {line}")
            return 0

        for old_oid, new_oid in plan.rewritten.items():
            print(f"  {short_oid(old_oid)} {symbols.arrow} {short_oid(new_oid)}")

        if result.status == MoveStatus.PAUSED:
            conflict = result.conflict
            print(f"{symbols.check_fail} {conflict}")
            for path in conflict.paths:
                print(f"  conflict: {path}")
            print("Resolve, commit the result, then: branchless move --continue <commit>")
            print("Or give up with: branchless move --abort")
            return ConflictError.exit_code

        print(f"{symbols.check_pass} Moved {result.applied} commit(s)")
        return 0


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['move', 'restack']


def register_parser(subparsers):
    """Register move and restack command parsers."""
    p1 = subparsers.add_parser('move', help='Move a commit and its descendants onto another commit')
    p1.add_argument('--source', '-s', metavar='COMMIT',
                    help='Commit to move, with its descendants (default: HEAD)')
    p1.add_argument('--dest', '-d', metavar='COMMIT',
                    help='New parent (default: HEAD)')
    p1.add_argument('--base', '-b', action='store_true',
                    help='Move the whole line of work the source belongs to')
    p1.add_argument('--dry-run', action='store_true',
                    help='Print the plan without applying it')
    p1.add_argument('--continue', dest='continue_move', nargs='?', const='', default=None,
                    metavar='COMMIT',
                    help='Resume a paused move (COMMIT: your resolution of the halted step)')
    p1.add_argument('--abort', action='store_true',
                    help='Abandon a paused move and restore moved refs')

    p2 = subparsers.add_parser('restack', help='Move abandoned commits onto their rewritten parents')
    p2.add_argument('--dry-run', action='store_true',
                    help='Print the plan without applying it')
    return p1, p2


def handle(cli, args):
    """Handle move or restack command dispatch."""
    cmd = MoveCommand(cli)
    if args.command == 'restack':
        return cmd.restack(dry_run=args.dry_run)
    if args.abort:
        return cmd.abort()
    if args.continue_move is not None:
        return cmd.continue_move(args.continue_move)
    return cmd.move(args.source, args.dest, base=args.base, dry_run=args.dry_run)
