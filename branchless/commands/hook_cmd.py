"""
HookCommand -- Entry points called by the installed git hooks

Each `hook-<name>` reads what git passes (arguments and stdin) and hands
it to the HookRecorder. They do nothing when branchless itself is the
one running git, or when the repository was never initialized.
"""

import logging
import sys
from typing import List

from ..commands.base import BaseCommand
from ..services.git import hooks_suppressed
from ..services.hooks import HookRecorder

logger = logging.getLogger(__name__)


class HookCommand(BaseCommand):
    """Records git hook invocations."""

    @property
    def recorder(self) -> HookRecorder:
        return HookRecorder(self.ctx)

    def run(self, hook: str, hook_args: List[str], stdin: str = "") -> int:
        if hooks_suppressed() or not self._cli.is_initialized:
            return 0
        recorder = self.recorder

        if hook == 'post-commit':
            recorded = recorder.post_commit()
        elif hook == 'post-rewrite':
            rewrite_type = hook_args[0] if hook_args else "unknown"
            recorded = recorder.post_rewrite(rewrite_type, stdin)
        elif hook == 'post-checkout':
            recorded = recorder.post_checkout()
        elif hook == 'reference-transaction':
            state = hook_args[0] if hook_args else ""
            recorded = recorder.reference_transaction(state, stdin)
        elif hook == 'pre-auto-gc':
            recorded = recorder.pre_auto_gc()
        else:
            raise AssertionError(f"Unhandled hook: {hook}")

        logger.debug("hook %s: %d", hook, recorded)
        return 0


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

HOOK_NAMES = ['post-commit', 'post-rewrite', 'post-checkout', 'reference-transaction', 'pre-auto-gc']

# Hooks that receive data on stdin
STDIN_HOOKS = {'post-rewrite', 'reference-transaction'}

COMMAND_NAMES = [f'hook-{name}' for name in HOOK_NAMES]


def register_parser(subparsers):
    """Register one internal command per git hook."""
    parsers = []
    for name in HOOK_NAMES:
        p = subparsers.add_parser(f'hook-{name}', help=f'(internal) git {name} hook')
        p.add_argument('hook_args', nargs='*', help='Arguments git passed to the hook')
        parsers.append(p)
    return tuple(parsers)


def handle(cli, args):
    """Handle hook-* command dispatch."""
    hook = args.command[len('hook-'):]
    stdin = sys.stdin.read() if hook in STDIN_HOOKS else ""
    return HookCommand(cli).run(hook, args.hook_args, stdin)
