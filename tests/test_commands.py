"""
Tests for the CLI commands -- parsing, dispatch and command output

Commands run against a BranchlessTestFactory CLI mock: real event log,
in-memory repository, ASCII symbols.
"""

import argparse

import pytest

from branchless.cli import build_parser, main
from branchless.commands import dispatch, get_registered_commands
from branchless.commands.config_cmd import ConfigCommand, handle as config_handle
from branchless.commands.hide_cmd import HideCommand
from branchless.commands.move_cmd import MoveCommand
from branchless.commands.smartlog import SmartlogCommand
from branchless.commands.undo_cmd import UndoCommand
from branchless.core.errors import UserAbort
from branchless.presentation.symbols import short_oid


@pytest.fixture
def move_env(stack_env):
    stack_env.m2 = stack_env.commit("M2", parent=stack_env.root, branch_name="master", checkout=False)
    return stack_env


# =============================================================================
# Parser and registry
# =============================================================================

class TestParser:
    """build_parser registers every command module."""

    def test_registered_commands(self):
        build_parser()
        names = set(get_registered_commands())
        for name in ("init", "config", "smartlog", "sl", "hide", "unhide",
                     "undo", "redo", "move", "restack", "hook-post-commit",
                     "hook-reference-transaction"):
            assert name in names

    def test_smartlog_alias(self):
        args = build_parser().parse_args(["sl"])
        assert args.command == "sl"

    def test_move_continue_forms(self):
        parser = build_parser()
        assert parser.parse_args(["move", "--continue"]).continue_move == ""
        assert parser.parse_args(["move", "--continue", "abc123"]).continue_move == "abc123"
        assert parser.parse_args(["move", "-s", "x", "-d", "y"]).continue_move is None

    def test_undo_steps(self):
        args = build_parser().parse_args(["undo", "-n", "3", "--dry-run"])
        assert args.steps == 3
        assert args.dry_run is True

    def test_hook_args(self):
        args = build_parser().parse_args(["hook-reference-transaction", "committed"])
        assert args.hook_args == ["committed"]

    def test_dispatch_unknown(self):
        build_parser()
        with pytest.raises(KeyError):
            dispatch("frobnicate", None, None)

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage:" in capsys.readouterr().out


# =============================================================================
# Smartlog
# =============================================================================

class TestSmartlogCommand:

    def test_prints_tree(self, stack_env, capsys):
        assert stack_env.create_command(SmartlogCommand).smartlog() == 0
        out = capsys.readouterr().out
        assert f"@ {short_oid(stack_env.c)} (feature) C" in out

    def test_empty(self, branchless_factory, capsys):
        branchless_factory.create_command(SmartlogCommand).smartlog()
        assert "No commits to show." in capsys.readouterr().out

    def test_mentions_paused_move(self, move_env, capsys):
        move_env.store.conflicts[move_env.b] = ["file.txt"]
        move_env.workflow.move(move_env.a, move_env.m2)
        move_env.create_command(SmartlogCommand).smartlog()
        assert "move is in progress" in capsys.readouterr().out


# =============================================================================
# Hide / unhide
# =============================================================================

class TestHideCommand:

    def test_hide_and_unhide(self, stack_env, capsys):
        f = stack_env
        cmd = f.create_command(HideCommand)

        cmd.hide([f.b])
        out = capsys.readouterr().out
        assert f"Hid commit: {short_oid(f.b)}" in out
        assert "To unhide" in out

        cmd.hide([f.b])
        assert "Already hidden" in capsys.readouterr().out

        cmd.unhide([f.b])
        assert f"Unhid commit: {short_oid(f.b)}" in capsys.readouterr().out

    def test_recursive(self, stack_env, capsys):
        f = stack_env
        f.create_command(HideCommand).hide([f.a], recursive=True)
        out = capsys.readouterr().out
        assert out.count("Hid commit") == 3

    def test_blocked_by_paused_move(self, move_env):
        move_env.store.conflicts[move_env.b] = ["file.txt"]
        move_env.workflow.move(move_env.a, move_env.m2)
        with pytest.raises(UserAbort, match="in progress"):
            move_env.create_command(HideCommand).hide([move_env.c])


# =============================================================================
# Undo / redo
# =============================================================================

class TestUndoCommand:

    def test_undo_then_redo(self, stack_env, capsys):
        f = stack_env
        cmd = f.create_command(UndoCommand)

        assert cmd.undo(1) == 0
        out = capsys.readouterr().out
        assert "Undo: cursor 10 -> 9" in out
        assert "[OK] Applied" in out
        assert f.head == f.b

        cmd.redo(1)
        assert "Redo: cursor 9 -> 10" in capsys.readouterr().out
        assert f.head == f.c

        cmd.redo(1)
        assert "Nothing to redo." in capsys.readouterr().out

    def test_dry_run(self, stack_env, capsys):
        f = stack_env
        f.create_command(UndoCommand).undo(1, dry_run=True)
        assert "Dry run: nothing applied." in capsys.readouterr().out
        assert f.head == f.c


# =============================================================================
# Move / restack
# =============================================================================

class TestMoveCommand:

    def test_move(self, move_env, capsys):
        f = move_env
        assert f.create_command(MoveCommand).move(f.a, f.m2) == 0
        assert "[OK] Moved 3 commit(s)" in capsys.readouterr().out

    def test_dry_run(self, move_env, capsys):
        f = move_env
        f.create_command(MoveCommand).move(f.a, f.m2, dry_run=True)
        out = capsys.readouterr().out
        assert "Would replay 3 commit(s):" in out
        assert "<step 0>" in out

    def test_conflict_exit_code(self, move_env, capsys):
        f = move_env
        f.store.conflicts[f.b] = ["file.txt"]
        assert f.create_command(MoveCommand).move(f.a, f.m2) == 2
        out = capsys.readouterr().out
        assert "conflict: file.txt" in out
        assert "--continue" in out

    def test_continue_and_abort(self, move_env, capsys):
        f = move_env
        f.store.conflicts[f.b] = ["file.txt"]
        cmd = f.create_command(MoveCommand)
        cmd.move(f.a, f.m2)
        assert cmd.abort() == 0
        assert "Move aborted at step 1" in capsys.readouterr().out

        del f.store.conflicts[f.b]
        f.store.conflicts[f.c] = ["other.txt"]
        cmd.move(f.a, f.m2)
        del f.store.conflicts[f.c]
        assert cmd.continue_move("") == 0
        assert "[OK] Moved" in capsys.readouterr().out

    def test_nothing_to_restack(self, stack_env, capsys):
        stack_env.create_command(MoveCommand).restack()
        assert "No abandoned commits to restack." in capsys.readouterr().out


# =============================================================================
# Config
# =============================================================================

class TestConfigCommand:

    def test_set_and_get(self, branchless_factory, capsys):
        cmd = branchless_factory.create_command(ConfigCommand)
        assert cmd.set_config("display.symbols", "ascii") == 0
        assert "[OK] Set display.symbols = ascii" in capsys.readouterr().out

        assert cmd.get_config("display.symbols") == 0
        assert capsys.readouterr().out.strip() == "ascii"

    def test_invalid_value(self, branchless_factory, capsys):
        cmd = branchless_factory.create_command(ConfigCommand)
        assert cmd.set_config("logging.level", "LOUD") == 1
        assert "Unknown log level" in capsys.readouterr().out

    def test_unknown_key(self, branchless_factory, capsys):
        assert branchless_factory.create_command(ConfigCommand).get_config("nope") == 1

    def test_set_needs_equals(self, branchless_factory, capsys):
        cli = branchless_factory.create_cli_mock()
        args = argparse.Namespace(set="core.main_branch", get=None, user=False)
        assert config_handle(cli, args) == 1
        assert "KEY=VALUE" in capsys.readouterr().out

    def test_show(self, branchless_factory, capsys):
        branchless_factory.create_command(ConfigCommand).show_config()
        assert "Configuration:" in capsys.readouterr().out
