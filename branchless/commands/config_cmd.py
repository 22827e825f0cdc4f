"""
ConfigCommand -- View and set configuration

Handles configuration operations:
- Displaying the merged configuration
- Setting a value in the project or user config
- Reading a single value
"""

from ..commands.base import BaseCommand


class ConfigCommand(BaseCommand):
    """Command for configuration management."""

    def show_config(self) -> int:
        """Show current configuration."""
        print(self.config_manager.display())
        return 0

    def get_config(self, key: str) -> int:
        value = self.config_manager.get(key)
        if value is None:
            print(f"{self.symbols.check_fail} Unknown setting: {key}")
            return 1
        print(value)
        return 0

    def set_config(self, key: str, value: str, scope: str = "project") -> int:
        """Set a configuration value."""
        symbols = self.symbols
        error = self.config_manager.set(key, value, scope)
        if error:
            print(f"{symbols.check_fail} {error}")
            return 1

        if scope == "project":
            saved_to = self.config_manager.project_config_path
        else:
            saved_to = self.config_manager.user_config_path
        print(f"{symbols.check_pass} Set {key} = {value} ({saved_to})")
        return 0


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAME = 'config'


def register_parser(subparsers):
    """Register config command parser."""
    p = subparsers.add_parser('config', help='View or set configuration')
    p.add_argument('--set', metavar='KEY=VALUE',
                   help='Set config value (e.g., core.main_branch=main)')
    p.add_argument('--get', metavar='KEY',
                   help='Print one config value')
    p.add_argument('--user', action='store_true',
                   help='Apply to user config instead of project')
    return p


def handle(cli, args):
    """Handle config command dispatch."""
    cmd = ConfigCommand(cli)
    if args.set:
        if '=' not in args.set:
            print("Error: Use format KEY=VALUE (e.g., core.main_branch=main)")
            return 1
        key, value = args.set.split('=', 1)
        scope = "user" if args.user else "project"
        return cmd.set_config(key, value, scope)
    if args.get:
        return cmd.get_config(args.get)
    return cmd.show_config()
