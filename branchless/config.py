"""
Configuration -- Centralized settings management

Config hierarchy (highest to lowest priority):
  1. Environment variables (BRANCHLESS_MAIN_BRANCH, BRANCHLESS_LOG_LEVEL)
  2. Project config (<git-dir>/branchless/config.yaml)
  3. User config (~/.branchless/config.yaml)
  4. Defaults
"""

import logging
import os
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from .presentation.symbols import get_symbols

logger = logging.getLogger(__name__)


# Candidate names probed by `init` when no main branch is configured
MAIN_BRANCH_CANDIDATES = ("master", "main", "mainline", "devel", "develop", "development", "trunk")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class CoreConfig:
    """Repository-level settings."""
    main_branch: str = "master"
    db_name: str = "db.sqlite3"

    @property
    def main_ref(self) -> str:
        if self.main_branch.startswith("refs/"):
            return self.main_branch
        return f"refs/heads/{self.main_branch}"

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if not self.main_branch or any(c.isspace() for c in self.main_branch):
            return f"Invalid main branch name '{self.main_branch}'"
        if not self.db_name or "/" in self.db_name:
            return f"Invalid database name '{self.db_name}'. Use a plain file name"
        return None


@dataclass
class DisplayConfig:
    """Display preferences."""
    symbols: str = "auto"  # "unicode" | "ascii" | "auto"

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        valid_symbols = ("unicode", "ascii", "auto")
        if self.symbols not in valid_symbols:
            return f"Unknown symbols setting '{self.symbols}'. Valid: {', '.join(valid_symbols)}"
        return None


@dataclass
class LoggingConfig:
    level: str = "WARNING"

    def validate(self) -> Optional[str]:
        if self.level.upper() not in LOG_LEVELS:
            return f"Unknown log level '{self.level}'. Valid: {', '.join(LOG_LEVELS)}"
        return None


@dataclass
class HooksConfig:
    """Which refs the git hooks record."""
    tracked_prefixes: List[str] = field(default_factory=lambda: ["refs/heads/"])

    def tracks(self, ref_name: str) -> bool:
        return ref_name == "HEAD" or any(ref_name.startswith(p) for p in self.tracked_prefixes)

    def validate(self) -> Optional[str]:
        bad = [p for p in self.tracked_prefixes if not p.startswith("refs/")]
        if bad:
            return f"Tracked prefixes must start with 'refs/': {', '.join(bad)}"
        return None


@dataclass
class Config:
    """Application configuration."""
    core: CoreConfig = field(default_factory=CoreConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    hooks: HooksConfig = field(default_factory=HooksConfig)

    def validate(self) -> Optional[str]:
        for section in (self.core, self.display, self.logging, self.hooks):
            error = section.validate()
            if error:
                return error
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "core": {
                "main_branch": self.core.main_branch,
                "db_name": self.core.db_name
            },
            "display": {
                "symbols": self.display.symbols
            },
            "logging": {
                "level": self.logging.level
            },
            "hooks": {
                "tracked_prefixes": list(self.hooks.tracked_prefixes)
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create from dictionary."""
        core_data = data.get("core") or {}
        display_data = data.get("display") or {}
        logging_data = data.get("logging") or {}
        hooks_data = data.get("hooks") or {}

        return cls(
            core=CoreConfig(
                main_branch=core_data.get("main_branch", "master"),
                db_name=core_data.get("db_name", "db.sqlite3")
            ),
            display=DisplayConfig(
                symbols=display_data.get("symbols", "auto")
            ),
            logging=LoggingConfig(
                level=str(logging_data.get("level", "WARNING")).upper()
            ),
            hooks=HooksConfig(
                tracked_prefixes=list(hooks_data.get("tracked_prefixes") or ["refs/heads/"])
            )
        )


class ConfigManager:
    """
    Manages configuration loading and persistence.

    Hierarchy:
      1. Environment
      2. Project config (<git-dir>/branchless/config.yaml)
      3. User config (~/.branchless/config.yaml)
      4. Defaults
    """

    USER_CONFIG_DIR = Path.home() / ".branchless"
    CONFIG_FILE = "config.yaml"

    # key -> (section, setting)
    KEYS = {
        "core.main_branch": ("core", "main_branch"),
        "core.db_name": ("core", "db_name"),
        "display.symbols": ("display", "symbols"),
        "logging.level": ("logging", "level"),
        "hooks.tracked_prefixes": ("hooks", "tracked_prefixes"),
    }

    def __init__(self, state_dir: Optional[Path] = None):
        """
        Args:
            state_dir: Per-repository state directory (<git-dir>/branchless).
                       None means user config and environment only.
        """
        self.state_dir = Path(state_dir) if state_dir else None
        self._config: Optional[Config] = None

    @property
    def project_config_path(self) -> Optional[Path]:
        if self.state_dir is None:
            return None
        return self.state_dir / self.CONFIG_FILE

    @property
    def user_config_path(self) -> Path:
        return self.USER_CONFIG_DIR / self.CONFIG_FILE

    def _read(self, path: Optional[Path]) -> Dict[str, Any]:
        if path is None or not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed config %s: expected a mapping", path)
            return {}
        return data

    def load(self) -> Config:
        """Load configuration from all sources."""
        if self._config is not None:
            return self._config

        # Start with defaults
        config_data: Dict[str, Any] = {}

        # Layer 1: User config
        config_data = self._merge(config_data, self._read(self.user_config_path))

        # Layer 2: Project config (higher priority)
        config_data = self._merge(config_data, self._read(self.project_config_path))

        # Layer 3: Environment overrides
        if os.environ.get("BRANCHLESS_MAIN_BRANCH"):
            config_data.setdefault("core", {})["main_branch"] = os.environ["BRANCHLESS_MAIN_BRANCH"]
        if os.environ.get("BRANCHLESS_LOG_LEVEL"):
            config_data.setdefault("logging", {})["level"] = os.environ["BRANCHLESS_LOG_LEVEL"]

        self._config = Config.from_dict(config_data)
        return self._config

    def _save(self, path: Path, config: Config):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False)
        self._config = config

    def save_project(self, config: Config):
        """Save configuration to project config file."""
        if self.project_config_path is None:
            raise ValueError("No repository state directory for project config")
        self._save(self.project_config_path, config)

    def save_user(self, config: Config):
        """Save configuration to user config file."""
        self._save(self.user_config_path, config)

    def set(self, key: str, value: str, scope: str = "project") -> Optional[str]:
        """
        Set a configuration value.

        Args:
            key: Dot-separated key (e.g., "core.main_branch")
            value: Value to set; comma-separated for list settings
            scope: "project" or "user"

        Returns:
            Error message or None if successful
        """
        if key not in self.KEYS:
            return f"Unknown setting: {key}. Valid: {', '.join(self.KEYS)}"
        if scope not in ("project", "user"):
            return f"Unknown scope: {scope}. Valid: project, user"
        if scope == "project" and self.project_config_path is None:
            return "Not inside a branchless repository; use --user"

        config = Config.from_dict(self.load().to_dict())
        section, setting = self.KEYS[key]

        if key == "hooks.tracked_prefixes":
            parsed: Any = [p.strip() for p in value.split(",") if p.strip()]
        elif key == "logging.level":
            parsed = value.upper()
        else:
            parsed = value
        setattr(getattr(config, section), setting, parsed)

        error = getattr(config, section).validate()
        if error:
            return error

        if scope == "project":
            self.save_project(config)
        else:
            self.save_user(config)
        return None

    def get(self, key: str) -> Optional[str]:
        """Get a configuration value."""
        if key not in self.KEYS:
            return None
        section, setting = self.KEYS[key]
        value = getattr(getattr(self.load(), section), setting)
        if isinstance(value, list):
            return ",".join(value)
        return str(value)

    def _merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dicts, override wins."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value
        return result

    def display(self) -> str:
        """Format config for display."""
        config = self.load()
        symbols = get_symbols(config.display.symbols)
        error = config.validate()
        status = f"{symbols.check_pass} valid" if error is None else f"{symbols.check_fail} {error}"

        lines = [
            f"Configuration: {status}",
            "",
            "Core:",
            f"  Main branch: {config.core.main_branch}",
            f"  Database: {config.core.db_name}",
            "",
            "Display:",
            f"  Symbols: {config.display.symbols}",
            "",
            "Logging:",
            f"  Level: {config.logging.level}",
            "",
            "Hooks:",
            f"  Tracked prefixes: {', '.join(config.hooks.tracked_prefixes)}",
            "",
            "Config files:",
            f"  User: {self.user_config_path}",
            f"  Project: {self.project_config_path or '(none)'}",
        ]
        return "\n".join(lines)


# Convenience function
def get_config(state_dir: Optional[Path] = None) -> Config:
    """Load configuration for a repository."""
    return ConfigManager(state_dir).load()
