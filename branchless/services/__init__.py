"""
Services -- Integration layer for branchless

Contains integrations with external systems:
- Repository: Object store interface, ref updates, repository lock
- Git: Object store backed by the git executable, hook installation
- Hooks: Turns git hook invocations into events
"""

from .repository import ObjectStore, RefUpdate, order_ref_updates, exclusive_lock, short_ref_name
from .git import GitRepository, HOOKS, ALIASES, hooks_suppressed, update_between_lines

__all__ = [
    # Repository
    "ObjectStore", "RefUpdate", "order_ref_updates", "exclusive_lock", "short_ref_name",
    # Git
    "GitRepository", "HOOKS", "ALIASES", "hooks_suppressed", "update_between_lines",
]
