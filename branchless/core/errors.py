"""
Errors -- The closed set of failures the engine reports

Every core operation either returns a value or raises one of these.
The CLI is the only place that turns them into messages and exit codes.
"""

from typing import Optional, Sequence, Tuple


class BranchlessError(Exception):
    """Base class for all engine errors."""

    exit_code = 1


class StorageError(BranchlessError):
    """Event log or underlying store I/O failure. Nothing was persisted."""

    exit_code = 4


class GraphError(BranchlessError):
    """An object referenced by the log or by a ref cannot be resolved."""

    exit_code = 3

    def __init__(self, message: str, oid: Optional[str] = None):
        super().__init__(message)
        self.oid = oid


class ConflictError(BranchlessError):
    """A replay step or ref update could not be applied cleanly."""

    exit_code = 2

    def __init__(self, message: str, oid: Optional[str] = None, paths: Sequence[str] = ()):
        super().__init__(message)
        self.oid = oid
        self.paths: Tuple[str, ...] = tuple(paths)


class UserAbort(BranchlessError):
    """Preconditions not met (dirty tree, lock held, bad argument). No mutation applied."""

    exit_code = 1
