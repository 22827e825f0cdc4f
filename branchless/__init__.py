"""
branchless -- Branchless workflow for git

Records every commit, rewrite and ref move in an append-only event log,
and derives everything else from it:

- smartlog: the commits you are working on, as a tree
- hide / unhide: take commits out of (or back into) view
- undo / redo: move the whole repository to an earlier log cursor
- move / restack: replay subtrees onto new parents

Usage:
    branchless init
    branchless smartlog
    branchless hide <commit>
    branchless undo
    branchless move -s <source> -d <dest>
    branchless restack
"""

__version__ = "0.1.0"

# Core layer (engine)
from .core.errors import BranchlessError, StorageError, GraphError, ConflictError, UserAbort
from .core.events import Event, EventType, NewEvent
from .core.eventlog import EventLogStore
from .core.replay import EventReplayer
from .core.graph import CommitNode, CommitGraph, CommitGraphBuilder, RefSnapshot
from .core.classify import Classification, ClassificationResult, AbandonmentClassifier

# Config (stays at root)
from .config import Config, ConfigManager, get_config

# Repository-bound engines
from .core.context import RepoContext, RepoSnapshot
from .core.undo import UndoEngine, UndoPlan, UndoResult
from .core.rewrite import MovePlan, MovePlanner, MoveResult, MoveStatus, PlanExecutor
from .core.workflow import Workflow

# Services layer
from .services.repository import ObjectStore, RefUpdate
from .services.git import GitRepository

# Presentation layer
from .presentation.symbols import get_symbols, SymbolSet, UNICODE, ASCII
from .presentation.smartlog import render_smartlog

__all__ = [
    # Core
    'BranchlessError', 'StorageError', 'GraphError', 'ConflictError', 'UserAbort',
    'Event', 'EventType', 'NewEvent',
    'EventLogStore', 'EventReplayer',
    'CommitNode', 'CommitGraph', 'CommitGraphBuilder', 'RefSnapshot',
    'Classification', 'ClassificationResult', 'AbandonmentClassifier',
    # Config
    'Config', 'ConfigManager', 'get_config',
    # Engines
    'RepoContext', 'RepoSnapshot',
    'UndoEngine', 'UndoPlan', 'UndoResult',
    'MovePlan', 'MovePlanner', 'MoveResult', 'MoveStatus', 'PlanExecutor',
    'Workflow',
    # Services
    'ObjectStore', 'RefUpdate', 'GitRepository',
    # Presentation
    'get_symbols', 'SymbolSet', 'UNICODE', 'ASCII', 'render_smartlog',
]
