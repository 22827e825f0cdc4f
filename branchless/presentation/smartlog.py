"""
Smartlog -- Render the commits a user is working on as a tree

Shown: the main branch head, every visible commit not on the main
branch, every abandoned commit, and the main-branch commits those
fork from. Everything else on the main branch is elided.

    O f777ecc9 (master) create initial.txt
    |\\
    | o 62fc20d2 create test1.txt
    |
    @ fe65c1fe (feature) create test2.txt

Reads an immutable snapshot; never touches the repository.
"""

from collections import defaultdict
from typing import Optional, List, Dict, Set, Tuple

from ..core.classify import Classification
from ..services.repository import short_ref_name
from .symbols import SymbolSet, get_symbols, short_oid, truncate


def _main_line(snapshot) -> Set[str]:
    main = snapshot.main_head
    return snapshot.graph.ancestors([main]) if main else set()


def _fork_point(graph, oid: str, on_main: Set[str]) -> Optional[str]:
    """Latest main-branch ancestor of `oid` (its merge-base with main)."""
    found: List[str] = []
    seen = {oid}
    stack = list(graph.parents_of(oid))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        if current in on_main:
            found.append(current)
            continue
        stack.extend(graph.parents_of(current))
    return max(found, key=graph.sort_key) if found else None


def displayed_commits(snapshot) -> Tuple[Set[str], Set[str]]:
    """Returns (commits to show, main-branch commits)."""
    graph = snapshot.graph
    on_main = _main_line(snapshot)

    shown: Set[str] = set()
    for oid, label in snapshot.classification.labels.items():
        if oid in on_main:
            continue
        if label in (Classification.VISIBLE, Classification.ABANDONED):
            shown.add(oid)

    if snapshot.main_head:
        forks = {_fork_point(graph, oid, on_main) for oid in shown}
        shown |= {oid for oid in forks if oid}
        shown.add(snapshot.main_head)
    if snapshot.head:
        shown.add(snapshot.head)
    return shown, on_main


def _displayed_parent(graph, oid: str, shown: Set[str]) -> Tuple[Optional[str], bool]:
    """Nearest shown ancestor, and whether it is a direct parent."""
    parents = graph.parents_of(oid)
    for parent in parents:
        if parent in shown:
            return parent, True
    seen = set(parents)
    queue = list(parents)
    while queue:
        current = queue.pop(0)
        if current in shown:
            return current, False
        for parent in graph.parents_of(current):
            if parent not in seen:
                seen.add(parent)
                queue.append(parent)
    return None, False


def _glyph(snapshot, oid: str, on_main: Set[str], symbols: SymbolSet) -> str:
    if oid == snapshot.head:
        return symbols.head
    if oid in on_main:
        return symbols.main
    if snapshot.classification.get(oid) == Classification.ABANDONED:
        return symbols.abandoned
    return symbols.visible


def format_commit(snapshot, oid: str, on_main: Set[str], symbols: SymbolSet) -> str:
    node = snapshot.graph.node(oid)
    parts = [_glyph(snapshot, oid, on_main, symbols), short_oid(oid)]

    names = [short_ref_name(name) for name in snapshot.graph.refs.refs_at(oid) if name != "HEAD"]
    if names:
        parts.append(f"({', '.join(names)})")

    if snapshot.classification.get(oid) == Classification.ABANDONED:
        target = snapshot.history.rewrite_target(oid)
        if target:
            parts.append(f"(rewritten as {short_oid(target)})")

    parts.append(truncate(node.summary))
    return " ".join(p for p in parts if p)


def render_smartlog(snapshot, symbols: Optional[SymbolSet] = None) -> str:
    """Render `snapshot` as smartlog text (no trailing newline)."""
    symbols = symbols or get_symbols()
    graph = snapshot.graph
    shown, on_main = displayed_commits(snapshot)
    if not shown:
        return ""

    children: Dict[Optional[str], List[str]] = defaultdict(list)
    direct: Dict[str, bool] = {}
    for oid in shown:
        parent, is_direct = _displayed_parent(graph, oid, shown)
        children[parent].append(oid)
        direct[oid] = is_direct

    def ordered(oids: List[str]) -> List[str]:
        # The main-branch child continues the current column
        return sorted(oids, key=lambda o: (o in on_main, graph.sort_key(o)))

    def walk(root: str) -> List[str]:
        # Explicit stack: long linear stacks would overflow recursion
        lines: List[str] = []
        pending: List[Tuple[str, Optional[str], str]] = [("", root, "")]
        while pending:
            prefix, oid, text = pending.pop()
            if oid is None:
                lines.append(prefix + text)
                continue
            lines.append(prefix + format_commit(snapshot, oid, on_main, symbols))
            kids = ordered(children.get(oid, []))
            if not kids:
                continue
            *side, last = kids
            column = symbols.vertical if direct[last] else symbols.elided
            tasks = []
            for kid in side:
                tasks.append((prefix, None, symbols.split))
                tasks.append((f"{prefix}{column} ", kid, ""))
            tasks.append((prefix, None, column))
            tasks.append((prefix, last, ""))
            pending.extend(reversed(tasks))
        return lines

    blocks = ["\n".join(walk(root)) for root in ordered(children[None])]
    return "\n\n".join(blocks)
