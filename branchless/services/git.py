"""
Git Integration -- The object store behind a real repository

Reads commits and refs with plumbing commands, replays commits with
`git merge-tree --write-tree` + `git commit-tree` (no working tree
involved), and moves refs with one atomic `git update-ref --stdin`.

Every git process started here runs with BRANCHLESS_SUPPRESS_HOOKS=1,
so the installed hooks do not record the engine's own mutations twice.
"""

import contextlib
import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Optional, List, Tuple, Dict, Iterable

from ..config import MAIN_BRANCH_CANDIDATES
from ..core.errors import ConflictError, GraphError, StorageError, UserAbort
from ..core.eventlog import EventLogStore
from ..core.graph import CommitNode
from .repository import ObjectStore, RefUpdate, exclusive_lock

logger = logging.getLogger(__name__)


SUPPRESS_HOOKS_ENV = "BRANCHLESS_SUPPRESS_HOOKS"

EMPTY_TREE_OID = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

# Commits fetched per `git log` call when resolving ancestry
PREFETCH_LIMIT = 1000

OID_PATTERN = re.compile(r'^[0-9a-f]{40}([0-9a-f]{24})?$')

SHEBANG = "#!/bin/sh"
MARKER_START = "## START BRANCHLESS CONFIG"
MARKER_END = "## END BRANCHLESS CONFIG"

# Hook name -> shell body placed between the markers
HOOKS: Dict[str, str] = {
    "post-commit": 'branchless hook-post-commit "$@"\n',
    "post-rewrite": 'branchless hook-post-rewrite "$@"\n',
    "post-checkout": 'branchless hook-post-checkout "$@"\n',
    "pre-auto-gc": 'branchless hook-pre-auto-gc "$@"\n',
    "reference-transaction": (
        "# Never cancel the reference transaction if branchless fails\n"
        'branchless hook-reference-transaction "$@" || (\n'
        "    echo 'branchless: Failed to process reference transaction!'\n"
        "    echo 'branchless: Some events (e.g. branch updates) may have been lost.'\n"
        ")\n"
    ),
}

# git alias -> branchless subcommand
ALIASES: Dict[str, str] = {
    "smartlog": "smartlog",
    "sl": "smartlog",
    "hide": "hide",
    "unhide": "unhide",
    "restack": "restack",
    "undo": "undo",
    "move": "move",
}

KEEPALIVE_PREFIX = "refs/branchless/"


def is_oid(value: str) -> bool:
    return bool(OID_PATTERN.match(value or ""))


def update_between_lines(text: str, body: str) -> str:
    """
    Replace what sits between the branchless markers with `body`.

    Text outside the markers is kept. Without markers, a new block is
    appended. A start marker with no end marker swallows the rest of the
    file (logged as a warning).
    """
    lines_out: List[str] = []
    ignoring = False
    found = False
    for line in text.splitlines():
        if line == MARKER_START:
            ignoring = True
            found = True
            lines_out.append(MARKER_START)
            lines_out.extend(body.rstrip("\n").split("\n"))
            lines_out.append(MARKER_END)
        elif line == MARKER_END:
            ignoring = False
        elif not ignoring:
            lines_out.append(line)

    if ignoring:
        logger.warning("Unterminated branchless config block in hook")
    if not found:
        if not lines_out:
            lines_out.append(SHEBANG)
        lines_out.append(MARKER_START)
        lines_out.extend(body.rstrip("\n").split("\n"))
        lines_out.append(MARKER_END)
    return "\n".join(lines_out) + "\n"


def remove_between_lines(text: str) -> str:
    """Drop the branchless block (markers included), keep everything else."""
    lines_out: List[str] = []
    ignoring = False
    for line in text.splitlines():
        if line == MARKER_START:
            ignoring = True
        elif line == MARKER_END:
            ignoring = False
        elif not ignoring:
            lines_out.append(line)
    return "\n".join(lines_out) + "\n" if lines_out else ""


class GitRepository(ObjectStore):
    """Git repository integration."""

    def __init__(self, repo_path: Optional[Path] = None,
                 event_log: Optional[EventLogStore] = None,
                 tracked_prefixes: Iterable[str] = ("refs/heads/",)):
        """
        Args:
            repo_path: Path inside a git work tree. If None, uses current directory.
            event_log: Log receiving the events of mutations made through this object
            tracked_prefixes: Ref namespaces listed by list_refs()
        """
        super().__init__(event_log)
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.tracked_prefixes = tuple(tracked_prefixes)
        self._git_dir: Optional[Path] = None
        self._commits: Dict[str, CommitNode] = {}

    # -------------------------------------------------------------------------
    # Process plumbing
    # -------------------------------------------------------------------------

    def _run_git(self, args: List[str], check: bool = True, input: Optional[str] = None,
                 env: Optional[Dict[str, str]] = None) -> subprocess.CompletedProcess:
        """Run a git command. Failures raise StorageError when `check` is set."""
        full_env = dict(os.environ)
        full_env[SUPPRESS_HOOKS_ENV] = "1"
        if env:
            full_env.update(env)
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                input=input,
                env=full_env
            )
        except OSError as e:
            raise StorageError(f"Could not run git: {e}") from e
        if check and result.returncode != 0:
            raise StorageError(f"git {' '.join(args[:2])} failed: {result.stderr.strip()}")
        return result

    def _git(self, args: List[str], **kwargs) -> str:
        return self._run_git(args, **kwargs).stdout

    # -------------------------------------------------------------------------
    # Repository layout
    # -------------------------------------------------------------------------

    @property
    def is_git_repo(self) -> bool:
        """Check if repo_path is inside a git repository."""
        try:
            result = self._run_git(["rev-parse", "--git-dir"], check=False)
        except StorageError:
            return False
        return result.returncode == 0

    @property
    def git_dir(self) -> Path:
        if self._git_dir is None:
            result = self._run_git(["rev-parse", "--absolute-git-dir"], check=False)
            if result.returncode != 0:
                raise UserAbort(f"Not a git repository: {self.repo_path}")
            self._git_dir = Path(result.stdout.strip())
        return self._git_dir

    @property
    def state_dir(self) -> Path:
        return self.git_dir / "branchless"

    @property
    def hooks_dir(self) -> Path:
        """Hooks directory, honouring core.hooksPath."""
        path = Path(self._git(["rev-parse", "--git-path", "hooks"]).strip())
        return path if path.is_absolute() else self.repo_path / path

    def current_branch(self) -> Optional[str]:
        """Full name of the branch HEAD is attached to, or None if detached."""
        result = self._run_git(["symbolic-ref", "--quiet", "HEAD"], check=False)
        return result.stdout.strip() if result.returncode == 0 else None

    def detect_main_branch(self) -> Optional[str]:
        """First of the usual main branch names that exists locally."""
        for name in MAIN_BRANCH_CANDIDATES:
            result = self._run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], check=False)
            if result.returncode == 0:
                return name
        return None

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read_commit(self, oid: str) -> Optional[CommitNode]:
        """
        Look up a commit, prefetching its ancestry in one `git log` call.

        Returns None if git does not know the object.
        """
        if oid in self._commits:
            return self._commits[oid]
        result = self._run_git([
            "log", f"--max-count={PREFETCH_LIMIT}",
            "--format=%H%x00%P%x00%an%x00%ct%x00%s",
            oid, "--"
        ], check=False)
        if result.returncode != 0:
            return None

        for line in result.stdout.splitlines():
            parts = line.split("\x00")
            if len(parts) < 5:
                continue
            commit_oid, parents, author, timestamp, summary = parts[:5]
            if commit_oid in self._commits:
                continue
            self._commits[commit_oid] = CommitNode(
                oid=commit_oid,
                parents=tuple(parents.split()),
                author=author,
                timestamp=int(timestamp or 0),
                summary=summary
            )
        return self._commits.get(oid)

    def list_refs(self) -> Dict[str, str]:
        patterns = [p.rstrip("/") for p in self.tracked_prefixes]
        output = self._git(["for-each-ref", "--format=%(refname)%00%(objectname)%00%(objecttype)"] + patterns)

        refs: Dict[str, str] = {}
        for line in output.splitlines():
            parts = line.split("\x00")
            if len(parts) == 3 and parts[2] == "commit":
                refs[parts[0]] = parts[1]

        head = self._run_git(["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        if head.returncode == 0 and head.stdout.strip():
            refs["HEAD"] = head.stdout.strip()
        return refs

    def is_working_tree_clean(self) -> bool:
        return not self._git(["status", "--porcelain", "--untracked-files=no"]).strip()

    def _lookup(self, spec: str) -> Optional[str]:
        result = self._run_git(["rev-parse", "--verify", "--quiet", f"{spec}^{{commit}}"], check=False)
        oid = result.stdout.strip()
        return oid if result.returncode == 0 and oid else None

    def lock(self):
        return exclusive_lock(self.state_dir / "lock")

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def _write_refs(self, updates: List[RefUpdate]):
        branch_updates = [u for u in updates if u.ref_name != "HEAD"]
        head_update = next((u for u in updates if u.ref_name == "HEAD"), None)

        if head_update is not None:
            current_head = self._lookup("HEAD")
            if current_head != head_update.old_oid:
                raise ConflictError(
                    f"HEAD is at {(current_head or 'nothing')[:8]}, expected {(head_update.old_oid or 'nothing')[:8]}",
                    oid=current_head
                )

        attached = self.current_branch()
        if attached and any(u.ref_name == attached and u.new_oid is None for u in branch_updates):
            # The checked-out branch is going away; keep the work tree where it is
            self._git(["checkout", "--quiet", "--detach"])
            attached = None

        if branch_updates:
            self._update_ref_batch(branch_updates)

        branch_new = next((u.new_oid for u in branch_updates if u.ref_name == attached), None)
        if attached and branch_new:
            if head_update is not None and head_update.new_oid != branch_new:
                self._git(["checkout", "--quiet", "--detach", head_update.new_oid])
            else:
                # The checked-out branch moved under the work tree
                self._git(["reset", "--quiet", "--hard", branch_new])
        elif head_update is not None and head_update.new_oid:
            self._git(["checkout", "--quiet", "--detach", head_update.new_oid])

    def _update_ref_batch(self, updates: List[RefUpdate]):
        lines = []
        for u in updates:
            if u.new_oid is None:
                lines.append(f"delete {u.ref_name} {u.old_oid}")
            elif u.old_oid is None:
                lines.append(f"create {u.ref_name} {u.new_oid}")
            else:
                lines.append(f"update {u.ref_name} {u.new_oid} {u.old_oid}")

        result = self._run_git(["update-ref", "--stdin"], check=False, input="\n".join(lines) + "\n")
        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "expected" in stderr or "exists" in stderr:
                raise ConflictError(f"Refs changed underneath us: {stderr}")
            raise StorageError(f"git update-ref failed: {stderr}")

    def _replay(self, oid: str, new_parents: Tuple[str, ...]) -> str:
        node = self.read_commit(oid)
        if node is None:
            raise GraphError(f"Cannot resolve commit {oid}", oid=oid)

        base = node.parents[0] if node.parents else EMPTY_TREE_OID
        result = self._run_git([
            "merge-tree", "--write-tree", "--name-only", "--no-messages",
            f"--merge-base={base}", new_parents[0], oid
        ], check=False)
        lines = result.stdout.splitlines()
        if result.returncode == 1:
            paths = sorted(set(line for line in lines[1:] if line))
            raise ConflictError(
                f"Conflict replaying {oid[:8]} onto {new_parents[0][:8]}",
                oid=oid,
                paths=paths
            )
        if result.returncode != 0 or not lines:
            raise StorageError(f"git merge-tree failed: {result.stderr.strip()}")
        tree = lines[0].strip()

        info = self._git(["log", "-1", "--format=%an%x00%ae%x00%aI%x00%B", oid])
        name, email, date, message = info.split("\x00", 3)
        args = ["commit-tree", tree]
        for parent in new_parents:
            args += ["-p", parent]
        new_oid = self._git(args, input=message, env={
            "GIT_AUTHOR_NAME": name,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_AUTHOR_DATE": date,
        }).strip()
        logger.debug("Replayed %s onto %s as %s", oid[:8], new_parents[0][:8], new_oid[:8])
        return new_oid

    def keep_alive(self, oids: Iterable[str]) -> int:
        """
        Pin commits under refs/branchless/ so `git gc` does not prune them.

        Returns the number of refs created.
        """
        existing = set(self._git(["for-each-ref", "--format=%(refname)", KEEPALIVE_PREFIX.rstrip("/")]).split())
        lines = []
        for oid in oids:
            name = f"{KEEPALIVE_PREFIX}{oid}"
            if name not in existing and self.read_commit(oid) is not None:
                lines.append(f"create {name} {oid}")
        if lines:
            self._git(["update-ref", "--stdin"], input="\n".join(lines) + "\n")
        return len(lines)

    # -------------------------------------------------------------------------
    # Hooks and aliases
    # -------------------------------------------------------------------------

    def install_hooks(self) -> Tuple[bool, str]:
        """
        Install git hooks for automatic event recording.

        Returns:
            Tuple of (success, message)
        """
        if not self.is_git_repo:
            return False, "Not a git repository"

        hooks_dir = self.hooks_dir
        hooks_dir.mkdir(parents=True, exist_ok=True)
        for name, body in HOOKS.items():
            hook_path = hooks_dir / name
            existing = hook_path.read_text() if hook_path.exists() else ""
            hook_path.write_text(update_between_lines(existing, body))
            os.chmod(hook_path, hook_path.stat().st_mode | 0o111)
            logger.info("Installed hook: %s", name)
        return True, f"Installed {len(HOOKS)} hooks in {hooks_dir}"

    def uninstall_hooks(self) -> Tuple[bool, str]:
        """
        Remove the branchless block from every hook.

        Returns:
            Tuple of (success, message)
        """
        if not self.is_git_repo:
            return False, "Not a git repository"

        removed = 0
        for name in HOOKS:
            hook_path = self.hooks_dir / name
            if not hook_path.exists():
                continue
            content = hook_path.read_text()
            if MARKER_START not in content:
                continue
            remaining = remove_between_lines(content)
            if remaining.strip() in ("", SHEBANG):
                # Our hook only - remove file
                hook_path.unlink()
            else:
                hook_path.write_text(remaining)
            removed += 1
        return True, f"Removed branchless from {removed} hook(s)"

    def hooks_status(self) -> str:
        """Get status of git hooks."""
        if not self.is_git_repo:
            return "Not a git repository"

        installed = [
            name for name in HOOKS
            if (self.hooks_dir / name).exists() and MARKER_START in (self.hooks_dir / name).read_text()
        ]
        if len(installed) == len(HOOKS):
            return "Installed"
        if installed:
            return f"Partially installed ({', '.join(installed)})"
        return "Not installed"

    def install_aliases(self) -> List[str]:
        """Set repository-local `git <alias>` shortcuts. Returns the aliases set."""
        for alias, command in ALIASES.items():
            self._git(["config", f"alias.{alias}", f"!branchless {command}"])
        return list(ALIASES)


def hooks_suppressed() -> bool:
    return os.environ.get(SUPPRESS_HOOKS_ENV, "") not in ("", "0")
