"""
Directory navigation with history.

- NavigationHistory: bounded stack of previous working directories
- Navigator: per-session state (history + verbosity) and the cd/back/mcd/up/cdtemp operations
- Verbose reports: directory listing, git status passthrough, project markers
"""
import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import (
    DirectoryChangeFailed, EmptyHistory, InvalidSetting, MissingArgument, NoTempDirectory,
)
from .runner import SubprocessRunner

logger = logging.getLogger(__name__)

MAX_HISTORY = 20


class NavigationHistory:
    """Most-recent-last stack of directories, oldest entries evicted first"""

    def __init__(self, limit: int = MAX_HISTORY):
        self.stack: List[str] = []
        self.limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    @limit.setter
    def limit(self, value):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidSetting("max_history", value, "must be at least 1")
        self._limit = value
        del self.stack[:-value]

    def push(self, path):
        self.stack.append(str(path))
        while len(self.stack) > self.limit:
            self.stack.pop(0)

    def pop(self) -> str:
        if not self.stack:
            raise EmptyHistory()
        return self.stack.pop()

    def peek(self) -> Optional[str]:
        return self.stack[-1] if self.stack else None

    def clear(self):
        self.stack.clear()

    def entries(self) -> List[str]:
        return list(self.stack)

    def __len__(self):
        return len(self.stack)

    def __iter__(self):
        return iter(list(self.stack))


@dataclass
class DirectoryReport:
    path: str
    listing: Optional[List[str]] = None
    vcs_status: Optional[str] = None
    projects: List[str] = field(default_factory=list)


def list_directory(path) -> List[str]:
    """Entry names of ``path``, directories first, hidden entries included"""
    p = Path(path)
    entries = sorted(p.iterdir(), key=lambda e: (not e.is_dir(), e.name.lower()))
    return [e.name for e in entries]


def describe_projects(path) -> List[str]:
    p = Path(path)
    found = []
    manifest = p / "package.json"
    if manifest.is_file():
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            data = {}
        if not isinstance(data, dict):
            data = {}
        label = " ".join(filter(None, [
            str(data.get("name", "")),
            f"v{data['version']}" if data.get("version") else "",
        ]))
        found.append(f"Node.js project: {label}".rstrip())
    if (p / "requirements.txt").is_file():
        found.append("Python project with requirements.txt")
    if (p / "pyproject.toml").is_file():
        found.append("Python project with pyproject.toml")
    return found


class Navigator:
    """Navigation session: owns the history stack and the verbosity flag"""

    def __init__(self, runner=None, history=None, verbose=True, home=None):
        self.runner = runner or SubprocessRunner()
        self.history = history if history is not None else NavigationHistory()
        self.verbose = verbose
        self.home = str(home) if home else str(Path.home())
        # (temp dir, directory it was entered from), innermost last
        self.temp_dirs: List[Tuple[str, Optional[str]]] = []

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def resolve(self, target) -> str:
        if target is None or str(target) == "":
            return self.home
        target = os.path.expandvars(str(target))
        if target == "~" or target.startswith("~/"):
            target = self.home + target[1:]
        return os.path.expanduser(target)

    def change_directory(self, target=None, verbose=None) -> DirectoryReport:
        """cd: change directory, then record where we came from"""
        destination = self.resolve(target)
        try:
            previous = os.getcwd()
        except FileNotFoundError:
            previous = None
        try:
            os.chdir(destination)
        except OSError as e:
            raise DirectoryChangeFailed(target or destination, e.strerror)
        if previous is not None:
            self.history.push(previous)
        logger.debug("cd %s -> %s (history=%d)", previous, os.getcwd(), len(self.history))
        return self.report(os.getcwd(), self._verbose(verbose), context=True)

    def go_back(self, verbose=None) -> DirectoryReport:
        """back: return to the most recent directory in history.

        The entry is consumed even if the directory can no longer be entered.
        """
        previous = self.history.pop()
        try:
            os.chdir(previous)
        except OSError as e:
            raise DirectoryChangeFailed(previous, e.strerror, tag="BACK")
        return self.report(os.getcwd(), self._verbose(verbose), context=False)

    def toggle_verbose(self) -> bool:
        self.verbose = not self.verbose
        return self.verbose

    def make_directory(self, target, verbose=None) -> DirectoryReport:
        """mcd: create ``target`` (with parents) and enter it"""
        if not target:
            raise MissingArgument("Usage: mcd <directory>", "MCD")
        path = self.resolve(target)
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise DirectoryChangeFailed(target, e.strerror, tag="MCD")
        return self.change_directory(path, verbose)

    def up(self, levels=1, verbose=None) -> DirectoryReport:
        if levels < 1:
            raise MissingArgument("Level count must be at least 1", "UP")
        return self.change_directory(os.path.join(*[".."] * levels), verbose)

    def enter_temp_directory(self, verbose=None) -> DirectoryReport:
        """cdtemp: create a fresh temporary directory and enter it"""
        try:
            origin = os.getcwd()
        except FileNotFoundError:
            origin = None
        path = tempfile.mkdtemp(prefix="shellkit.")
        report = self.change_directory(path, verbose)
        self.temp_dirs.append((report.path, origin))
        return report

    def leave_temp_directory(self, remove=True, verbose=None) -> Tuple[str, Optional[DirectoryReport]]:
        """exit-temp: leave the most recent temporary directory, deleting it if asked.

        Returns the temporary path and the report of the directory changed
        to, or None when the session was already outside of it.
        """
        if not self.temp_dirs:
            raise NoTempDirectory()
        path, origin = self.temp_dirs.pop()
        report = None
        try:
            cwd = os.getcwd()
        except FileNotFoundError:
            cwd = None
        if cwd is None or cwd == path or cwd.startswith(path + os.sep):
            if origin and os.path.isdir(origin):
                report = self.change_directory(origin, verbose)
            else:
                report = self.change_directory(os.path.dirname(path), verbose)
        if remove and os.path.isdir(path):
            shutil.rmtree(path)
        return path, report

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _verbose(self, verbose):
        return self.verbose if verbose is None else verbose

    def report(self, path, verbose, context=True) -> DirectoryReport:
        result = DirectoryReport(path=path)
        if not verbose:
            return result
        try:
            result.listing = list_directory(path)
        except OSError as e:
            logger.debug("listing %s failed: %s", path, e)
            result.listing = []
        if context:
            result.vcs_status = self.git_status(path)
            result.projects = describe_projects(path)
        return result

    def git_status(self, path) -> Optional[str]:
        if not self.runner.which("git"):
            return None
        inside = self.runner.run(["git", "rev-parse", "--git-dir"], cwd=path)
        if not inside.ok:
            return None
        status = self.runner.run(["git", "status", "-s"], cwd=path)
        return status.stdout.rstrip()
