"""
File housekeeping: a trash can for safer deletion, directory sizes and
recently modified files.

Trash layout:
    <trash_dir>/<name>.<YYYYmmddHHMMSS>.<n>      the trashed file or directory
    <trash_dir>/.info/<trashed name>.path        absolute path it came from
"""
import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .archives import human_size, path_size
from .errors import InputNotFound, MissingArgument, NotInTrash, PathExists

logger = logging.getLogger(__name__)

TRASH_NAME = re.compile(r"^(?P<name>.+)\.(?P<stamp>\d{14})\.\d+$")
IGNORED_DIRS = {"node_modules", ".git", "venv", "__pycache__"}


@dataclass
class TrashEntry:
    index: int
    path: str
    original_path: Optional[str] = None

    @property
    def trash_name(self):
        return os.path.basename(self.path)

    @property
    def name(self):
        match = TRASH_NAME.match(self.trash_name)
        return match.group("name") if match else self.trash_name

    @property
    def trashed_at(self) -> Optional[str]:
        match = TRASH_NAME.match(self.trash_name)
        if not match:
            return None
        return time.strftime("%Y-%m-%d %H:%M:%S", time.strptime(match.group("stamp"), "%Y%m%d%H%M%S"))

    @property
    def size(self):
        return human_size(path_size(self.path))


class TrashCan:
    """Moves files aside instead of deleting them, remembering where they came from"""

    def __init__(self, trash_dir):
        self.trash_dir = os.path.expanduser(str(trash_dir))
        self.info_dir = os.path.join(self.trash_dir, ".info")

    def ensure(self):
        os.makedirs(self.info_dir, exist_ok=True)

    def _info_file(self, trash_name):
        return os.path.join(self.info_dir, trash_name + ".path")

    def put(self, path, now=None) -> str:
        """Move ``path`` into the trash and return its new location"""
        path = str(path)
        if not os.path.lexists(path):
            raise InputNotFound(path, "TRASH")
        self.ensure()
        original = os.path.abspath(path)
        stamp = time.strftime("%Y%m%d%H%M%S", time.localtime(now))
        serial = os.getpid()
        target = os.path.join(self.trash_dir, f"{os.path.basename(original)}.{stamp}.{serial}")
        while os.path.lexists(target):
            serial += 1
            target = os.path.join(self.trash_dir, f"{os.path.basename(original)}.{stamp}.{serial}")
        shutil.move(original, target)
        with open(self._info_file(os.path.basename(target)), "w", encoding="utf-8") as f:
            f.write(original + "\n")
        logger.debug("trashed %s -> %s", original, target)
        return target

    def entries(self) -> List[TrashEntry]:
        if not os.path.isdir(self.trash_dir):
            return []
        found = []
        for name in sorted(os.listdir(self.trash_dir)):
            if name == ".info":
                continue
            original = None
            info = self._info_file(name)
            if os.path.isfile(info):
                with open(info, encoding="utf-8") as f:
                    original = f.read().strip() or None
            found.append(TrashEntry(len(found), os.path.join(self.trash_dir, name), original))
        return found

    def find(self, target) -> TrashEntry:
        """Entry by list number, or the first one whose name starts with ``target``"""
        entries = self.entries()
        if str(target).isdigit():
            index = int(target)
            if index < len(entries):
                return entries[index]
        else:
            for entry in entries:
                if entry.trash_name.startswith(str(target)):
                    return entry
        raise NotInTrash(target)

    def restore(self, target, destination=None) -> str:
        """Move an entry back to where it came from (or ``destination``).

        Falls back to the current directory when the original directory is
        gone. Never overwrites an existing file.
        """
        if target is None or str(target) == "":
            raise MissingArgument("Usage: trash-restore <number|name> [destination]", "TRASH")
        entry = self.find(target)
        if destination:
            restore_path = os.path.abspath(str(destination))
        elif entry.original_path and os.path.isdir(os.path.dirname(entry.original_path)):
            restore_path = entry.original_path
        else:
            restore_path = os.path.join(os.getcwd(), entry.name)
        if os.path.lexists(restore_path):
            raise PathExists(restore_path, "TRASH")
        shutil.move(entry.path, restore_path)
        info = self._info_file(entry.trash_name)
        if os.path.exists(info):
            os.remove(info)
        return restore_path

    def empty(self) -> int:
        entries = self.entries()
        for entry in entries:
            if os.path.isdir(entry.path) and not os.path.islink(entry.path):
                shutil.rmtree(entry.path)
            else:
                os.remove(entry.path)
        if os.path.isdir(self.info_dir):
            shutil.rmtree(self.info_dir)
        return len(entries)

    def __len__(self):
        return len(self.entries())


def directory_sizes(paths=None) -> List[Tuple[str, int]]:
    """Sizes of ``paths`` (default: visible entries of the cwd), smallest first"""
    if not paths:
        paths = sorted(name for name in os.listdir(".") if not name.startswith("."))
    sizes = []
    for path in paths:
        if not os.path.lexists(path):
            raise InputNotFound(path, "DIRSIZE")
        sizes.append((path, path_size(path)))
    sizes.sort(key=lambda item: item[1])
    return sizes


def recent_files(root=".", count=10, days=7, now=None) -> List[Tuple[str, float]]:
    """Files under ``root`` modified in the last ``days`` days, newest first.

    Hidden paths and dependency/cache directories are skipped.
    """
    cutoff = (time.time() if now is None else now) - days * 86400
    found = []
    for current, dirs, files in os.walk(root):
        dirs[:] = [d for d in dirs if not d.startswith(".") and d not in IGNORED_DIRS]
        for name in files:
            if name.startswith("."):
                continue
            path = os.path.join(current, name)
            try:
                mtime = os.stat(path).st_mtime
            except OSError:
                continue
            if mtime >= cutoff:
                found.append((os.path.relpath(path, root), mtime))
    found.sort(key=lambda item: (-item[1], item[0]))
    return found[:count]
