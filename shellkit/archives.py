"""
Archive extraction and creation.

- Static format table keyed on filename suffix (longest suffix wins)
- ArchiveTranscoder: extract/compress through external tools with fail-fast checks
- Extraction and compression reports for the interactive layer
- Timestamped backups built on top of compress
"""
import logging
import os
import re
import shutil
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import (
    CompressionFailed, ExtractionFailed, InputNotFound, MissingArgument,
    NotAFile, ToolNotFound, UnsupportedFormat,
)
from .runner import SubprocessRunner

logger = logging.getLogger(__name__)

PREVIEW_ENTRIES = 10

# ============================================================================
# FORMAT TABLE
# ============================================================================

TAR = "tar"
STREAM = "stream"
ZIP = "zip"
SEVEN_ZIP = "7z"
RAR = "rar"


@dataclass(frozen=True)
class ArchiveFormat:
    """Format descriptor: suffixes, tools and how to invoke them"""
    name: str
    suffixes: Tuple[str, ...]
    kind: str
    extract_tool: str
    compress_tool: Optional[str] = None
    tar_filter: str = ""
    extra_tools: Tuple[str, ...] = ()

    @property
    def can_compress(self) -> bool:
        return self.compress_tool is not None

    def required_tools(self, operation="extract") -> List[str]:
        tool = self.extract_tool if operation == "extract" else self.compress_tool
        return [tool] + list(self.extra_tools)

    def _tar_flags(self, mode):
        if self.tar_filter.startswith("--"):
            return [self.tar_filter, f"-{mode}f"]
        return [f"-{mode}{self.tar_filter}f"]

    def extract_argv(self, archive, destination) -> List[str]:
        archive = _safe_operand(archive)
        if self.kind == TAR:
            return ["tar"] + self._tar_flags("x") + [archive, "-C", destination]
        if self.kind == ZIP:
            return ["unzip", "-o", archive, "-d", destination]
        if self.kind == SEVEN_ZIP:
            return ["7z", "x", "-y", f"-o{destination}", archive]
        if self.kind == RAR:
            return ["unrar", "x", "-o+", archive, destination.rstrip(os.sep) + os.sep]
        # single-stream decompressors write to stdout
        return [self.extract_tool, "-dc" if self.extract_tool in ("xz", "zstd") else "-c", archive]

    def compress_argv(self, archive, inputs) -> List[str]:
        archive = _safe_operand(archive)
        inputs = [_safe_operand(p) for p in inputs]
        if self.kind == TAR:
            return ["tar"] + self._tar_flags("c") + [archive] + inputs
        if self.kind == ZIP:
            return ["zip", "-r", archive] + inputs
        if self.kind == SEVEN_ZIP:
            return ["7z", "a", archive] + inputs
        raise UnsupportedFormat(archive, "COMPRESS")

    def list_argv(self, archive) -> Optional[List[str]]:
        archive = _safe_operand(archive)
        if self.kind == TAR:
            return ["tar"] + self._tar_flags("t") + [archive]
        if self.kind == ZIP:
            return ["unzip", "-Z1", archive]
        if self.kind == SEVEN_ZIP:
            return ["7z", "l", "-slt", "-ba", archive]
        if self.kind == RAR:
            return ["unrar", "lb", archive]
        return None


FORMATS = [
    ArchiveFormat("tar.bz2", (".tar.bz2", ".tbz2"), TAR, "tar", "tar", tar_filter="j"),
    ArchiveFormat("tar.gz", (".tar.gz", ".tgz"), TAR, "tar", "tar", tar_filter="z"),
    ArchiveFormat("tar.xz", (".tar.xz",), TAR, "tar", "tar", tar_filter="J"),
    ArchiveFormat("tar.zst", (".tar.zst",), TAR, "tar", "tar", tar_filter="--zstd", extra_tools=("zstd",)),
    ArchiveFormat("tar", (".tar",), TAR, "tar", "tar"),
    ArchiveFormat("bz2", (".bz2",), STREAM, "bunzip2"),
    ArchiveFormat("gz", (".gz",), STREAM, "gunzip"),
    ArchiveFormat("xz", (".xz",), STREAM, "xz"),
    ArchiveFormat("zst", (".zst",), STREAM, "zstd"),
    ArchiveFormat("Z", (".Z",), STREAM, "uncompress"),
    ArchiveFormat("zip", (".zip",), ZIP, "unzip", "zip"),
    ArchiveFormat("7z", (".7z",), SEVEN_ZIP, "7z", "7z"),
    ArchiveFormat("rar", (".rar",), RAR, "unrar"),
]

# (suffix, format) pairs, longest suffix first so .tar.gz beats .gz
SUFFIX_TABLE = sorted(
    ((suffix, fmt) for fmt in FORMATS for suffix in fmt.suffixes),
    key=lambda pair: len(pair[0]),
    reverse=True,
)


def match_format(filename, tag="EXTRACT") -> ArchiveFormat:
    base = os.path.basename(str(filename))
    for suffix, fmt in SUFFIX_TABLE:
        if base.endswith(suffix):
            return fmt
    raise UnsupportedFormat(filename, tag)


def matched_suffix(filename) -> str:
    base = os.path.basename(str(filename))
    for suffix, _ in SUFFIX_TABLE:
        if base.endswith(suffix):
            return suffix
    return ""


def supported_suffixes(operation="extract") -> List[str]:
    return [s for fmt in FORMATS if operation == "extract" or fmt.can_compress for s in fmt.suffixes]


def strip_suffix(filename) -> str:
    base = os.path.basename(str(filename))
    suffix = matched_suffix(base)
    stem = base[:-len(suffix)] if suffix else base
    return stem or base + ".out"


def _safe_operand(path):
    path = str(path)
    return "./" + path if path.startswith("-") else path

# ============================================================================
# SIZES
# ============================================================================


def human_size(num_bytes) -> str:
    """Size in ``du -h`` style: 512B, 4.0K, 12M"""
    value = float(num_bytes)
    if value < 1024:
        return f"{int(value)}B"
    for unit in ("K", "M", "G", "T", "P"):
        value /= 1024.0
        text = f"{value:.1f}"
        if float(text) >= 10:
            text = f"{value:.0f}"
        # 1023.6K would print as 1024K
        if float(text) < 1024 or unit == "P":
            return text + unit


def path_size(path) -> int:
    if os.path.isdir(path) and not os.path.islink(path):
        total = 0
        for root, _, files in os.walk(path):
            for name in files:
                fp = os.path.join(root, name)
                if os.path.isfile(fp) and not os.path.islink(fp):
                    total += os.path.getsize(fp)
        return total
    return os.lstat(path).st_size

# ============================================================================
# REPORTS
# ============================================================================


@dataclass
class ExtractionReport:
    archive: str
    format: str
    destination: str
    target_dir: Optional[str] = None
    entries: List[str] = field(default_factory=list)
    remaining: int = 0


@dataclass
class CompressionReport:
    archive: str
    format: str
    size_bytes: int
    size: str
    ratio: Optional[float] = None


def top_level_names(names) -> List[str]:
    tops = []
    for name in names:
        name = name.strip()
        while name.startswith("./"):
            name = name[2:]
        head = name.split("/", 1)[0]
        if head and head != "." and head not in tops:
            tops.append(head)
    return tops


def parse_listing(fmt, output) -> List[str]:
    lines = output.splitlines()
    if fmt.kind == SEVEN_ZIP:
        return [line[len("Path = "):] for line in lines if line.startswith("Path = ")]
    return [line for line in lines if line.strip()]

# ============================================================================
# TRANSCODER
# ============================================================================


class ArchiveTranscoder:
    """Extracts and creates archives by dispatching on the filename suffix"""

    def __init__(self, runner=None, preview_limit=PREVIEW_ENTRIES):
        self.runner = runner or SubprocessRunner()
        self.preview_limit = preview_limit

    def require_tools(self, fmt, operation, tag):
        for tool in fmt.required_tools(operation):
            if not self.runner.which(tool):
                raise ToolNotFound(tool, tag)

    def list_entries(self, fmt, archive) -> Optional[List[str]]:
        argv = fmt.list_argv(archive)
        if argv is None:
            return None
        result = self.runner.run(argv)
        if not result.ok:
            logger.debug("listing %s failed with %s", archive, result.returncode)
            return None
        return parse_listing(fmt, result.stdout)

    def extract(self, path, destination=None) -> ExtractionReport:
        if not path:
            raise MissingArgument("Usage: extract <file>", "EXTRACT")
        path = str(path)
        if not os.path.isfile(path):
            raise NotAFile(f"'{path}' is not a valid file", "EXTRACT")
        fmt = match_format(path, "EXTRACT")
        self.require_tools(fmt, "extract", "EXTRACT")

        if destination:
            destination = str(destination)
            os.makedirs(destination, exist_ok=True)
        else:
            destination = os.getcwd()
        names = self.list_entries(fmt, path)
        argv = fmt.extract_argv(path, destination)

        if fmt.kind == STREAM:
            output = os.path.join(destination, strip_suffix(path))
            result = self.runner.run(argv, stdout_path=output)
            if not result.ok and os.path.exists(output):
                os.remove(output)
        else:
            result = self.runner.run(argv)
        if not result.ok:
            raise ExtractionFailed(path, result.returncode, result.stderr)

        return self.build_extraction_report(fmt, path, destination, names)

    def build_extraction_report(self, fmt, path, destination, names) -> ExtractionReport:
        report = ExtractionReport(archive=path, format=fmt.name, destination=destination)
        if names is not None:
            tops = top_level_names(names)
            if len(tops) == 1 and os.path.isdir(os.path.join(destination, tops[0])):
                report.target_dir = os.path.join(destination, tops[0])
        else:
            candidate = os.path.join(destination, strip_suffix(path))
            if os.path.isdir(candidate):
                report.target_dir = candidate
            elif os.path.exists(candidate):
                tops = [os.path.basename(candidate)]
            else:
                tops = []

        if report.target_dir:
            found = sorted(os.listdir(report.target_dir))
        else:
            found = tops
        report.entries = found[:self.preview_limit]
        report.remaining = max(0, len(found) - self.preview_limit)
        return report

    def compress(self, output, inputs) -> CompressionReport:
        if not output or not inputs:
            raise MissingArgument("Usage: compress <output_file> <input_files/dirs...>", "COMPRESS")
        output = str(output)
        inputs = [str(p) for p in inputs]
        for item in inputs:
            if not os.path.lexists(item):
                raise InputNotFound(item, "COMPRESS")
        fmt = match_format(output, "COMPRESS")
        if not fmt.can_compress:
            raise UnsupportedFormat(output, "COMPRESS")
        self.require_tools(fmt, "compress", "COMPRESS")

        existed = os.path.exists(output)
        result = self.runner.run(fmt.compress_argv(output, inputs))
        if not result.ok or not os.path.exists(output):
            if not existed and os.path.exists(output):
                os.remove(output)
            raise CompressionFailed(output, result.returncode, result.stderr)

        size_bytes = os.path.getsize(output)
        original = sum(path_size(p) for p in inputs)
        ratio = round(original / size_bytes, 2) if size_bytes and original else None
        return CompressionReport(archive=output, format=fmt.name, size_bytes=size_bytes,
                                 size=human_size(size_bytes), ratio=ratio)

# ============================================================================
# BACKUPS
# ============================================================================


@dataclass
class BackupRecord:
    path: str
    size_bytes: int
    modified: float

    @property
    def name(self):
        return os.path.basename(self.path)

    @property
    def size(self):
        return human_size(self.size_bytes)


def create_backup(transcoder, source, backup_dir, now=None) -> BackupRecord:
    """Archive a directory to <name>_<stamp>.tar.gz or copy a file to <name>.<stamp>.bak"""
    if not source:
        raise MissingArgument("Usage: backup <file_or_directory>", "BACKUP")
    if not os.path.exists(source):
        raise InputNotFound(source, "BACKUP")
    os.makedirs(backup_dir, exist_ok=True)
    stamp = time.strftime("%Y%m%d_%H%M%S", time.localtime(now))
    name = os.path.basename(os.path.abspath(source))
    if os.path.isdir(source):
        target = os.path.join(backup_dir, f"{name}_{stamp}.tar.gz")
        transcoder.compress(target, [source])
    else:
        target = os.path.join(backup_dir, f"{name}.{stamp}.bak")
        shutil.copy2(source, target)
    st = os.stat(target)
    return BackupRecord(target, st.st_size, st.st_mtime)


def list_backups(backup_dir, pattern=None) -> List[BackupRecord]:
    if not os.path.isdir(backup_dir):
        return []
    records = []
    for entry in os.scandir(backup_dir):
        if not entry.is_file():
            continue
        if pattern and pattern not in entry.name:
            continue
        st = entry.stat()
        records.append(BackupRecord(entry.path, st.st_size, st.st_mtime))
    records.sort(key=lambda r: (r.modified, r.name), reverse=True)
    return records


BACKUP_STAMP = re.compile(r"\.\d{8}_\d{6}\.bak$")


def find_backup(backup_dir, name) -> str:
    """Exact file name in ``backup_dir``, else the newest backup whose name contains ``name``"""
    exact = os.path.join(backup_dir, name)
    if os.path.isfile(exact):
        return exact
    matches = list_backups(backup_dir, name)
    if not matches:
        raise InputNotFound(name, "RESTORE")
    return matches[0].path


def restore_backup(transcoder, backup_dir, name, destination=None) -> str:
    """Restore a backup made by create_backup and return where it went.

    Directory archives are extracted into ``destination`` (default: the
    current directory). File backups are copied to ``destination``, or to
    the original file name without the timestamp in the current directory.
    """
    if not name:
        raise MissingArgument("Usage: backup-restore <backup_file> [destination]", "RESTORE")
    if not os.path.isdir(backup_dir):
        raise InputNotFound(backup_dir, "RESTORE")
    path = find_backup(backup_dir, name)
    if path.endswith((".tar.gz", ".tgz")):
        report = transcoder.extract(path, destination)
        return report.target_dir or report.destination
    if not destination:
        destination = BACKUP_STAMP.sub("", os.path.basename(path))
    return shutil.copy2(path, str(destination))
