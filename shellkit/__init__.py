"""
ShellKit - directory history and archive helpers for Termux / proot-distro terminals.
"""

from .archives import (
    ArchiveFormat, ArchiveTranscoder, CompressionReport, ExtractionReport,
    FORMATS, match_format,
)
from .errors import (
    CompressionFailed, DirectoryChangeFailed, EmptyHistory, ExtractionFailed,
    InputNotFound, InvalidSetting, MissingArgument, NotAFile, NotInTrash, NoTempDirectory,
    PathExists, ShellKitError, ToolNotFound, UnsupportedFormat,
)
from .files import TrashCan, TrashEntry
from .navigation import DirectoryReport, MAX_HISTORY, NavigationHistory, Navigator
from .runner import CommandResult, CommandRunner, SubprocessRunner

__version__ = "1.1.0"

__all__ = [
    "ArchiveFormat", "ArchiveTranscoder", "CompressionReport", "ExtractionReport",
    "FORMATS", "match_format",
    "CompressionFailed", "DirectoryChangeFailed", "EmptyHistory", "ExtractionFailed",
    "InputNotFound", "InvalidSetting", "MissingArgument", "NotAFile", "NotInTrash",
    "NoTempDirectory", "PathExists", "ShellKitError", "ToolNotFound", "UnsupportedFormat",
    "TrashCan", "TrashEntry",
    "DirectoryReport", "MAX_HISTORY", "NavigationHistory", "Navigator",
    "CommandResult", "CommandRunner", "SubprocessRunner",
]
