"""
ShellKit error types.

Every failure a command can report is a ``ShellKitError``. The message is
prefixed with the tag of the operation that raised it so it can be printed
as-is by the interactive layer.
"""


class ShellKitError(Exception):
    """Base exception for shellkit operations"""
    tag = "SHELLKIT"
    exit_status = 1

    def __init__(self, message, tag=None):
        if tag:
            self.tag = tag
        self.detail = message
        super().__init__(f"[{self.tag}] {message}")


class MissingArgument(ShellKitError):
    pass


class NotAFile(ShellKitError):
    pass


class InputNotFound(ShellKitError):
    """Raised when an input path does not exist; ``path`` names the first one missing"""

    def __init__(self, path, tag=None):
        self.path = path
        super().__init__(f"'{path}' does not exist", tag)


class UnsupportedFormat(ShellKitError):
    def __init__(self, filename, tag=None):
        self.filename = filename
        super().__init__(f"'{filename}' is not a supported archive format", tag)


class ToolNotFound(ShellKitError):
    def __init__(self, tool, tag=None):
        self.tool = tool
        super().__init__(f"'{tool}' command not found", tag)


class ExtractionFailed(ShellKitError):
    def __init__(self, archive, status, stderr=""):
        self.archive = archive
        self.status = status
        self.stderr = stderr
        super().__init__(f"Failed to extract {archive} (exit status {status})", "EXTRACT")


class CompressionFailed(ShellKitError):
    def __init__(self, archive, status, stderr=""):
        self.archive = archive
        self.status = status
        self.stderr = stderr
        super().__init__(f"Failed to create {archive} (exit status {status})", "COMPRESS")


class EmptyHistory(ShellKitError):
    def __init__(self):
        super().__init__("No previous directory in history", "BACK")


class DirectoryChangeFailed(ShellKitError):
    def __init__(self, target, reason=None, tag="CD"):
        self.target = target
        message = f"Cannot change to '{target}'"
        if reason:
            message += f": {reason}"
        super().__init__(message, tag)


class InvalidSetting(ShellKitError):
    def __init__(self, key, value, reason=None):
        self.key = key
        self.value = value
        message = f"Invalid value for {key}: {value!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, "CONFIG")


class PathExists(ShellKitError):
    def __init__(self, path, tag=None):
        self.path = path
        super().__init__(f"A file or directory already exists at '{path}'", tag)


class NotInTrash(ShellKitError):
    def __init__(self, target):
        self.target = target
        super().__init__(f"'{target}' not found in trash", "TRASH")


class NoTempDirectory(ShellKitError):
    def __init__(self):
        super().__init__("No temporary directory to leave", "TEMP")
