#!/usr/bin/env python3
"""
ShellKit - navigation and archive shell for Termux / proot-distro
- cd/back with a bounded directory history and verbose directory reports
- extract/compress for tar, gzip, bzip2, xz, zstd, zip, 7z and rar archives
- Timestamped backups, a trash can, directory sizes and recent files
- Android shared storage helpers
- prompt_toolkit REPL, or one-shot commands from the command line
"""

import getpass
import glob
import logging
import os
import shlex
import sys
import time
from pathlib import Path
from typing import Dict, List

import colorama
from colorama import Fore, Style
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.shortcuts import confirm
from prompt_toolkit.styles import Style as PromptStyle

from .archives import (
    ArchiveTranscoder, FORMATS, create_backup, human_size, list_backups, restore_backup,
    supported_suffixes,
)
from .config import (
    DEFAULT_CONFIG, coerce_setting, config_path, config_set, load_config, parse_value,
    sanitize_config,
)
from .errors import InputNotFound, MissingArgument, NoTempDirectory, ShellKitError
from .files import TrashCan, directory_sizes, recent_files
from .navigation import NavigationHistory, Navigator
from .runner import SubprocessRunner
from .storage import detect_shared_storage, disk_usage, format_storage_path

logger = logging.getLogger(__name__)

# ============================================================================
# OUTPUT HELPERS
# ============================================================================


def paint(color, text):
    return f"{color}{text}{Style.RESET_ALL}"


def say(tag, message, color=Fore.CYAN):
    print(paint(color, f"[{tag}] {message}"))


def report_error(err):
    print(paint(Fore.RED, str(err)))


def print_directory_report(report):
    if report.listing is not None:
        names = []
        for name in report.listing:
            if os.path.isdir(os.path.join(report.path, name)):
                names.append(paint(Fore.BLUE + Style.BRIGHT, name + "/"))
            else:
                names.append(name)
        if names:
            print("  ".join(names))
    if report.vcs_status is not None:
        print()
        print(paint(Fore.YELLOW, "Git status:"))
        print(report.vcs_status or "(clean)")
    for project in report.projects:
        print()
        print(paint(Fore.YELLOW, project))

# ============================================================================
# SESSION
# ============================================================================


class Session:
    """State of one interactive shell: config, navigation history, archive tools"""

    def __init__(self, config=None, runner=None, config_file=None, interactive=False):
        self.config_file = Path(config_file) if config_file else config_path()
        if config is not None:
            self.config = sanitize_config({**DEFAULT_CONFIG, **config})
        else:
            self.config = load_config(self.config_file)
        self.runner = runner or SubprocessRunner()
        self.navigator = Navigator(
            self.runner,
            NavigationHistory(self.config["max_history"]),
            verbose=self.config["cd_verbose"],
        )
        self.transcoder = ArchiveTranscoder(self.runner, self.config["preview_entries"])
        self.interactive = interactive
        self.last_status = 0

    def ask(self, question, default=False) -> bool:
        if not self.interactive:
            return default
        return confirm(question)

    def apply_setting(self, key, value):
        value = coerce_setting(key, value)
        if key == "cd_verbose":
            self.navigator.verbose = value
        elif key == "max_history":
            self.navigator.history.limit = value
        elif key == "preview_entries":
            self.transcoder.preview_limit = value
        self.config[key] = value
        return value

# ============================================================================
# EXPANSION
# ============================================================================


def expand_word(word: str) -> List[str]:
    """Expand ~, $VARS and globs in a word; unmatched globs stay literal"""
    if word == "~" or word.startswith("~/"):
        word = str(Path.home()) + word[1:]
    word = os.path.expandvars(word)
    if any(c in word for c in "*?["):
        matches = sorted(glob.glob(word))
        if matches:
            return matches
    return [word]


def expand_args(args: List[str]) -> List[str]:
    expanded = []
    for arg in args:
        expanded.extend(expand_word(arg))
    return expanded

# ============================================================================
# NAVIGATION COMMANDS
# ============================================================================


def cmd_cd(session, args):
    """cd [path] - change directory (remembered for 'back'); no path goes home"""
    report = session.navigator.change_directory(args[0] if args else None)
    print_directory_report(report)
    return 0


def cmd_back(session, args):
    """back - return to the previous directory in history"""
    report = session.navigator.go_back()
    say("BACK", f"Going back to: {Style.BRIGHT}{report.path}")
    print_directory_report(report)
    return 0


def cmd_toggle_cd_verbose(session, args):
    """toggle-cd-verbose - turn directory listings after cd on or off"""
    state = session.navigator.toggle_verbose()
    print(f"CD verbosity is now {'ON' if state else 'OFF'}")
    return 0


def cmd_dirs(session, args):
    """dirs - show directory history, most recent first"""
    entries = session.navigator.history.entries()
    if not entries:
        say("DIRS", "History is empty", Fore.YELLOW)
        return 0
    for index, path in enumerate(reversed(entries), 1):
        print(f" {index:2d}  {format_storage_path(path)}")
    return 0


def cmd_mcd(session, args):
    """mcd <directory> - create a directory and move into it"""
    if not args:
        raise MissingArgument("Usage: mcd <directory>", "MCD")
    report = session.navigator.make_directory(args[0])
    say("MCD", f"Created and moved to directory: {args[0]}", Fore.GREEN)
    print_directory_report(report)
    return 0


def cmd_up(session, args):
    """up [n] - go up n directory levels (default 1)"""
    try:
        levels = int(args[0]) if args else 1
    except ValueError:
        raise MissingArgument(f"Not a number: {args[0]}", "UP")
    report = session.navigator.up(levels)
    print_directory_report(report)
    return 0


def make_up_alias(levels):
    def up_alias(session, args):
        return cmd_up(session, [str(levels)])
    up_alias.__doc__ = f"{'.' * (levels + 1)} - go up {levels} director{'y' if levels == 1 else 'ies'}"
    return up_alias


def cmd_cdtemp(session, args):
    """cdtemp - create a temporary directory and move into it ('exit-temp' leaves it)"""
    report = session.navigator.enter_temp_directory()
    say("TEMP", f"Created and moved to temporary directory: {report.path}", Fore.GREEN)
    print("Type 'exit-temp' to leave and delete this directory.")
    print_directory_report(report)
    return 0


def cmd_exit_temp(session, args):
    """exit-temp [--keep] - leave the temporary directory from cdtemp and delete it"""
    if not session.navigator.temp_dirs:
        raise NoTempDirectory()
    path = session.navigator.temp_dirs[-1][0]
    remove = "--keep" not in args and session.ask(f"Delete the temporary directory {path}?", default=True)
    path, report = session.navigator.leave_temp_directory(remove)
    if remove:
        say("TEMP", f"Temporary directory deleted: {path}", Fore.GREEN)
    else:
        say("TEMP", f"Temporary directory kept: {path}", Fore.YELLOW)
    if report:
        print_directory_report(report)
    return 0

# ============================================================================
# ARCHIVE COMMANDS
# ============================================================================


def cmd_extract(session, args):
    """extract <file> - extract any supported archive"""
    if not args:
        print(paint(Fore.YELLOW, "Usage: extract <file>"))
        print("Supports: " + ", ".join(supported_suffixes("extract")))
        return 1
    report = session.transcoder.extract(args[0])
    where = report.target_dir or report.destination
    say("EXTRACT", f"Successfully extracted {args[0]} to {where}", Fore.GREEN)
    print(paint(Fore.CYAN, "Extracted contents:"))
    for name in report.entries:
        print("  " + name)
    if report.remaining:
        print(paint(Fore.YELLOW, f"... and {report.remaining} more files"))
    if report.target_dir and session.ask("Do you want to cd into the extracted directory?"):
        print_directory_report(session.navigator.change_directory(report.target_dir))
    return 0


def cmd_compress(session, args):
    """compress <output> <input...> - create an archive; format follows the output suffix"""
    if len(args) < 2:
        print(paint(Fore.YELLOW, "Usage: compress <output_file> <input_files/dirs...>"))
        print("Example: compress backup.tar.gz file1 file2 dir1")
        print("Supported formats: " + ", ".join(supported_suffixes("compress")))
        return 1
    output, inputs = args[0], args[1:]
    say("COMPRESS", f"Compressing {' '.join(inputs)} to {output}...", Fore.YELLOW)
    report = session.transcoder.compress(output, inputs)
    say("COMPRESS", f"Successfully created {output}", Fore.GREEN)
    print(paint(Fore.CYAN, f"Archive size: {Style.BRIGHT}{report.size}"))
    if report.ratio:
        print(paint(Fore.CYAN, f"Compression ratio: {Style.BRIGHT}{report.ratio}x"))
    return 0


def cmd_backup(session, args):
    """backup <file/dir> - timestamped copy (files) or .tar.gz (directories)"""
    if not args:
        raise MissingArgument("Usage: backup <file_or_directory>", "BACKUP")
    record = create_backup(session.transcoder, args[0], session.config["backup_dir"])
    say("BACKUP", f"Backup created: {record.path}", Fore.GREEN)
    print(paint(Fore.CYAN, f"Backup size: {Style.BRIGHT}{record.size}"))
    return 0


def cmd_backups(session, args):
    """backups [pattern] - list backups, newest first"""
    backup_dir = session.config["backup_dir"]
    if not os.path.isdir(backup_dir):
        say("BACKUP", f"Backup directory does not exist: {backup_dir}", Fore.YELLOW)
        return 1
    records = list_backups(backup_dir, args[0] if args else None)
    say("BACKUP", f"Backups in {backup_dir}:", Fore.YELLOW)
    for record in records[:20]:
        print(f"  {paint(Fore.GREEN, record.name)} ({record.size})")
    if len(records) > 20:
        print(paint(Fore.YELLOW, f"... and {len(records) - 20} more files"))
    return 0


def cmd_backup_restore(session, args):
    """backup-restore <backup> [destination] - restore a file or directory backup"""
    backup_dir = session.config["backup_dir"]
    if not args:
        print(paint(Fore.RED, "Usage: backup-restore <backup_file> [destination]"))
        print("Use backups to see available backups")
        return 1
    restored = restore_backup(session.transcoder, backup_dir, args[0], args[1] if len(args) > 1 else None)
    say("BACKUP", f"Backup restored successfully to: {restored}", Fore.GREEN)
    return 0

# ============================================================================
# STORAGE COMMANDS
# ============================================================================


def cmd_sdcard(session, args):
    """sdcard [subdir] - go to Android shared storage"""
    root = detect_shared_storage(session.config.get("shared_storage_paths"))
    if not root:
        say("SDCARD", "Error: Shared storage not found", Fore.RED)
        return 1
    target = os.path.join(root, args[0]) if args else root
    if not os.path.isdir(target):
        say("SDCARD", f"Error: Directory '{args[0]}' not found in shared storage", Fore.RED)
        dirs = sorted(e.name for e in os.scandir(root) if e.is_dir())
        if dirs:
            print(paint(Fore.YELLOW, "Available directories in shared storage:"))
            for name in dirs:
                print("  " + name)
        return 1
    report = session.navigator.change_directory(target)
    say("SDCARD", f"Changed to {Style.BRIGHT}{format_storage_path(report.path)}", Fore.GREEN)
    print_directory_report(report)
    return 0


def cmd_where(session, args):
    """where - show the current path, relative to shared storage when inside it"""
    cwd = os.getcwd()
    pretty = format_storage_path(cwd)
    print(paint(Fore.GREEN, f"Current path: {Style.BRIGHT}{pretty}"))
    if pretty != cwd:
        print(paint(Fore.YELLOW, "Absolute path: ") + cwd)
    return 0


def cmd_storage(session, args):
    """storage [path] - disk usage for the filesystem holding path"""
    path = args[0] if args else "."
    if not os.path.exists(path):
        raise InputNotFound(path, "STORAGE")
    usage = disk_usage(path)
    say("STORAGE", f"{format_storage_path(os.path.abspath(path))}: {usage.describe()}")
    return 0

# ============================================================================
# FILE COMMANDS
# ============================================================================


def cmd_trash(session, args):
    """trash <path...> - move files to the trash instead of deleting them"""
    if not args:
        print(paint(Fore.YELLOW, "Usage: trash <file1> [file2] [...]"))
        print("Move files to trash instead of deleting them permanently")
        return 1
    can = TrashCan(session.config["trash_dir"])
    moved = 0
    status = 0
    for path in args:
        try:
            can.put(path)
        except ShellKitError as e:
            report_error(e)
            status = e.exit_status
            continue
        moved += 1
    if moved:
        say("TRASH", f"Moved {moved} item(s) to trash", Fore.GREEN)
    return status


def cmd_trash_list(session, args):
    """trash-list - show trashed files with their original location"""
    entries = TrashCan(session.config["trash_dir"]).entries()
    if not entries:
        say("TRASH", "Trash is empty", Fore.GREEN)
        return 0
    say("TRASH", "Trash contents:", Fore.YELLOW)
    for entry in entries:
        print(f"{paint(Fore.CYAN, str(entry.index) + ':')} {Style.BRIGHT}{entry.name}{Style.RESET_ALL} "
              f"({paint(Fore.GREEN, entry.size)}, trashed on {paint(Fore.YELLOW, entry.trashed_at or 'unknown')})")
        print(f"   Original path: {paint(Fore.MAGENTA, entry.original_path or 'Unknown')}")
    print()
    print(paint(Fore.CYAN, f"Total: {len(entries)} item(s)"))
    print(paint(Fore.YELLOW, "Use 'trash-restore <number>' to restore or 'trash-empty' to empty trash"))
    return 0


def cmd_trash_restore(session, args):
    """trash-restore <number|name> [destination] - put a trashed file back"""
    if not args:
        print(paint(Fore.YELLOW, "Usage: trash-restore <number|name> [destination]"))
        cmd_trash_list(session, [])
        return 1
    can = TrashCan(session.config["trash_dir"])
    entry = can.find(args[0])
    restored = can.restore(args[0], args[1] if len(args) > 1 else None)
    say("TRASH", f"Successfully restored '{entry.name}' to '{restored}'", Fore.GREEN)
    return 0


def cmd_trash_empty(session, args):
    """trash-empty [-y] - permanently delete everything in the trash"""
    can = TrashCan(session.config["trash_dir"])
    count = len(can)
    if not count:
        say("TRASH", "Trash is already empty", Fore.GREEN)
        return 0
    say("TRASH", f"Warning: This will permanently delete {count} item(s) in trash", Fore.RED)
    if "-y" not in args and not session.ask("Continue?"):
        say("TRASH", "Operation cancelled (use 'trash-empty -y' to skip the question)", Fore.YELLOW)
        return 1
    can.empty()
    say("TRASH", "Trash emptied successfully", Fore.GREEN)
    return 0


def cmd_dirsize(session, args):
    """dirsize [path...] - sizes of files and directories, smallest first"""
    sizes = directory_sizes(args)
    say("DIRSIZE", "Directory sizes:", Fore.YELLOW)
    for path, size in sizes:
        print(f"{human_size(size):>7}  {path}")
    return 0


def cmd_recent(session, args):
    """recent [count] [days] - files modified recently under the current directory"""
    try:
        count = int(args[0]) if args else 10
        days = float(args[1]) if len(args) > 1 else 7
    except ValueError:
        raise MissingArgument("Usage: recent [count] [days]", "RECENT")
    say("RECENT", f"Files modified in the last {days:g} days:", Fore.YELLOW)
    for path, mtime in recent_files(".", count, days):
        print(f"  {time.strftime('%Y-%m-%d %H:%M', time.localtime(mtime))}  {path}")
    return 0

# ============================================================================
# CONFIG / HELP
# ============================================================================


def cmd_config(session, args):
    """config [key [value]] - show or change settings"""
    if not args:
        for key in sorted(session.config):
            print(f"  {key} = {session.config[key]!r}")
        return 0
    key = args[0]
    if len(args) == 1:
        if key not in session.config:
            say("CONFIG", f"Unknown key: {key}", Fore.YELLOW)
            return 1
        print(f"{key} = {session.config[key]!r}")
        return 0
    value = session.apply_setting(key, parse_value(" ".join(args[1:])))
    config_set(key, value, session.config_file)
    say("CONFIG", f"{key} set to {value!r}", Fore.GREEN)
    return 0


def short_help():
    return """SHELLKIT - navigation and archive commands. Type <command>.help for usage.
Core areas: cd/back/dirs/cdtemp, extract/compress, backup, trash, dirsize/recent, sdcard/storage, config
Type 'exit' or Ctrl-D to quit.
"""


def cmd_help(session, args):
    """help [command] - show help for a command or list all commands"""
    if not args:
        print(short_help())
        print("Available commands:")
        for name in sorted(COMMAND_MAP):
            if not name.endswith(".help"):
                doc = (COMMAND_MAP[name].__doc__ or "").strip().splitlines()
                print(f"  {doc[0] if doc else name}")
        if ALIASES:
            print("Aliases: " + ", ".join(f"{a} -> {t}" for a, t in sorted(ALIASES.items())))
        return 0
    name = ALIASES.get(args[0], args[0])
    fn = COMMAND_MAP.get(name)
    if not fn:
        print("No help for", args[0])
        return 1
    print(fn.__doc__ or "(no doc)")
    return 0


def make_help_command(cmdname, fn):
    def help_fn(session, args):
        print(fn.__doc__ or f"No help for {cmdname}")
        return 0
    help_fn.__doc__ = f"{cmdname}.help - show help for {cmdname}"
    return help_fn


def add_help_variants():
    for name, fn in list(COMMAND_MAP.items()):
        if not name.endswith(".help"):
            COMMAND_MAP[name + ".help"] = make_help_command(name, fn)

# ----------------------------
# COMMAND DISPATCH MAP
# ----------------------------

COMMAND_MAP: Dict = {
    "cd": cmd_cd,
    "back": cmd_back,
    "toggle-cd-verbose": cmd_toggle_cd_verbose,
    "dirs": cmd_dirs,
    "mcd": cmd_mcd,
    "up": cmd_up,
    "cdtemp": cmd_cdtemp,
    "exit-temp": cmd_exit_temp,
    "..": make_up_alias(1),
    "...": make_up_alias(2),
    "....": make_up_alias(3),
    "extract": cmd_extract,
    "compress": cmd_compress,
    "backup": cmd_backup,
    "backups": cmd_backups,
    "backup-restore": cmd_backup_restore,
    "sdcard": cmd_sdcard,
    "where": cmd_where,
    "storage": cmd_storage,
    "trash": cmd_trash,
    "trash-list": cmd_trash_list,
    "trash-restore": cmd_trash_restore,
    "trash-empty": cmd_trash_empty,
    "dirsize": cmd_dirsize,
    "recent": cmd_recent,
    "config": cmd_config,
    "help": cmd_help,
}

ALIASES = {
    "b": "back",
    "cdv": "toggle-cd-verbose",
    "toggle_cd_verbose": "toggle-cd-verbose",
    "bak": "backup",
    "backup_list": "backups",
    "backup_restore": "backup-restore",
    "bakrest": "backup-restore",
    "exit_temp": "exit-temp",
    "trash_list": "trash-list",
    "trash_restore": "trash-restore",
    "trash_empty": "trash-empty",
    "tl": "trash-list",
    "te": "trash-empty",
}

add_help_variants()

# ----------------------------
# Dispatch
# ----------------------------


def run_command(session, name, args) -> int:
    """Run one command; errors are reported here and turned into an exit status"""
    fn = COMMAND_MAP.get(ALIASES.get(name, name))
    if fn is None:
        print(paint(Fore.RED, f"[ERROR] Unknown command: {name}"))
        print("Type 'help' for quick list.")
        session.last_status = 127
        return 127
    try:
        status = fn(session, args)
    except ShellKitError as e:
        report_error(e)
        status = e.exit_status
    except OSError as e:
        # filesystem trouble outside the checked paths (permissions, full disk)
        report_error(f"[{name.upper()}] {e}")
        status = 1
    session.last_status = status
    return status


def dispatch(session, raw_line: str) -> int:
    raw = raw_line.strip()
    if not raw or raw.startswith("#"):
        return 0
    try:
        parts = shlex.split(raw)
    except ValueError as e:
        report_error(f"[PARSE] {e}")
        session.last_status = 2
        return 2
    cmd, args = parts[0], parts[1:]
    if cmd in ("exit", "quit"):
        print("Bye.")
        sys.exit(int(args[0]) if args and args[0].isdigit() else 0)
    if args == ["--help"]:
        return run_command(session, "help", [cmd])
    logger.debug("dispatch %s %s", cmd, args)
    return run_command(session, cmd, expand_args(args))

# ============================================================================
# REPL
# ============================================================================


class ShellKitCompleter(Completer):
    """Completion for command names and paths"""

    def __init__(self, commands):
        self.commands = commands

    def get_completions(self, document, complete_event):
        line = document.current_line_before_cursor
        word = document.get_word_before_cursor(WORD=True)

        if not line.strip() or (" " not in line.strip() and not line.endswith(" ")):
            for name in sorted(list(self.commands) + list(ALIASES)):
                if name.startswith(word) and not name.endswith(".help"):
                    yield Completion(name, start_position=-len(word))
            return

        pattern = expand_word(word)[0] if word else ""
        for path in sorted(glob.glob(pattern + "*")):
            suffix = "/" if os.path.isdir(path) else ""
            yield Completion(path + suffix, start_position=-len(word))


def create_prompt_session():
    history_file = Path.home() / ".shellkit_history"
    kb = KeyBindings()

    @kb.add("c-c")
    def _(event):
        """Ctrl+C to cancel"""
        raise KeyboardInterrupt

    return PromptSession(
        completer=ShellKitCompleter(COMMAND_MAP),
        history=FileHistory(str(history_file)),
        key_bindings=kb,
        style=PromptStyle.from_dict({"prompt": "bold cyan"}),
    )


def get_prompt():
    user = getpass.getuser()
    return f"{user}@{format_storage_path(os.getcwd())}> "


def startup_checks(session):
    """Prints a summary of the environment at boot."""
    print("[BOOT] Checking environment...")
    tools = sorted({t for fmt in FORMATS for t in fmt.required_tools("extract")}
                   | {fmt.compress_tool for fmt in FORMATS if fmt.compress_tool})
    found = [t for t in tools if session.runner.which(t)]
    missing = [t for t in tools if t not in found]
    print(f"→ Archive tools... ✅ {' '.join(found) or 'none'}")
    if missing:
        print(f"→ Missing tools... ⚠️  {' '.join(missing)}")
    git = "✅ found" if session.runner.which("git") else "⚠️  not found (no status after cd)"
    print(f"→ Checking git... {git}")
    shared = detect_shared_storage(session.config.get("shared_storage_paths"))
    print(f"→ Shared storage... {'✅ ' + shared if shared else '⚠️  not detected'}")
    print("-" * 20)
    print(f"[READY] SHELLKIT started. CD verbosity {'ON' if session.navigator.verbose else 'OFF'}")
    print("-" * 20)


def repl(session):
    startup_checks(session)
    prompt = create_prompt_session()
    while True:
        try:
            raw = prompt.prompt(get_prompt())
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print()
            continue
        if not raw.strip():
            continue
        try:
            dispatch(session, raw)
        except SystemExit as e:
            return e.code if isinstance(e.code, int) else session.last_status
    return session.last_status

# ----------------------------
# Main
# ----------------------------


def configure_logging(debug=False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    debug = os.environ.get("SHELLKIT_DEBUG") == "1"
    while argv and argv[0] == "--debug":
        debug = True
        argv.pop(0)
    configure_logging(debug)
    colorama.init()

    if argv:
        session = Session()
        try:
            return run_command(session, argv[0], argv[1:])
        except KeyboardInterrupt:
            print()
            return 130

    session = Session(interactive=True)
    return repl(session)


if __name__ == "__main__":
    sys.exit(main())
