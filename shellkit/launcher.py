"""
ShellKit script runner

Runs a file of shellkit commands through a single session, so directory
history and verbosity carry from one line to the next.

Features:
1. Blank lines and lines starting with '#' are skipped.
2. Stops at the first failing line unless --keep-going is given.
3. Exit status is that of the last failing line (0 when everything succeeded).
"""
import os
import sys
from pathlib import Path

import colorama
from colorama import Fore

from .app import Session, configure_logging, dispatch, paint

USAGE = "Usage: shellkit-run [--keep-going] [--debug] <script>"


def run_script(path, session, keep_going=False) -> int:
    status = 0
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    for number, line in enumerate(lines, 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        print(paint(Fore.MAGENTA, f"[RUN] {number}: {stripped}"))
        try:
            result = dispatch(session, stripped)
        except SystemExit as e:
            return e.code if isinstance(e.code, int) and e.code else status
        if result != 0:
            status = result
            print(paint(Fore.RED, f"[RUN] Line {number} failed with status {result}"))
            if not keep_going:
                break
    return status


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    keep_going = "--keep-going" in argv
    debug = "--debug" in argv or os.environ.get("SHELLKIT_DEBUG") == "1"
    args = [a for a in argv if a not in ("--keep-going", "--debug")]
    if len(args) != 1:
        print(USAGE)
        return 2

    script = Path(args[0])
    if not script.is_file():
        print(f"[FATAL] Script not found: {script}")
        return 1

    configure_logging(debug)
    colorama.init()
    return run_script(script, Session(), keep_going)


if __name__ == "__main__":
    sys.exit(main())
