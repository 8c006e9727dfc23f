"""
Child process execution for shellkit.

Navigation and archive operations never call ``subprocess`` directly; they
go through a ``CommandRunner`` so tests can substitute a runner that records
invocations and returns scripted results.
"""
import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

INTERRUPTED_STATUS = 130


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Interface for running external tools"""

    def which(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def run(self, argv: List[str], cwd=None, stdout_path=None) -> CommandResult:
        """Run ``argv`` to completion.

        When ``stdout_path`` is given the child's standard output is written
        to that file instead of being captured.
        """
        raise NotImplementedError


class SubprocessRunner(CommandRunner):
    """Runs tools as synchronous child processes"""

    def which(self, name):
        return shutil.which(name)

    def run(self, argv, cwd=None, stdout_path=None):
        logger.debug("run %s (cwd=%s)", argv, cwd or ".")
        try:
            if stdout_path is not None:
                with open(stdout_path, "wb") as out:
                    proc = subprocess.run(argv, cwd=cwd, stdin=subprocess.DEVNULL,
                                          stdout=out, stderr=subprocess.PIPE)
                result = CommandResult(proc.returncode, "", proc.stderr.decode("utf-8", errors="replace"))
            else:
                proc = subprocess.run(argv, cwd=cwd, stdin=subprocess.DEVNULL,
                                      capture_output=True, text=True, errors="replace")
                result = CommandResult(proc.returncode, proc.stdout, proc.stderr)
        except KeyboardInterrupt:
            # Ctrl-C already reached the child; report it as a failed run
            logger.debug("interrupted: %s", argv)
            return CommandResult(INTERRUPTED_STATUS, "", "interrupted")
        except OSError as e:
            logger.debug("could not start %s: %s", argv[0], e)
            return CommandResult(127, "", str(e))
        logger.debug("exit %s: %s", result.returncode, argv[0])
        return result
