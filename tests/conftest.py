"""
Shared fixtures for the shellkit tests.
"""
import os

import pytest

from shellkit.app import Session
from shellkit.runner import CommandResult, CommandRunner


class FakeRunner(CommandRunner):
    """Records every invocation and answers from a script of results.

    ``script(prefix, ...)`` registers a result for any argv starting with
    ``prefix``; the longest matching prefix wins. ``effect`` is called with
    ``(argv, cwd, stdout_path)`` before the result is returned so a test can
    create the files a real tool would have produced.
    """

    def __init__(self, tools=()):
        self.tools = set(tools)
        self.calls = []
        self.rules = []

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.tools else None

    def script(self, prefix, returncode=0, stdout="", stderr="", effect=None):
        self.rules.append((tuple(prefix), CommandResult(returncode, stdout, stderr), effect))
        return self

    def run(self, argv, cwd=None, stdout_path=None):
        self.calls.append(list(argv))
        best = None
        for prefix, result, effect in self.rules:
            if tuple(argv[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best[0])):
                best = (prefix, result, effect)
        if best is None:
            return CommandResult(0)
        _, result, effect = best
        if effect:
            effect(argv, cwd, stdout_path)
        return result


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the test inside a fresh directory; the original cwd is restored afterwards."""
    root = tmp_path / "work"
    root.mkdir()
    monkeypatch.chdir(root)
    return root.resolve()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def session(tmp_path, runner, workdir):
    config = {
        "cd_verbose": False,
        "backup_dir": str(tmp_path / "backups"),
        "trash_dir": str(tmp_path / "trash"),
        "shared_storage_paths": [str(tmp_path / "no-sdcard")],
    }
    return Session(config=config, runner=runner, config_file=tmp_path / "conf.json")


def write(path, content="x"):
    path = str(path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w") as f:
        f.write(content)
    return path
