"""Shared fixtures for Krems Publisher tests."""

import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from krems_publisher.core.models import CommandFailure, CommandResult, Secret

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

GIT_IDENTITY = ["-c", "user.name=Test Author", "-c", "user.email=test@example.com"]


class FakeRunner:
    """Records commands instead of running them.

    Outcomes are registered per argument prefix; the longest matching prefix
    wins. Unmatched commands succeed with empty output.
    """

    def __init__(self):
        self.calls: List[Tuple[list, Path, Optional[Dict[str, str]]]] = []
        self._outcomes: Dict[tuple, Union[CommandResult, CommandFailure, Callable]] = {}

    def on(self, *prefix: str, stdout: str = "", stderr: str = "", fail: bool = False, returncode: int = 1, effect=None):
        if effect is not None:
            self._outcomes[prefix] = effect
        elif fail:
            self._outcomes[prefix] = CommandFailure(
                f"Command failed: {' '.join(prefix)}. Exit code {returncode}",
                stdout=stdout,
                stderr=stderr,
                returncode=returncode,
            )
        else:
            self._outcomes[prefix] = CommandResult(stdout=stdout, stderr=stderr)
        return self

    async def run(self, args, cwd, env=None) -> CommandResult:
        args = list(args)
        self.calls.append((args, Path(cwd), env))
        shown = tuple(str(a) for a in args)
        for prefix in sorted(self._outcomes, key=len, reverse=True):
            if shown[:len(prefix)] != prefix:
                continue
            outcome = self._outcomes[prefix]
            if isinstance(outcome, CommandFailure):
                raise outcome
            if callable(outcome):
                return outcome(args, cwd) or CommandResult("", "")
            return outcome
        return CommandResult("", "")

    @property
    def commands(self) -> List[List[str]]:
        """Recorded commands as strings, with Secret arguments masked."""
        return [[str(a) for a in args] for args, _, _ in self.calls]

    def secrets(self) -> List[Secret]:
        return [a for args, _, _ in self.calls for a in args if isinstance(a, Secret)]


@pytest.fixture
def fake_runner():
    return FakeRunner()


def git_run(*args: str, cwd: Path) -> str:
    """Run git synchronously for fixture setup."""
    process = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return process.stdout.strip()


@pytest.fixture
def source_repo(tmp_path):
    """A local git repository with one commit, usable as a clone source."""
    source = tmp_path / "source"
    source.mkdir()
    git_run("init", cwd=source)
    (source / "index.md").write_text("# Welcome\n")
    (source / "config.yaml").write_text("website:\n  name: Example\n")
    git_run("add", ".", cwd=source)
    git_run("commit", "-m", "initial site", cwd=source)
    return source


@pytest.fixture
def bare_remote(tmp_path, source_repo):
    """A bare repository cloned from source_repo, acting as the site remote."""
    remote = tmp_path / "remote.git"
    git_run("clone", "--bare", str(source_repo), str(remote), cwd=tmp_path)
    return remote
