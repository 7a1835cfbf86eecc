import shutil
import subprocess
from pathlib import Path

import pytest

from toolgate.config import ToolgateConfig
from toolgate.execution import ExecResult, Executor, LocalExecutor, RunOptions
from toolgate.tools.context import AgentContext


class FakeExecutor(Executor):
    """
    Scripted executor that records every call.

    Responses are matched by a contiguous run of argv elements, so
    on("diff", "--cached") matches ["git", "-C", root, "diff", "--cached", "--quiet"].
    The most recently added matching rule wins; unmatched calls succeed
    with empty output.
    """

    def __init__(self):
        self.calls = []
        self._rules = []

    def on(self, *fragment, stdout="", stderr="", exit_code=0, timed_out=False, raises=None):
        self._rules.append((tuple(fragment), ExecResult(stdout, stderr, exit_code, timed_out=timed_out), raises))
        return self

    def run(self, ctx, argv, opts=None):
        argv = list(argv)
        self.calls.append((argv, opts or RunOptions()))
        for fragment, result, raises in reversed(self._rules):
            if _contains(argv, fragment):
                if raises is not None:
                    raise raises
                return result
        return ExecResult("", "", 0)

    @property
    def commands(self):
        return [argv for argv, _ in self.calls]

    def git_subcommands(self):
        """git calls without the leading `git -C <root>`."""
        return [argv[3:] for argv in self.commands if argv[:2] == ["git", "-C"]]


def _contains(argv, fragment):
    n = len(fragment)
    return any(tuple(argv[i:i + n]) == fragment for i in range(len(argv) - n + 1))


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def config(workspace_root):
    return ToolgateConfig(workspace_root=str(workspace_root))


@pytest.fixture
def agent_context(config, fake_executor):
    return AgentContext(config=config, executor=fake_executor)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep tests away from the user's ~/.toolgate."""
    home = tmp_path / "toolgate_home"
    monkeypatch.setenv("TOOLGATE_HOME", str(home))
    for var in ("TOOLGATE_WORKSPACE_ROOT", "TOOLGATE_TARGET_BRANCH", "TOOLGATE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    return home


# ============================================================================
# Real git repositories
# ============================================================================

class GitRepo:
    """A working clone with a bare `origin` whose main branch is pushed."""

    def __init__(self, path: Path, origin: Path):
        self.path = path
        self.origin = origin

    def git(self, *args: str) -> str:
        proc = subprocess.run(
            ["git", *args], cwd=self.path, check=True, capture_output=True, text=True
        )
        return proc.stdout.strip()

    def write(self, name: str, content: str) -> Path:
        target = self.path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target

    def commit(self, name: str, content: str, message: str) -> str:
        self.write(name, content)
        self.git("add", name)
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")

    def head(self) -> str:
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path):
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    origin = tmp_path / "origin.git"
    subprocess.run(["git", "init", "-q", "--bare", str(origin)], check=True, capture_output=True)
    subprocess.run(["git", "symbolic-ref", "HEAD", "refs/heads/main"], cwd=origin, check=True, capture_output=True)

    path = tmp_path / "repo"
    path.mkdir()
    repo = GitRepo(path, origin)
    repo.git("init", "-q")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    repo.git("config", "user.email", "dev@example.com")
    repo.git("config", "user.name", "Dev")
    repo.git("config", "commit.gpgsign", "false")
    repo.commit("README.md", "# project\n", "initial commit")
    repo.git("remote", "add", "origin", str(origin))
    repo.git("push", "-q", "-u", "origin", "main")
    return repo


@pytest.fixture
def git_context(git_repo):
    """AgentContext running real commands against git_repo."""
    config = ToolgateConfig(workspace_root=str(git_repo.path))
    return AgentContext(config=config, executor=LocalExecutor())
