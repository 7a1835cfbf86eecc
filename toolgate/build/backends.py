"""
Build backends.

A backend recognises one kind of project by its manifest and knows which
commands implement build, test, lint (and sometimes run) for it. Backends
are declarative: plan() returns the steps, and BuildBackend.execute() runs
them through an Executor, stopping at the first failing step.

A step may list alternative commands. They are tried in order and the
first one whose executable exists is used, e.g. `uv run pytest`, then
`pytest`, then `python -m pytest`.

Detection priority: make > go > python > node > null. A project-local
Makefile wins over any language manifest.
"""

import json
import logging
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from toolgate.errors import BuildError, CommandNotFoundError
from toolgate.execution import ExecContext, ExecResult, Executor, RunOptions


logger = logging.getLogger(__name__)

OPERATIONS = ("build", "test", "lint", "run")

MAKEFILE_NAMES = ("GNUmakefile", "makefile", "Makefile")


@dataclass
class Step:
    """One stage of an operation, with alternative commands tried in order."""

    candidates: List[List[str]]
    # When no candidate is installed: skip with a note instead of failing
    optional: bool = False


@dataclass
class BuildPlan:
    steps: List[Step] = field(default_factory=list)
    note: str = ""


@dataclass
class BackendOutcome:
    """Result of running one operation through a backend."""

    success: bool
    output: str
    error: str = ""
    timed_out: bool = False


def _is_missing(result: ExecResult) -> bool:
    # 127: shell/docker "command not found"; python -m <module> without the module
    if result.exit_code == 127:
        return True
    return result.exit_code == 1 and "No module named" in result.stderr


class BuildBackend(ABC):
    """
    Base class for build backends.

    Subclasses set `name`, `priority` and `operations`, and implement
    detect() and plan().
    """

    name: str = ""
    priority: int = 0
    operations: Sequence[str] = ("build", "test", "lint")

    @abstractmethod
    def detect(self, root: Path) -> bool:
        """Return True if this backend handles the project at root."""
        pass

    @abstractmethod
    def plan(self, root: Path, operation: str) -> BuildPlan:
        """Commands implementing operation for the project at root."""
        pass

    def supports(self, operation: str) -> bool:
        return operation in self.operations

    def execute(self, ctx: ExecContext, executor: Executor, root: Path, operation: str) -> BackendOutcome:
        """
        Run an operation's steps in order.

        Raises:
            BuildError: If the backend does not support operation
        """
        if not self.supports(operation):
            raise BuildError(f"backend {self.name} does not support operation {operation}")

        plan = self.plan(root, operation)
        output: List[str] = []
        if plan.note:
            output.append(plan.note + "\n")

        for step in plan.steps:
            result = self._run_step(ctx, executor, root, step, output)
            if result is None:
                if step.optional:
                    continue
                tried = ", ".join(shlex.join(c) for c in step.candidates)
                return BackendOutcome(False, "".join(output), f"no usable command found (tried: {tried})")
            if not result.ok:
                return BackendOutcome(
                    success=False,
                    output="".join(output),
                    error=f"{operation} failed ({result.describe_failure()})",
                    timed_out=result.timed_out,
                )

        return BackendOutcome(True, "".join(output))

    def _run_step(self, ctx: ExecContext, executor: Executor, root: Path,
                  step: Step, output: List[str]) -> Optional[ExecResult]:
        """Run the first available candidate; None when none is installed."""
        for argv in step.candidates:
            output.append(f"$ {shlex.join(argv)}\n")
            try:
                result = executor.run(ctx, argv, RunOptions(cwd=str(root)))
            except CommandNotFoundError:
                output.append(f"{argv[0]}: not found\n")
                continue
            if _is_missing(result) and len(step.candidates) > 1:
                output.append(result.combined_output())
                continue
            output.append(result.combined_output())
            return result
        if step.optional:
            output.append("no candidate command available - skipped\n")
        return None


class MakeBackend(BuildBackend):
    """Projects with a Makefile: every operation is `make <target>`."""

    name = "make"
    priority = 100
    operations = OPERATIONS

    def detect(self, root: Path) -> bool:
        return find_makefile(root) is not None

    def plan(self, root: Path, operation: str) -> BuildPlan:
        return BuildPlan([Step([["make", operation]])])


class GoBackend(BuildBackend):
    name = "go"
    priority = 90
    operations = OPERATIONS

    _COMMANDS = {
        "build": ["go", "build", "./..."],
        "test": ["go", "test", "./..."],
        "lint": ["go", "vet", "./..."],
        "run": ["go", "run", "."],
    }

    def detect(self, root: Path) -> bool:
        return (root / "go.mod").is_file()

    def plan(self, root: Path, operation: str) -> BuildPlan:
        return BuildPlan([Step([self._COMMANDS[operation]])])


class PythonBackend(BuildBackend):
    """
    Python projects (pyproject.toml, setup.py or requirements.txt).

    uv is preferred when the project has a uv.lock; otherwise pip.
    """

    name = "python"
    priority = 80
    operations = ("build", "test", "lint")

    def detect(self, root: Path) -> bool:
        return any((root / f).is_file() for f in ("pyproject.toml", "setup.py", "requirements.txt"))

    def plan(self, root: Path, operation: str) -> BuildPlan:
        uses_uv = (root / "uv.lock").is_file()

        if operation == "build":
            if uses_uv:
                return BuildPlan([Step([["uv", "sync"]])])
            if (root / "requirements.txt").is_file():
                return BuildPlan([Step([
                    ["pip", "install", "-r", "requirements.txt"],
                    ["python", "-m", "pip", "install", "-r", "requirements.txt"],
                ])])
            return BuildPlan([Step([
                ["pip", "install", "-e", "."],
                ["python", "-m", "pip", "install", "-e", "."],
            ])])

        if operation == "test":
            candidates = [["uv", "run", "pytest"]] if uses_uv else []
            candidates += [
                ["pytest"],
                ["python", "-m", "pytest"],
                ["python", "-m", "unittest", "discover"],
            ]
            return BuildPlan([Step(candidates)])

        # lint
        return BuildPlan([Step([
            ["ruff", "check", "."],
            ["flake8"],
            ["pylint", "--recursive=y", "."],
        ], optional=True)])


class NodeBackend(BuildBackend):
    """Node projects; the package manager is picked from the lockfile."""

    name = "node"
    priority = 70
    operations = OPERATIONS

    _LOCKFILES = (
        ("bun.lockb", "bun"),
        ("bun.lock", "bun"),
        ("pnpm-lock.yaml", "pnpm"),
        ("yarn.lock", "yarn"),
    )

    def detect(self, root: Path) -> bool:
        return (root / "package.json").is_file()

    def package_manager(self, root: Path) -> str:
        for lockfile, manager in self._LOCKFILES:
            if (root / lockfile).is_file():
                return manager
        return "npm"

    def scripts(self, root: Path) -> dict:
        try:
            data = json.loads((root / "package.json").read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Cannot read package.json scripts: {e}")
            return {}
        scripts = data.get("scripts") if isinstance(data, dict) else None
        return scripts if isinstance(scripts, dict) else {}

    def plan(self, root: Path, operation: str) -> BuildPlan:
        pm = self.package_manager(root)
        scripts = self.scripts(root)
        script = "start" if operation == "run" else operation

        steps = []
        if operation == "build":
            steps.append(Step([[pm, "install"]]))
        if script in scripts:
            steps.append(Step([[pm, "run", script]]))
            return BuildPlan(steps)
        if steps:
            return BuildPlan(steps, note=f"no {script} script in package.json - only installing dependencies")
        return BuildPlan(note=f"no {script} script in package.json - nothing to run")


class NullBackend(BuildBackend):
    """Fallback for projects without any recognised build system."""

    name = "null"
    priority = 0

    def detect(self, root: Path) -> bool:
        return True

    def plan(self, root: Path, operation: str) -> BuildPlan:
        return BuildPlan(note=f"no build system detected - nothing to {operation}")


def find_makefile(root: Path) -> Optional[Path]:
    """The Makefile make would use in root, if any."""
    for name in MAKEFILE_NAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


class BackendRegistry:
    """
    Ordered set of backends; detect() returns the highest-priority match.

    Usage:
        registry = BackendRegistry.create_default()
        backend = registry.detect(Path("/workspace"))
    """

    def __init__(self, backends: Optional[Sequence[BuildBackend]] = None):
        self._backends: List[BuildBackend] = []
        for backend in backends or []:
            self.register(backend)

    def register(self, backend: BuildBackend) -> None:
        self._backends.append(backend)
        self._backends.sort(key=lambda b: b.priority, reverse=True)

    def list_backends(self) -> List[str]:
        return [b.name for b in self._backends]

    def detect(self, root: Path) -> BuildBackend:
        """
        Detect the backend for root.

        Raises:
            BuildError: If no registered backend matches
        """
        for backend in self._backends:
            if backend.detect(root):
                logger.debug(f"Detected {backend.name} backend in {root}")
                return backend
        raise BuildError(f"no build backend matches {root}")

    @classmethod
    def create_default(cls) -> "BackendRegistry":
        return cls([MakeBackend(), GoBackend(), PythonBackend(), NodeBackend(), NullBackend()])
