"""
Execution primitive for toolgate.

Runs argv commands (never a shell string) with optional working directory,
environment, stdin and timeout, and captures stdout, stderr and exit code.

Every call takes an ExecContext. The context carries a cancellation event
and an optional deadline shared by everything run on behalf of one agent
turn. Cancelling the context or reaching a timeout kills the whole process
group of the running command, so nothing is left orphaned in the workspace.

A timed-out or cancelled command is an ordinary failed result
(``ExecResult.ok`` is False). Only a command that cannot be started at all
raises ExecutionError.
"""

import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from toolgate.errors import ArgumentError, CommandNotFoundError, ExecutionError


logger = logging.getLogger(__name__)

# How often a blocked run wakes up to look at the cancellation event
POLL_INTERVAL = 0.1

# Time between SIGTERM and SIGKILL when stopping a process group
KILL_GRACE_SECONDS = 2.0


class ExecContext:
    """
    Cancellation and deadline scope for command execution.

    Usage:
        ctx = ExecContext.background()
        step_ctx = ctx.with_timeout(30)
        executor.run(step_ctx, ["git", "status"])

        # From another thread
        ctx.cancel()
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None, deadline: Optional[float] = None):
        self._cancel_event = cancel_event or threading.Event()
        self.deadline = deadline

    @classmethod
    def background(cls) -> "ExecContext":
        """A context that is never cancelled and has no deadline."""
        return cls()

    def with_timeout(self, seconds: Optional[float]) -> "ExecContext":
        """
        Derive a child context that expires after `seconds`.

        The child shares this context's cancellation event and keeps the
        earlier of the two deadlines.
        """
        if seconds is None:
            return ExecContext(self._cancel_event, self.deadline)
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return ExecContext(self._cancel_event, deadline)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (0 when passed), or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())


@dataclass
class RunOptions:
    """Per-command options."""

    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    input: Optional[bytes] = None
    # Only honoured by executors that run inside a container
    user: Optional[str] = None


@dataclass
class ExecResult:
    """Captured outcome of one command."""

    stdout: str
    stderr: str
    exit_code: int
    duration: float = 0.0
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.cancelled

    def combined_output(self) -> str:
        """stdout followed by stderr, for reporting."""
        if self.stdout and self.stderr:
            sep = "" if self.stdout.endswith("\n") else "\n"
            return f"{self.stdout}{sep}{self.stderr}"
        return self.stdout or self.stderr

    def describe_failure(self) -> str:
        """One-line reason this result is not ok."""
        if self.timed_out:
            return f"timed out after {self.duration:.1f}s"
        if self.cancelled:
            return "cancelled"
        return f"exit {self.exit_code}"


def _decode(data: Optional[bytes]) -> str:
    # surrogateescape keeps arbitrary bytes recoverable via .encode(..., "surrogateescape")
    if not data:
        return ""
    return data.decode("utf-8", errors="surrogateescape")


def _check_argv(argv: Sequence[str]) -> list[str]:
    if not argv:
        raise ArgumentError("command argv must not be empty")
    for part in argv:
        if not isinstance(part, str):
            raise ArgumentError(f"command argv elements must be strings, got {part!r}")
    return list(argv)


def _terminate_process_group(proc: subprocess.Popen, grace_s: float = KILL_GRACE_SECONDS) -> None:
    """Stop proc and every process in its group."""
    if proc.poll() is not None:
        return

    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(proc.pid, signal.SIGTERM)

    deadline = time.monotonic() + grace_s
    while time.monotonic() < deadline:
        if proc.poll() is not None:
            return
        time.sleep(0.05)

    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(proc.pid, signal.SIGKILL)


class Executor(ABC):
    """
    Base class for command executors.

    Implementations run an argv list and return an ExecResult. They must
    honour the context's cancellation and deadline as well as opts.timeout,
    whichever expires first.
    """

    @abstractmethod
    def run(self, ctx: ExecContext, argv: Sequence[str], opts: Optional[RunOptions] = None) -> ExecResult:
        """
        Run a command.

        Args:
            ctx: Cancellation/deadline scope
            argv: Command and arguments
            opts: Working directory, environment, stdin, timeout

        Returns:
            ExecResult (also for non-zero exits, timeouts and cancellation)

        Raises:
            ArgumentError: If argv is empty or malformed
            CommandNotFoundError: If the executable does not exist
            ExecutionError: If the command could not be started
        """
        pass


class LocalExecutor(Executor):
    """Runs commands as host subprocesses, each in its own session."""

    def __init__(self, kill_grace: float = KILL_GRACE_SECONDS):
        self.kill_grace = kill_grace

    def run(self, ctx: ExecContext, argv: Sequence[str], opts: Optional[RunOptions] = None) -> ExecResult:
        argv = _check_argv(argv)
        opts = opts or RunOptions()
        run_ctx = ctx.with_timeout(opts.timeout)

        if run_ctx.cancelled:
            return ExecResult("", "", -1, cancelled=True)
        if run_ctx.remaining() == 0:
            return ExecResult("", "", -1, timed_out=True)

        env = None
        if opts.env:
            env = {**os.environ, **opts.env}

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=opts.cwd,
                env=env,
                stdin=subprocess.PIPE if opts.input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError:
            if opts.cwd and not os.path.isdir(opts.cwd):
                raise ExecutionError(f"working directory does not exist: {opts.cwd}")
            raise CommandNotFoundError(argv[0])
        except OSError as e:
            raise ExecutionError(f"failed to start {argv[0]}: {e}")

        timed_out = False
        cancelled = False
        pending_input = opts.input
        while True:
            step = POLL_INTERVAL
            remaining = run_ctx.remaining()
            if remaining is not None:
                step = min(step, remaining)
            try:
                stdout, stderr = proc.communicate(input=pending_input, timeout=step)
                break
            except subprocess.TimeoutExpired:
                # Popen keeps the unsent input; passing it again is an error
                pending_input = None
                if run_ctx.cancelled:
                    cancelled = True
                elif run_ctx.remaining() == 0:
                    timed_out = True
                else:
                    continue
                _terminate_process_group(proc, self.kill_grace)
                stdout, stderr = proc.communicate()
                break

        result = ExecResult(
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            exit_code=proc.returncode if proc.returncode is not None else -1,
            duration=time.monotonic() - start,
            timed_out=timed_out,
            cancelled=cancelled,
        )
        logger.debug(
            f"{argv[0]} exited {result.exit_code} in {result.duration:.2f}s",
            extra={"event": "exec", "metadata": {"argv": argv, "cwd": opts.cwd,
                                                 "timed_out": timed_out, "cancelled": cancelled}},
        )
        return result


class ContainerExecutor(Executor):
    """
    Runs commands inside a running container via `docker exec`.

    The docker client itself runs through a LocalExecutor, so timeouts and
    cancellation kill the client process group.
    """

    def __init__(self, container: str, docker_cmd: str = "docker", local: Optional[LocalExecutor] = None):
        if not container or container.startswith("-"):
            raise ArgumentError(f"invalid container name: {container!r}")
        self.container = container
        self.docker_cmd = docker_cmd
        self.local = local or LocalExecutor()

    def build_argv(self, argv: Sequence[str], opts: RunOptions) -> list[str]:
        docker_argv = [self.docker_cmd, "exec", "-i"]
        if opts.cwd:
            docker_argv += ["--workdir", opts.cwd]
        if opts.user:
            docker_argv += ["--user", opts.user]
        for key, value in sorted(opts.env.items()):
            docker_argv += ["-e", f"{key}={value}"]
        docker_argv.append(self.container)
        docker_argv.extend(argv)
        return docker_argv

    def run(self, ctx: ExecContext, argv: Sequence[str], opts: Optional[RunOptions] = None) -> ExecResult:
        argv = _check_argv(argv)
        opts = opts or RunOptions()
        docker_argv = self.build_argv(argv, opts)
        # cwd/env/user are applied inside the container, not to the docker client
        return self.local.run(ctx, docker_argv, RunOptions(timeout=opts.timeout, input=opts.input))
