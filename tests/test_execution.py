"""Tests for the execution primitive (real subprocesses)."""

import os
import shutil
import threading
import time

import pytest

from toolgate.errors import ArgumentError, CommandNotFoundError, ExecutionError
from toolgate.execution import (
    ContainerExecutor,
    ExecContext,
    ExecResult,
    LocalExecutor,
    RunOptions,
)


pytestmark = pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")


@pytest.fixture
def executor():
    return LocalExecutor(kill_grace=0.5)


@pytest.fixture
def ctx():
    return ExecContext.background()


class TestExecContext:
    """Tests for deadlines and cancellation."""

    def test_background_has_no_deadline(self):
        ctx = ExecContext.background()
        assert ctx.remaining() is None
        assert not ctx.cancelled

    def test_with_timeout_keeps_earlier_deadline(self):
        parent = ExecContext.background().with_timeout(1)
        child = parent.with_timeout(60)
        assert child.remaining() <= 1

    def test_cancel_propagates_to_children(self):
        parent = ExecContext.background()
        child = parent.with_timeout(10)
        parent.cancel()
        assert child.cancelled


class TestExecResult:
    def test_ok(self):
        assert ExecResult("", "", 0).ok
        assert not ExecResult("", "", 1).ok
        assert not ExecResult("", "", 0, timed_out=True).ok

    def test_combined_output(self):
        assert ExecResult("out", "err", 1).combined_output() == "out\nerr"
        assert ExecResult("out\n", "err", 1).combined_output() == "out\nerr"
        assert ExecResult("", "err", 1).combined_output() == "err"

    def test_describe_failure(self):
        assert ExecResult("", "", 2).describe_failure() == "exit 2"
        assert ExecResult("", "", -1, cancelled=True).describe_failure() == "cancelled"
        assert "timed out" in ExecResult("", "", -1, duration=1.0, timed_out=True).describe_failure()


class TestLocalExecutor:
    """Tests for LocalExecutor.run()."""

    def test_captures_stdout_stderr_exit(self, executor, ctx):
        result = executor.run(ctx, ["sh", "-c", "echo out; echo err >&2; exit 3"])
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert result.exit_code == 3
        assert not result.ok

    def test_stdin(self, executor, ctx):
        result = executor.run(ctx, ["cat"], RunOptions(input=b"hello\nworld"))
        assert result.ok
        assert result.stdout == "hello\nworld"

    def test_large_stdin_with_slow_reader(self, executor, ctx):
        """Input is delivered once even when the read loop times out in between."""
        data = b"x" * 200_000
        result = executor.run(ctx, ["sh", "-c", "sleep 0.3; wc -c"], RunOptions(input=data))
        assert result.ok
        assert result.stdout.strip() == "200000"

    def test_cwd_and_env(self, executor, ctx, tmp_path):
        result = executor.run(
            ctx, ["sh", "-c", 'pwd; echo "$TOOLGATE_TEST_VAR"'],
            RunOptions(cwd=str(tmp_path), env={"TOOLGATE_TEST_VAR": "value"}),
        )
        lines = result.stdout.splitlines()
        assert os.path.realpath(lines[0]) == os.path.realpath(str(tmp_path))
        assert lines[1] == "value"

    def test_argv_is_not_shell_parsed(self, executor, ctx):
        result = executor.run(ctx, ["echo", "$HOME; rm -rf /"])
        assert result.stdout == "$HOME; rm -rf /\n"

    def test_non_utf8_output_survives(self, executor, ctx):
        result = executor.run(ctx, ["printf", "\\377\\376"])
        assert result.stdout.encode("utf-8", errors="surrogateescape") == b"\xff\xfe"

    def test_timeout(self, executor, ctx):
        start = time.monotonic()
        result = executor.run(ctx, ["sleep", "30"], RunOptions(timeout=0.3))
        assert result.timed_out
        assert not result.ok
        assert time.monotonic() - start < 10

    def test_context_deadline(self, executor):
        ctx = ExecContext.background().with_timeout(0.3)
        result = executor.run(ctx, ["sleep", "30"])
        assert result.timed_out

    def test_cancel(self, executor, ctx):
        timer = threading.Timer(0.3, ctx.cancel)
        timer.start()
        try:
            start = time.monotonic()
            result = executor.run(ctx, ["sleep", "30"])
        finally:
            timer.cancel()
        assert result.cancelled
        assert not result.timed_out
        assert time.monotonic() - start < 10

    def test_already_cancelled(self, executor, ctx):
        ctx.cancel()
        result = executor.run(ctx, ["echo", "never"])
        assert result.cancelled
        assert result.stdout == ""

    def test_timeout_kills_process_group(self, executor, ctx, tmp_path):
        """Children of the command die with it."""
        marker = tmp_path / "survivor"
        script = f"(sleep 1; touch {marker}) & wait"
        result = executor.run(ctx, ["sh", "-c", script], RunOptions(timeout=0.3))
        assert result.timed_out

        time.sleep(1.5)
        assert not marker.exists()

    def test_command_not_found(self, executor, ctx):
        with pytest.raises(CommandNotFoundError) as exc_info:
            executor.run(ctx, ["toolgate-no-such-binary"])
        assert exc_info.value.command == "toolgate-no-such-binary"

    def test_missing_cwd(self, executor, ctx, tmp_path):
        with pytest.raises(ExecutionError, match="working directory"):
            executor.run(ctx, ["true"], RunOptions(cwd=str(tmp_path / "nope")))

    @pytest.mark.parametrize("argv", [[], ["echo", 3]])
    def test_bad_argv(self, executor, ctx, argv):
        with pytest.raises(ArgumentError):
            executor.run(ctx, argv)


class TestContainerExecutor:
    """Tests for the docker exec wrapper."""

    def test_build_argv(self):
        executor = ContainerExecutor("agent-1")
        argv = executor.build_argv(
            ["git", "status"],
            RunOptions(cwd="/workspace", user="1000", env={"B": "2", "A": "1"}),
        )
        assert argv == [
            "docker", "exec", "-i",
            "--workdir", "/workspace",
            "--user", "1000",
            "-e", "A=1", "-e", "B=2",
            "agent-1", "git", "status",
        ]

    def test_build_argv_minimal(self):
        executor = ContainerExecutor("agent-1", docker_cmd="podman")
        assert executor.build_argv(["ls"], RunOptions()) == ["podman", "exec", "-i", "agent-1", "ls"]

    @pytest.mark.parametrize("name", ["", "-rm"])
    def test_invalid_container(self, name):
        with pytest.raises(ArgumentError):
            ContainerExecutor(name)

    def test_run_delegates_to_local(self):
        calls = []

        class Recorder(LocalExecutor):
            def run(self, ctx, argv, opts=None):
                calls.append((argv, opts))
                return ExecResult("ok", "", 0)

        executor = ContainerExecutor("c1", local=Recorder())
        result = executor.run(ExecContext.background(), ["cat"],
                              RunOptions(cwd="/w", input=b"data", timeout=5))

        assert result.stdout == "ok"
        argv, opts = calls[0]
        assert argv == ["docker", "exec", "-i", "--workdir", "/w", "c1", "cat"]
        assert opts.input == b"data"
        assert opts.timeout == 5
        assert opts.cwd is None
