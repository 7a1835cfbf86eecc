"""
Tests for get_diff.

The real-git tests build a feature branch, then land an unrelated commit on
origin/main. The diff must show only the feature branch's own changes.
"""

import json

import pytest

from toolgate.config import ToolgateConfig
from toolgate.errors import ArgumentError
from toolgate.execution import ExecContext, LocalExecutor
from toolgate.tools.context import AgentContext
from toolgate.tools.diff import GetDiffTool


def _payload(result):
    return json.loads(result.content)


@pytest.fixture
def ctx():
    return ExecContext.background()


@pytest.fixture
def diverged_repo(git_repo):
    """feature branch with two commits; main gained upstream.txt afterwards."""
    base_sha = git_repo.head()
    git_repo.git("checkout", "-q", "-b", "feature")
    git_repo.commit("f1.txt", "one\n", "feature commit 1")
    git_repo.commit("f2.txt", "two\n", "feature commit 2")

    git_repo.git("checkout", "-q", "main")
    git_repo.commit("upstream.txt", "landed upstream\n", "upstream work")
    git_repo.git("push", "-q", "origin", "main")
    git_repo.git("checkout", "-q", "feature")
    git_repo.base_sha = base_sha
    return git_repo


class TestMergeBaseDiff:
    """Default baseline: merge-base(origin/main, HEAD)."""

    def test_excludes_upstream_changes(self, diverged_repo, git_context, ctx):
        payload = _payload(GetDiffTool(git_context).execute(ctx, {}))

        assert payload["success"] is True
        assert payload["diff_mode"] == "merge_base"
        assert payload["base_sha"] == diverged_repo.base_sha
        assert payload["head_sha"] == diverged_repo.head()
        assert payload["baseline_ref"] == "merge-base(origin/main, HEAD)"
        assert "f1.txt" in payload["diff"]
        assert "f2.txt" in payload["diff"]
        assert "upstream.txt" not in payload["diff"]
        assert payload["truncated"] is False

    def test_path_filter(self, diverged_repo, git_context, ctx):
        payload = _payload(GetDiffTool(git_context).execute(ctx, {"path": "f1.txt"}))

        assert payload["path"] == "f1.txt"
        assert "f1.txt" in payload["diff"]
        assert "f2.txt" not in payload["diff"]

    def test_uncommitted_work_not_included(self, diverged_repo, git_context, ctx):
        """The diff is committed history: baseline..HEAD."""
        diverged_repo.write("scratch.txt", "wip\n")
        payload = _payload(GetDiffTool(git_context).execute(ctx, {}))
        assert "scratch.txt" not in payload["diff"]

    def test_truncation(self, diverged_repo, ctx):
        config = ToolgateConfig(workspace_root=str(diverged_repo.path), max_diff_lines=3)
        tool = GetDiffTool(AgentContext(config=config, executor=LocalExecutor()))

        payload = _payload(tool.execute(ctx, {}))

        assert payload["truncated"] is True
        assert len(payload["diff"].splitlines()) == 3
        assert payload["lines"] > 3

    def test_no_changes(self, git_repo, git_context, ctx):
        payload = _payload(GetDiffTool(git_context).execute(ctx, {}))
        assert payload["success"] is True
        assert payload["diff"] == ""
        assert payload["lines"] == 0


class TestExplicitBase:
    """A caller-supplied base is verified, never replaced."""

    def test_direct_ref(self, diverged_repo, git_context, ctx):
        payload = _payload(GetDiffTool(git_context).execute(ctx, {"base": "main"}))

        assert payload["success"] is True
        assert payload["diff_mode"] == "direct_ref"
        assert payload["baseline_ref"] == "main"
        # main moved on, so its upstream file shows up as removed here
        assert "upstream.txt" in payload["diff"]

    def test_base_sha(self, diverged_repo, git_context, ctx):
        payload = _payload(GetDiffTool(git_context).execute(ctx, {"base": diverged_repo.base_sha}))
        assert payload["base_sha"] == diverged_repo.base_sha
        assert "upstream.txt" not in payload["diff"]

    def test_invalid_ref(self, diverged_repo, git_context, ctx):
        payload = _payload(GetDiffTool(git_context).execute(ctx, {"base": "no-such-branch"}))

        assert payload["success"] is False
        assert payload["error"] == "invalid base ref: no-such-branch"
        assert payload["base"] == "no-such-branch"
        assert "hint" in payload

    @pytest.mark.parametrize("base", ["--output=/tmp/x", "main..feature", "a b"])
    def test_option_like_ref_rejected(self, agent_context, fake_executor, ctx, base):
        with pytest.raises(ArgumentError):
            GetDiffTool(agent_context).execute(ctx, {"base": base})
        assert fake_executor.calls == []


class TestFailures:
    """Failures come back as structured payloads."""

    def test_merge_base_unavailable(self, agent_context, fake_executor, ctx):
        fake_executor.on("rev-parse", "HEAD", stdout="abc123\n")
        fake_executor.on("merge-base", stderr="fatal: Not a valid object name origin/main", exit_code=128)

        payload = _payload(GetDiffTool(agent_context).execute(ctx, {}))

        assert payload["success"] is False
        assert "cannot compute merge-base with origin/main" in payload["error"]
        assert "pass an explicit base ref" in payload["error"]
        assert not any(cmd[:1] == ["diff"] for cmd in fake_executor.git_subcommands())

    def test_not_a_repository(self, agent_context, fake_executor, ctx):
        fake_executor.on("rev-parse", stderr="fatal: not a git repository (or any parent)", exit_code=128)

        payload = _payload(GetDiffTool(agent_context).execute(ctx, {}))

        assert payload["success"] is False
        assert "is not a git repository" in payload["error"]

    def test_diff_command_fails(self, agent_context, fake_executor, ctx):
        fake_executor.on("rev-parse", "HEAD", stdout="abc\n")
        fake_executor.on("merge-base", stdout="def\n")
        fake_executor.on("diff", "--no-color", stderr="boom", exit_code=2)

        payload = _payload(GetDiffTool(agent_context).execute(ctx, {}))

        assert payload["success"] is False
        assert payload["exit_code"] == 2

    def test_commands_scripted(self, agent_context, fake_executor, workspace_root, ctx):
        fake_executor.on("rev-parse", "HEAD", stdout="head1\n")
        fake_executor.on("merge-base", stdout="base1\n")
        fake_executor.on("diff", "--no-color", stdout="diff --git a/x b/x\n")

        payload = _payload(GetDiffTool(agent_context).execute(ctx, {"path": "src"}))

        assert payload["success"] is True
        assert fake_executor.git_subcommands() == [
            ["rev-parse", "HEAD"],
            ["merge-base", "origin/main", "HEAD"],
            ["diff", "--no-color", "--no-ext-diff", "base1..HEAD", "--", "src"],
        ]
        assert fake_executor.commands[0][2] == str(workspace_root)

    def test_no_executor(self, config, ctx):
        payload = _payload(GetDiffTool(AgentContext(config=config)).execute(ctx, {}))
        assert payload["success"] is False
