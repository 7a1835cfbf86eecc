"""
Git access for an agent workspace, including baseline resolution.

The baseline of a workspace is the commit its changes are measured against:
- an explicit ref supplied by the caller, verified to name a real commit
- otherwise the merge-base of the remote tracking branch and HEAD, so that
  work landed on the tracking branch after this branch was cut does not
  show up as "changed here"

Baselines are resolved on every call. The workspace can move between agent
turns, so nothing here is cached.

All commands are argv invocations of `git -C <root> ...`.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from toolgate.errors import ArgumentError, GitError, InvalidRefError
from toolgate.execution import ExecContext, ExecResult, Executor, RunOptions


logger = logging.getLogger(__name__)

MODE_MERGE_BASE = "merge_base"
MODE_DIRECT_REF = "direct_ref"

# Whitespace, control characters and ".." never appear in a usable base ref
_BAD_REF = re.compile(r"[\s\x00-\x1f\x7f]|\.\.")


def validate_ref_argument(ref: str) -> str:
    """
    Reject ref strings that could be read as options or ranges.

    Raises:
        ArgumentError: If ref is empty, starts with '-', or contains
            whitespace, control characters or '..'
    """
    if not isinstance(ref, str) or not ref:
        raise ArgumentError("base ref must be a non-empty string")
    if ref.startswith("-"):
        raise ArgumentError(f"base ref must not start with '-': {ref!r}")
    if _BAD_REF.search(ref):
        raise ArgumentError(f"base ref contains invalid characters: {ref!r}")
    return ref


def is_not_a_repository(result: ExecResult) -> bool:
    return "not a git repository" in result.stderr.lower()


@dataclass(frozen=True)
class Baseline:
    """Resolved diff baseline."""

    ref: str
    sha: str
    head_sha: str
    mode: str


class GitWorkspace:
    """
    Git operations against one workspace root.

    Args:
        executor: Executor that can see the workspace
        root: Workspace path as seen by the executor
        remote: Remote name of the tracked branch
        target_branch: Branch the work will merge into
        timeout: Per-command timeout in seconds
    """

    def __init__(self, executor: Executor, root: str, remote: str = "origin",
                 target_branch: str = "main", timeout: Optional[float] = 60):
        self.executor = executor
        self.root = root
        self.remote = remote
        self.target_branch = target_branch
        self.timeout = timeout

    @property
    def tracking_ref(self) -> str:
        return f"{self.remote}/{self.target_branch}"

    def run(self, ctx: ExecContext, *args: str) -> ExecResult:
        """Run `git -C root <args>`; non-zero exits are returned, not raised."""
        return self.executor.run(ctx, ["git", "-C", self.root, *args], RunOptions(timeout=self.timeout))

    def _checked(self, ctx: ExecContext, *args: str) -> str:
        result = self.run(ctx, *args)
        if not result.ok:
            if is_not_a_repository(result):
                raise GitError(f"{self.root} is not a git repository", result)
            raise GitError(
                f"git {args[0]} failed ({result.describe_failure()}): {result.stderr.strip()}",
                result,
            )
        return result.stdout.strip()

    def head_sha(self, ctx: ExecContext) -> str:
        return self._checked(ctx, "rev-parse", "HEAD")

    def verify_commit(self, ctx: ExecContext, ref: str) -> str:
        """
        Resolve ref to a commit sha.

        Raises:
            ArgumentError: If ref is syntactically unusable
            InvalidRefError: If ref does not name a commit
            GitError: If the workspace is not a git repository
        """
        validate_ref_argument(ref)
        result = self.run(ctx, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        if not result.ok:
            if is_not_a_repository(result):
                raise GitError(f"{self.root} is not a git repository", result)
            raise InvalidRefError(ref, result)
        return result.stdout.strip()

    def merge_base(self, ctx: ExecContext) -> str:
        """Merge-base of the tracking ref and HEAD."""
        sha = self._checked(ctx, "merge-base", self.tracking_ref, "HEAD")
        if not sha:
            raise GitError(f"no merge-base between {self.tracking_ref} and HEAD")
        return sha

    def commits_since(self, ctx: ExecContext, base_sha: str) -> int:
        """Number of commits reachable from HEAD but not from base_sha."""
        output = self._checked(ctx, "rev-list", "--count", f"{base_sha}..HEAD")
        try:
            return int(output)
        except ValueError:
            raise GitError(f"unexpected rev-list output: {output!r}")

    def resolve_baseline(self, ctx: ExecContext, base: Optional[str] = None) -> Baseline:
        """
        Resolve the diff baseline for this workspace.

        Args:
            ctx: Execution context
            base: Explicit ref, or None for merge-base(tracking ref, HEAD)

        Returns:
            Baseline

        Raises:
            ArgumentError: If base is syntactically unusable
            InvalidRefError: If base does not resolve to a commit
            GitError: If HEAD or the merge-base cannot be resolved
        """
        if base:
            sha = self.verify_commit(ctx, base)
            head = self.head_sha(ctx)
            return Baseline(ref=base, sha=sha, head_sha=head, mode=MODE_DIRECT_REF)

        head = self.head_sha(ctx)
        try:
            sha = self.merge_base(ctx)
        except GitError as e:
            raise GitError(
                f"cannot compute merge-base with {self.tracking_ref}: {e}. "
                f"Fetch {self.remote} or pass an explicit base ref.",
                e.result,
            )
        logger.debug(f"Resolved merge-base {sha[:12]} against {self.tracking_ref}")
        return Baseline(
            ref=f"merge-base({self.tracking_ref}, HEAD)",
            sha=sha,
            head_sha=head,
            mode=MODE_MERGE_BASE,
        )
