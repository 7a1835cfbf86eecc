"""get_diff tool: what this branch changed, measured against its baseline."""

import logging
from typing import Any, Dict

from toolgate.errors import GitError, InvalidRefError
from toolgate.execution import ExecContext
from toolgate.tools.base import (
    InputSchema,
    Property,
    Tool,
    ToolDefinition,
    ToolResult,
    clean_workspace_path,
    failure,
    json_result,
    optional_str,
    relative_to_root,
)
from toolgate.tools.context import AgentContext
from toolgate.utils import truncate_lines
from toolgate.workspace.git import GitWorkspace, is_not_a_repository


logger = logging.getLogger(__name__)


class GetDiffTool(Tool):
    """
    Line-bounded diff of HEAD against a branch-relative baseline.

    Without `base` the baseline is merge-base(<remote>/<target>, HEAD). With
    `base` the ref must resolve to a commit; an unresolvable ref is reported
    as such and never replaced by a default.
    """

    name = "get_diff"

    def __init__(self, context: AgentContext):
        self.context = context

    def definition(self) -> ToolDefinition:
        tracking = self.context.config.tracking_ref
        return ToolDefinition(
            name=self.name,
            description=(
                f"Show the changes this branch made relative to its merge-base with {tracking} "
                "(or relative to an explicit base ref). Optionally limit to one path."
            ),
            input_schema=InputSchema(
                properties={
                    "path": Property(
                        type="string",
                        description="Optional file or directory, relative to the workspace root",
                    ),
                    "base": Property(
                        type="string",
                        description=f"Optional base ref or sha (default: merge-base with {tracking})",
                    ),
                },
                required=[],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        config = self.context.config
        root = self.context.workspace_root

        path = optional_str(args, "path")
        base = optional_str(args, "base")
        display_path = None
        if path is not None:
            # Rejected before any command is run
            full_path = clean_workspace_path(path, root)
            display_path = relative_to_root(full_path, root)

        if self.context.executor is None:
            return failure("no executor configured - cannot run git")

        git = GitWorkspace(self.context.executor, root, config.remote,
                           config.target_branch, config.git_timeout)
        try:
            baseline = git.resolve_baseline(ctx, base)
        except InvalidRefError as e:
            return failure(
                f"invalid base ref: {e.ref}",
                base=e.ref,
                hint="Pass a branch, tag or commit sha that exists in this repository, or omit base.",
            )
        except GitError as e:
            return failure(str(e))

        diff_args = ["diff", "--no-color", "--no-ext-diff", f"{baseline.sha}..HEAD"]
        if display_path is not None:
            diff_args += ["--", display_path]

        result = git.run(ctx, *diff_args)
        if not result.ok:
            if is_not_a_repository(result):
                return failure(f"{root} is not a git repository")
            return failure(
                f"git diff failed ({result.describe_failure()})",
                exit_code=result.exit_code,
                stderr=result.stderr.strip(),
            )

        diff, total_lines, truncated = truncate_lines(result.stdout, config.max_diff_lines)
        logger.info(
            f"get_diff: {total_lines} lines against {baseline.ref}",
            extra={"tool": self.name, "event": "diff",
                   "metadata": {"base_sha": baseline.sha, "truncated": truncated}},
        )

        return json_result({
            "success": True,
            "diff": diff,
            "path": display_path or ".",
            "truncated": truncated,
            "lines": total_lines,
            "head_sha": baseline.head_sha,
            "base_sha": baseline.sha,
            "baseline_ref": baseline.ref,
            "diff_mode": baseline.mode,
        })
