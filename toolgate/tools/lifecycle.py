"""
Lifecycle tools: they do little work themselves and mostly hand the
orchestrator a signal.

- mark_story_complete: the story needs no (further) work -> STORY_COMPLETE
- review_complete: a review verdict -> review_complete
- spec_submit: a finished specification for user review -> SPEC_PREVIEW
- bootstrap: record project identity, then -> BOOTSTRAP_COMPLETE
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict

import yaml

from toolgate.errors import ArgumentError
from toolgate.execution import ExecContext
from toolgate.tools.base import (
    Effect,
    InputSchema,
    Property,
    Signal,
    Tool,
    ToolDefinition,
    ToolResult,
    failure,
    require_enum,
    require_str,
)
from toolgate.tools.context import AgentContext


logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ["HIGH", "MEDIUM", "LOW"]
REVIEW_STATUSES = ["APPROVED", "NEEDS_CHANGES", "REJECTED"]
PLATFORMS = ["go", "python", "node", "rust", "generic"]

STATE_DIR = ".toolgate"
PROJECT_FILE = "project.yaml"

_PROJECT_NAME = re.compile(r"^[A-Za-z0-9._-]+$")
_GITHUB_URL = re.compile(r"^https://github\.com/[A-Za-z0-9._-]+/[A-Za-z0-9._-]+?(\.git)?/?$")


class MarkStoryCompleteTool(Tool):
    name = "mark_story_complete"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "Mark the story complete without further changes, e.g. when the requested "
                "behaviour already exists. Explain why and give evidence."
            ),
            input_schema=InputSchema(
                properties={
                    "reason": Property(type="string", description="Why no further work is needed"),
                    "evidence": Property(type="string", description="Files, tests or output showing the story is satisfied"),
                    "confidence": Property(type="string", description="How sure you are", enum=CONFIDENCE_LEVELS),
                },
                required=["reason", "evidence", "confidence"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        reason = require_str(args, "reason").strip()
        evidence = require_str(args, "evidence").strip()
        confidence = require_enum(args, "confidence", CONFIDENCE_LEVELS, upper=True)

        return ToolResult(
            content=f"Story marked complete ({confidence} confidence): {reason}",
            effect=Effect(Signal.STORY_COMPLETE, {
                "reason": reason,
                "evidence": evidence,
                "confidence": confidence,
            }),
        )


class ReviewCompleteTool(Tool):
    name = "review_complete"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description="Finish a review with a verdict and feedback for the author.",
            input_schema=InputSchema(
                properties={
                    "status": Property(type="string", description="Review verdict", enum=REVIEW_STATUSES),
                    "feedback": Property(type="string", description="Feedback explaining the verdict"),
                },
                required=["status", "feedback"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        status = require_enum(args, "status", REVIEW_STATUSES, upper=True)
        feedback = require_str(args, "feedback").strip()

        return ToolResult(
            content=f"Review completed with status {status}",
            effect=Effect(Signal.REVIEW_COMPLETE, {"status": status, "feedback": feedback}),
        )


class SpecSubmitTool(Tool):
    name = "spec_submit"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description="Submit the finalized specification (markdown) for user review.",
            input_schema=InputSchema(
                properties={
                    "markdown": Property(type="string", description="The complete specification in markdown"),
                    "summary": Property(type="string", description="One or two sentence summary of the specification"),
                },
                required=["markdown", "summary"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        markdown = require_str(args, "markdown")
        summary = require_str(args, "summary").strip()

        return ToolResult(
            content=f"Specification submitted for review: {summary}",
            effect=Effect(Signal.SPEC_PREVIEW, {"spec_markdown": markdown, "summary": summary}),
        )


class BootstrapTool(Tool):
    """
    Record the project's name, repository and platform.

    Writes .toolgate/project.yaml in the workspace and asks the orchestrator
    to restart the agent with fresh context.
    """

    name = "bootstrap"

    def __init__(self, context: AgentContext):
        self.context = context

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description="Configure the project's name, GitHub repository and primary platform.",
            input_schema=InputSchema(
                properties={
                    "project_name": Property(type="string", description="Short project name (letters, digits, '.', '_', '-')"),
                    "git_url": Property(type="string", description="HTTPS GitHub URL, e.g. https://github.com/org/repo"),
                    "platform": Property(type="string", description="Primary platform", enum=PLATFORMS),
                },
                required=["project_name", "git_url", "platform"],
            ),
        )

    def project_file(self) -> Path:
        return Path(self.context.host_workspace) / STATE_DIR / PROJECT_FILE

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        project_name = require_str(args, "project_name").strip()
        git_url = require_str(args, "git_url").strip()
        platform = require_enum(args, "platform", PLATFORMS, lower=True)

        if not _PROJECT_NAME.match(project_name):
            raise ArgumentError(f"project_name may only contain letters, digits, '.', '_' and '-': {project_name!r}")
        if not _GITHUB_URL.match(git_url):
            raise ArgumentError(f"git_url must be an https://github.com/<owner>/<repo> URL: {git_url!r}")

        project = {"name": project_name, "git_url": git_url, "platform": platform}
        path = self.project_file()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.safe_dump({"project": project}, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            return failure(f"cannot write {path}: {e}")

        logger.info(f"bootstrap: configured {project_name} ({platform})", extra={"tool": self.name})
        return ToolResult(
            content=(
                f"Project configured: {project_name} ({platform}) at {git_url}. "
                "Context will be reset to continue with the configured project."
            ),
            effect=Effect(Signal.BOOTSTRAP_COMPLETE, {
                "project_name": project_name,
                "git_url": git_url,
                "platform": platform,
                "reset_context": True,
            }),
        )
