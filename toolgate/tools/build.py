"""
Build tools: build, test, lint and backend_info.

build runs the task-class validation gate first; test, lint and
backend_info do not. All four resolve `cwd` inside the workspace.
"""

import logging
from typing import Any, Dict

from toolgate.build.service import DEFAULT_TIMEOUT, BuildRequest
from toolgate.build.validation import TaskClass, validate_build_requirements
from toolgate.errors import BuildError
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
    optional_int,
    optional_str,
    require_enum,
)
from toolgate.tools.context import AgentContext


logger = logging.getLogger(__name__)

TASK_CLASSES = [t.value for t in TaskClass]


def _cwd_property() -> Property:
    return Property(type="string", description="Project directory relative to the workspace root (default: workspace root)")


class BuildOperationTool(Tool):
    """Shared implementation of the build, test and lint tools."""

    operation: str = ""
    description: str = ""
    validates: bool = False

    def __init__(self, context: AgentContext):
        self.context = context

    def definition(self) -> ToolDefinition:
        properties = {
            "cwd": _cwd_property(),
            "timeout": Property(type="integer", description=f"Timeout in seconds (default: {DEFAULT_TIMEOUT})"),
        }
        if self.validates:
            properties["story_type"] = Property(
                type="string",
                description="Story type: 'app' requires build, test and lint targets; 'devops' only build",
                enum=TASK_CLASSES,
            )
        return ToolDefinition(name=self.name, description=self.description,
                              input_schema=InputSchema(properties=properties, required=[]))

    def resolve_cwd(self, args: Dict[str, Any]) -> str:
        root = self.context.host_workspace
        cwd = optional_str(args, "cwd")
        if cwd is None:
            return root
        return clean_workspace_path(cwd, root)

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        cwd = self.resolve_cwd(args)
        timeout = optional_int(args, "timeout", self.context.config.build_timeout, minimum=1)

        warning = ""
        if self.validates:
            task_class = require_enum(args, "story_type", TASK_CLASSES, default=TaskClass.APP.value, lower=True)
            validation = validate_build_requirements(cwd, task_class)
            if not validation.ok:
                logger.info(
                    f"{self.name}: validation failed for {task_class} story in {cwd}",
                    extra={"tool": self.name, "event": "validation_failed",
                           "metadata": {"missing_targets": validation.missing_targets}},
                )
                return json_result({
                    "success": False,
                    "backend": "",
                    "output": "",
                    "duration_ms": 0,
                    "error": validation.message,
                    "missing_targets": validation.missing_targets,
                })
            warning = validation.warning

        response = self.context.build_service.execute_build(
            ctx, BuildRequest(project_root=cwd, operation=self.operation, timeout=timeout)
        )
        payload = {
            "success": response.success,
            "backend": response.backend,
            "output": response.output,
            "duration_ms": response.duration_ms,
            "error": response.error,
        }
        if warning:
            payload["warning"] = warning
        return json_result(payload)


class BuildTool(BuildOperationTool):
    name = "build"
    operation = "build"
    validates = True
    description = "Build the project with its detected build system (Makefile, Go, Python or Node)."


class TestTool(BuildOperationTool):
    __test__ = False  # not a pytest test class

    name = "test"
    operation = "test"
    description = "Run the project's tests with its detected build system."


class LintTool(BuildOperationTool):
    name = "lint"
    operation = "lint"
    description = "Run the project's linters with its detected build system."


class BackendInfoTool(Tool):
    """Report which build backend handles the workspace."""

    name = "backend_info"

    def __init__(self, context: AgentContext):
        self.context = context

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description="Show which build backend was detected for the project and the operations it supports.",
            input_schema=InputSchema(properties={"cwd": _cwd_property()}, required=[]),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        cwd = optional_str(args, "cwd")
        root = self.context.host_workspace
        project_root = clean_workspace_path(cwd, root) if cwd is not None else root
        try:
            info = self.context.build_service.get_backend_info(project_root)
        except BuildError as e:
            return failure(str(e))
        return json_result({"success": True, **info.to_dict()})
