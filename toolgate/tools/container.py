"""container_validate tool: run the capability gate against an image."""

from typing import Any, Dict, Optional

from toolgate.execution import ExecContext
from toolgate.tools.base import (
    InputSchema,
    Property,
    Tool,
    ToolDefinition,
    ToolResult,
    json_result,
    require_str,
)
from toolgate.tools.context import AgentContext
from toolgate.workspace.container import ContainerCapabilityGate


class ContainerValidateTool(Tool):
    name = "container_validate"

    def __init__(self, context: AgentContext, gate: Optional[ContainerCapabilityGate] = None):
        self.context = context
        config = context.config
        self.gate = gate or ContainerCapabilityGate(
            docker_cmd=config.docker_cmd,
            agent_uid=config.agent_uid,
            check_timeout=config.container_check_timeout,
        )

    def definition(self) -> ToolDefinition:
        uid = self.context.config.agent_uid
        return ToolDefinition(
            name=self.name,
            description=(
                "Check that a container image can run agent work: git installed, a uid "
                f"{uid} user present, and /tmp writable by uid {uid}. Failed checks come "
                "with the Dockerfile lines that fix them."
            ),
            input_schema=InputSchema(
                properties={"image": Property(type="string", description="Image reference, e.g. 'myproject-dev:latest'")},
                required=["image"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        image = require_str(args, "image").strip()
        report = self.gate.validate(ctx, image)
        payload = report.to_dict()
        payload["report"] = report.render_report()
        return json_result(payload)
