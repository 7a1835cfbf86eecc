"""
Docker Compose file tools.

They edit <workspace>/.toolgate/compose.yml on the host, the stack the
orchestrator starts next to the agent container. Parsing and writing use
PyYAML; a broken file is reported back to the agent rather than raised.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from toolgate.execution import ExecContext
from toolgate.tools.base import (
    InputSchema,
    Property,
    Tool,
    ToolDefinition,
    ToolResult,
    failure,
    json_result,
    optional_str_list,
    optional_str_map,
    require_str,
)
from toolgate.tools.context import AgentContext
from toolgate.tools.lifecycle import STATE_DIR


logger = logging.getLogger(__name__)

COMPOSE_FILE = "compose.yml"


class ComposeFileError(Exception):
    """compose.yml cannot be read, parsed or written."""
    pass


def compose_path(workspace: str) -> Path:
    return Path(workspace) / STATE_DIR / COMPOSE_FILE


def parse_compose(text: str) -> Dict[str, Any]:
    """
    Parse compose YAML into a dict with a `services` mapping.

    Raises:
        ComposeFileError: If the YAML is invalid or not shaped like a compose file
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ComposeFileError(f"invalid YAML: {e}")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ComposeFileError("compose file must be a mapping")
    services = data.setdefault("services", {})
    if services is None:
        data["services"] = {}
    elif not isinstance(services, dict):
        raise ComposeFileError("'services' must be a mapping of service name to definition")
    return data


def compose_problems(data: Dict[str, Any]) -> List[str]:
    """Semantic problems in a parsed compose document."""
    problems = []
    services = data.get("services") or {}
    for name, service in services.items():
        if not isinstance(service, dict):
            problems.append(f"service '{name}' must be a mapping")
            continue
        if "image" not in service and "build" not in service:
            problems.append(f"service '{name}' needs an 'image' or a 'build' section")
        depends_on = service.get("depends_on") or []
        if isinstance(depends_on, dict):
            depends_on = list(depends_on)
        for dependency in depends_on:
            if dependency not in services:
                problems.append(f"service '{name}' depends on unknown service '{dependency}'")
    return problems


class ComposeTool(Tool):
    """Base for tools working on the workspace compose file."""

    def __init__(self, context: AgentContext):
        self.context = context

    @property
    def path(self) -> Path:
        return compose_path(self.context.host_workspace)

    def load(self) -> Optional[Dict[str, Any]]:
        """Parsed compose file, or None when it does not exist."""
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text()
        except OSError as e:
            raise ComposeFileError(f"error reading compose file: {e}")
        return parse_compose(text)

    def save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ComposeFileError(f"error writing compose file: {e}")

    def missing_file(self) -> ToolResult:
        return failure(f"No compose.yml found at {self.path}. Create it with compose_write or compose_add_service.")


class ComposeReadTool(ComposeTool):
    name = "compose_read"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=f"Read the Docker Compose file ({STATE_DIR}/{COMPOSE_FILE}).",
            input_schema=InputSchema(),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        if not self.path.exists():
            return self.missing_file()
        try:
            content = self.path.read_text()
        except OSError as e:
            return failure(f"error reading compose file: {e}")
        return json_result({"success": True, "path": str(self.path), "content": content})


class ComposeWriteTool(ComposeTool):
    name = "compose_write"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=f"Replace the Docker Compose file ({STATE_DIR}/{COMPOSE_FILE}) with new content.",
            input_schema=InputSchema(
                properties={"content": Property(type="string", description="Complete compose.yml content")},
                required=["content"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        content = require_str(args, "content")
        try:
            parse_compose(content)
        except ComposeFileError as e:
            return failure(f"content rejected: {e}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(content)
        except OSError as e:
            return failure(f"error writing compose file: {e}")
        logger.info(f"compose_write: wrote {self.path}", extra={"tool": self.name})
        return json_result({"success": True, "path": str(self.path), "message": "Compose file written"})


class ComposeValidateTool(ComposeTool):
    name = "compose_validate"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description="Check the Docker Compose file for syntax errors and broken service references.",
            input_schema=InputSchema(),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        try:
            data = self.load()
        except ComposeFileError as e:
            return failure(str(e), valid=False)
        if data is None:
            return self.missing_file()

        problems = compose_problems(data)
        return json_result({
            "success": not problems,
            "valid": not problems,
            "services": sorted(data["services"]),
            "problems": problems,
        })


class ComposeAddServiceTool(ComposeTool):
    name = "compose_add_service"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "Add a service to the Docker Compose file, creating the file if needed. "
                "An existing service with the same name is replaced."
            ),
            input_schema=InputSchema(
                properties={
                    "name": Property(type="string", description="Service name (e.g. 'db', 'redis', 'api')"),
                    "image": Property(type="string", description="Docker image (e.g. 'postgres:16', 'redis:7-alpine')"),
                    "ports": Property(type="array", description="Port mappings (e.g. ['5432:5432'])", items={"type": "string"}),
                    "environment": Property(type="object", description="Environment variables as key-value pairs"),
                    "volumes": Property(type="array", description="Volume mounts (e.g. ['./data:/var/lib/postgresql/data'])", items={"type": "string"}),
                    "depends_on": Property(type="array", description="Services this service depends on", items={"type": "string"}),
                },
                required=["name", "image"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        name = require_str(args, "name").strip()
        image = require_str(args, "image").strip()

        service: Dict[str, Any] = {"image": image}
        for key in ("ports", "volumes", "depends_on"):
            values = optional_str_list(args, key)
            if values:
                service[key] = values
        environment = optional_str_map(args, "environment")
        if environment:
            service["environment"] = environment

        try:
            data = self.load() or {"services": {}}
            replaced = name in data["services"]
            data["services"][name] = service
            self.save(data)
        except ComposeFileError as e:
            return failure(str(e))

        verb = "Replaced" if replaced else "Added"
        logger.info(f"compose_add_service: {verb.lower()} {name}", extra={"tool": self.name})
        return json_result({
            "success": True,
            "path": str(self.path),
            "message": f"{verb} service '{name}' with image '{image}'",
        })
