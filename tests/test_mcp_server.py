"""Tests for the MCP adapter."""

import json

import pytest

from toolgate.errors import FatalToolError
from toolgate.mcp_server import call_registry_tool, create_server, to_mcp_tool
from toolgate.tools import AgentContext, ToolRegistry, register_default_tools
from toolgate.tools.base import Tool, ToolDefinition


class ExplodingTool(Tool):
    name = "explode"

    def definition(self):
        return ToolDefinition(name=self.name, description="always fails")

    def execute(self, ctx, args):
        raise FatalToolError("disk on fire")


@pytest.fixture
def registry(config):
    registry = register_default_tools(AgentContext(config=config), ToolRegistry())
    registry.register(ExplodingTool())
    return registry


def test_to_mcp_tool(registry):
    tool = to_mcp_tool(registry.get("read_file").definition())
    assert tool.name == "read_file"
    assert tool.inputSchema["type"] == "object"
    assert tool.inputSchema["required"] == ["path"]


def test_call_returns_envelope(registry):
    result = call_registry_tool(registry, "spec_submit", {"markdown": "# S", "summary": "short"})
    assert result["effect"]["signal"] == "SPEC_PREVIEW"
    json.dumps(result)


def test_call_argument_error(registry):
    result = call_registry_tool(registry, "spec_submit", {})
    assert result["error_type"] == "ArgumentError"
    assert result["tool"] == "spec_submit"


def test_call_fatal_error(registry):
    result = call_registry_tool(registry, "explode", {})
    assert result == {"error": "disk on fire", "error_type": "FatalToolError", "tool": "explode"}


def test_call_unknown_tool(registry):
    result = call_registry_tool(registry, "nope", {})
    assert result["error_type"] == "ToolNotFoundError"


def test_create_server(registry):
    server = create_server(registry)
    assert server.name == "toolgate"
