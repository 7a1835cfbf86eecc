"""
MCP server exposing the tool catalog over stdio.

list_tools publishes every registered ToolDefinition as an MCP Tool.
call_tool runs the tool in a worker thread and returns the result envelope
({"content": ..., "effect": ...}) as JSON text.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List

from mcp import types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from toolgate import __version__
from toolgate.errors import ArgumentError, FatalToolError, ToolNotFoundError
from toolgate.execution import ExecContext
from toolgate.tools.base import ToolDefinition
from toolgate.tools.registry import ToolRegistry


logger = logging.getLogger(__name__)

SERVER_NAME = "toolgate"


def to_mcp_tool(definition: ToolDefinition) -> types.Tool:
    return types.Tool(
        name=definition.name,
        description=definition.description,
        inputSchema=definition.input_schema.to_dict(),
    )


def call_registry_tool(registry: ToolRegistry, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run a tool and return the JSON-ready envelope.

    Argument, fatal and lookup errors become {"error", "tool"} payloads so
    the calling model sees them as text.
    """
    try:
        return registry.execute(name, ExecContext.background(), arguments).to_dict()
    except (ArgumentError, FatalToolError, ToolNotFoundError) as e:
        logger.error(f"Error executing tool {name}: {e}")
        return {"error": str(e), "error_type": type(e).__name__, "tool": name}


def create_server(registry: ToolRegistry) -> Server:
    """Create an MCP server backed by registry."""
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> List[types.Tool]:
        """List all registered tools."""
        return [to_mcp_tool(d) for d in registry.get_definitions()]

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict) -> List[types.TextContent]:
        """Run a tool without blocking the event loop."""
        result = await asyncio.to_thread(call_registry_tool, registry, name, arguments or {})
        return [types.TextContent(type="text", text=json.dumps(result, indent=2))]

    return server


async def serve_stdio(registry: ToolRegistry) -> None:
    from mcp.server.stdio import stdio_server

    server = create_server(registry)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name=SERVER_NAME,
                server_version=__version__,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )


def run_stdio(registry: ToolRegistry) -> None:
    """Serve registry over stdio until the client disconnects."""
    asyncio.run(serve_stdio(registry))
