"""
Tools agents use to act on workspaces and containers.

register_default_tools() builds the full catalog for one agent context and
registers it (all or nothing) in a registry, by default the process-wide
one from get_registry().
"""

from typing import List, Optional

from toolgate.tools.base import (
    Effect,
    InputSchema,
    Property,
    Signal,
    Tool,
    ToolDefinition,
    ToolResult,
    clean_workspace_path,
)
from toolgate.tools.build import BackendInfoTool, BuildTool, LintTool, TestTool
from toolgate.tools.compose import (
    ComposeAddServiceTool,
    ComposeReadTool,
    ComposeValidateTool,
    ComposeWriteTool,
)
from toolgate.tools.container import ContainerValidateTool
from toolgate.tools.context import AgentContext
from toolgate.tools.diff import GetDiffTool
from toolgate.tools.done import DoneTool
from toolgate.tools.files import FileEditTool, ListFilesTool, ReadFileTool
from toolgate.tools.lifecycle import (
    BootstrapTool,
    MarkStoryCompleteTool,
    ReviewCompleteTool,
    SpecSubmitTool,
)
from toolgate.tools.registry import ToolRegistry, get_registry, reset_registry


__all__ = [
    "AgentContext",
    "Effect",
    "InputSchema",
    "Property",
    "Signal",
    "Tool",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "clean_workspace_path",
    "create_default_tools",
    "get_registry",
    "register_default_tools",
    "reset_registry",
]


def create_default_tools(context: AgentContext) -> List[Tool]:
    """Instantiate every tool for one agent context."""
    return [
        ReadFileTool(context),
        FileEditTool(context),
        ListFilesTool(context),
        GetDiffTool(context),
        DoneTool(context),
        BuildTool(context),
        TestTool(context),
        LintTool(context),
        BackendInfoTool(context),
        MarkStoryCompleteTool(),
        ReviewCompleteTool(),
        SpecSubmitTool(),
        BootstrapTool(context),
        ComposeReadTool(context),
        ComposeWriteTool(context),
        ComposeValidateTool(context),
        ComposeAddServiceTool(context),
        ContainerValidateTool(context),
    ]


def register_default_tools(context: AgentContext, registry: Optional[ToolRegistry] = None) -> ToolRegistry:
    """
    Register the default catalog.

    Args:
        context: Agent context the tools are bound to
        registry: Target registry (default: the process-wide registry)

    Returns:
        The registry the tools were added to

    Raises:
        DuplicateToolError: If any default tool is already registered
    """
    if registry is None:
        registry = get_registry()
    registry.register_many(create_default_tools(context))
    return registry
