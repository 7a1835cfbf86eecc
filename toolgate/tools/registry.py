"""
Tool Registry for looking up operations by name.

Agents and the orchestrator discover tools through the registry and invoke
them by name. Two kinds of registry exist:
- Private instances, constructed freely (tests, embedded use)
- A process-wide registry from get_registry(), populated once at startup
  and read many times; reset_registry() exists only for test isolation

Mutation is serialized with a lock. Reads copy under the same lock, so
get_all()/get_definitions() return a consistent snapshot as of call time.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional

from toolgate.errors import DuplicateToolError, NilToolError, ToolNotFoundError
from toolgate.execution import ExecContext
from toolgate.tools.base import Tool, ToolDefinition, ToolResult


class ToolRegistry:
    """
    Registry mapping tool names to Tool instances.

    Usage:
        registry = ToolRegistry()
        registry.register(GetDiffTool(context))

        tool = registry.get("get_diff")
        result = registry.execute("get_diff", ctx, {"path": "src"})
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}
        self._lock = threading.RLock()

    def register(self, tool: Optional[Tool]) -> None:
        """
        Register a tool under its name.

        Raises:
            NilToolError: If tool is None
            DuplicateToolError: If a tool with the same name is registered
        """
        self.register_many([tool])

    def register_many(self, tools: Iterable[Optional[Tool]]) -> None:
        """
        Register several tools at once.

        Either all tools are registered or none are: a None entry or a
        duplicate name (against the registry or within the batch) leaves
        the registry unchanged.
        """
        tools = list(tools)
        with self._lock:
            staged: Dict[str, Tool] = {}
            for tool in tools:
                if tool is None:
                    raise NilToolError()
                name = tool.name
                if not name:
                    raise NilToolError()
                if name in self._tools or name in staged:
                    raise DuplicateToolError(name)
                staged[name] = tool
            self._tools.update(staged)

    def get(self, name: str) -> Tool:
        """
        Get a tool by name.

        Raises:
            ToolNotFoundError: If no tool is registered under name
        """
        with self._lock:
            tool = self._tools.get(name)
            if tool is None:
                raise ToolNotFoundError(name, sorted(self._tools))
            return tool

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def names(self) -> List[str]:
        """Sorted names of registered tools."""
        with self._lock:
            return sorted(self._tools)

    def get_all(self) -> List[Tool]:
        """Snapshot of registered tools, sorted by name."""
        with self._lock:
            return [self._tools[name] for name in sorted(self._tools)]

    def get_definitions(self) -> List[ToolDefinition]:
        """Snapshot of the full catalog, sorted by name."""
        return [tool.definition() for tool in self.get_all()]

    def execute(self, name: str, ctx: ExecContext, args: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Look up a tool and run it."""
        return self.get(name).execute(ctx, args or {})

    def clear(self) -> None:
        """Remove every tool. Intended for tests."""
        with self._lock:
            self._tools.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)


_global_registry: Optional[ToolRegistry] = None
_global_lock = threading.Lock()


def get_registry() -> ToolRegistry:
    """Return the process-wide registry, creating it empty on first use."""
    global _global_registry
    with _global_lock:
        if _global_registry is None:
            _global_registry = ToolRegistry()
        return _global_registry


def reset_registry() -> None:
    """Clear the process-wide registry. Only tests should call this."""
    get_registry().clear()
