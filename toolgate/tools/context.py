"""Per-agent configuration handed to tool constructors."""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from toolgate.build.service import BuildService
from toolgate.config import ToolgateConfig
from toolgate.execution import Executor


@runtime_checkable
class TodoTracker(Protocol):
    """Agent hook reporting unfinished todo items."""

    def incomplete_todo_count(self) -> int:
        ...


@dataclass(frozen=True)
class AgentContext:
    """
    Everything a tool needs to know about the agent it serves.

    Attributes:
        config: Shared toolgate settings
        executor: Runs commands in the agent's workspace (None disables git work)
        host_root: Host path of the workspace for tools that touch files
            directly (compose, bootstrap, build); defaults to workspace_root
        story_id: Current story, used to prefix commit messages
        agent: Optional agent object; consulted for TodoTracker
        build_service: Build backend service for build tools
    """

    config: ToolgateConfig = field(default_factory=ToolgateConfig)
    executor: Optional[Executor] = None
    host_root: Optional[str] = None
    story_id: Optional[str] = None
    agent: Optional[Any] = None
    build_service: BuildService = field(default_factory=BuildService)

    @property
    def workspace_root(self) -> str:
        return self.config.workspace_root

    @property
    def host_workspace(self) -> str:
        return self.host_root or self.config.workspace_root

    def incomplete_todos(self) -> int:
        """Number of unfinished todos reported by the agent, 0 without a tracker."""
        if isinstance(self.agent, TodoTracker):
            return self.agent.incomplete_todo_count()
        return 0
