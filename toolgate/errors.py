"""
Error classes for toolgate operations.

Operations distinguish four kinds of failure:
- ArgumentError: the caller broke the input contract (raised, never retried blindly)
- Execution failures: subprocess/git/docker failed (returned as success=false payloads)
- Ambiguity failures: e.g. multi-match edits (returned as success=false with guidance)
- FatalToolError: a local failure from which no signal can be derived (raised)

Only the raised kinds have classes here. Execution and ambiguity failures are
values, because the agent consuming them has to reason about the next step.
"""


class ToolgateError(Exception):
    """Base exception for toolgate."""
    pass


class ArgumentError(ToolgateError):
    """
    Malformed or missing tool input.

    Examples:
    - Required argument missing or empty
    - Argument of the wrong type
    - Value outside an enum constraint
    """
    pass


class PathEscapeError(ArgumentError):
    """A path argument normalizes to a location outside the workspace root."""

    def __init__(self, path: str, root: str):
        self.path = path
        self.root = root
        super().__init__(f"path '{path}' escapes workspace root {root}")


class ExecutionError(ToolgateError):
    """The execution primitive could not run a command at all."""
    pass


class CommandNotFoundError(ExecutionError):
    """The command's executable does not exist."""

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"command not found: {command}")


class FatalToolError(ToolgateError):
    """
    Fatal local failure inside a tool.

    Raised when a step fails in a way that leaves no sensible outcome to
    report, e.g. `git add -A` failing inside the done tool.
    """
    pass


class RegistryError(ToolgateError):
    """Base class for tool registry failures."""
    pass


class DuplicateToolError(RegistryError):
    """A tool with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"tool '{name}' is already registered")


class NilToolError(RegistryError):
    """Attempted to register None instead of a tool."""

    def __init__(self):
        super().__init__("cannot register a nil tool")


class ToolNotFoundError(RegistryError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        msg = f"tool '{name}' not found"
        if self.available:
            msg += f". Registered: {', '.join(self.available)}"
        super().__init__(msg)


class GitError(ToolgateError):
    """
    A git command ran but failed.

    Tools turn this into a structured failure; the attached result carries
    the exit code and output for the agent.
    """

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)


class InvalidRefError(GitError):
    """A caller-supplied ref does not resolve to a commit."""

    def __init__(self, ref: str, result=None):
        self.ref = ref
        super().__init__(f"invalid base ref: {ref}", result)


class BuildError(ToolgateError):
    """Build service failure that is not an ordinary failed build."""
    pass


class ConfigError(ToolgateError):
    """Configuration validation error."""
    pass
