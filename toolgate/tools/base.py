"""
Tool contract shared by every toolgate operation.

A tool publishes a ToolDefinition (name, description, input schema) and
executes against an argument dict, returning a ToolResult. The result pairs
text for the agent with an optional Effect whose signal the orchestrator
acts on. The two channels are independent: content is always complete on
its own, and effect data never has to be parsed out of the content.

Argument errors raise ArgumentError. Runtime failures the agent should
reason about are returned as JSON payloads with "success": false.
"""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from toolgate.errors import ArgumentError, PathEscapeError
from toolgate.execution import ExecContext


class Signal(str, Enum):
    """
    Orchestrator signals known to this package.

    The set is open: Effect.signal accepts any string, and these members
    compare equal to their string values.
    """

    TESTING = "TESTING"
    STORY_COMPLETE = "STORY_COMPLETE"
    PLAN_REVIEW = "PLAN_REVIEW"
    QUESTION = "QUESTION"
    BUDGET_REVIEW = "BUDGET_REVIEW"
    BOOTSTRAP_COMPLETE = "BOOTSTRAP_COMPLETE"
    SPEC_PREVIEW = "SPEC_PREVIEW"
    REVIEW_COMPLETE = "review_complete"


@dataclass(frozen=True)
class Effect:
    """Machine-actionable outcome of a tool call."""

    signal: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.signal, Signal):
            object.__setattr__(self, "signal", self.signal.value)
        if not isinstance(self.signal, str) or not self.signal:
            raise ValueError("effect signal must be a non-empty string")

    def to_dict(self) -> Dict[str, Any]:
        return {"signal": self.signal, "data": dict(self.data)}


@dataclass(frozen=True)
class ToolResult:
    """Text for the agent plus an optional effect for the orchestrator."""

    content: str
    effect: Optional[Effect] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content}
        if self.effect is not None:
            data["effect"] = self.effect.to_dict()
        return data


@dataclass(frozen=True)
class Property:
    """One named parameter of a tool's input schema."""

    type: str
    description: str
    enum: Optional[Sequence[str]] = None
    items: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            data["enum"] = list(self.enum)
        if self.items is not None:
            data["items"] = dict(self.items)
        return data


@dataclass(frozen=True)
class InputSchema:
    properties: Dict[str, Property] = field(default_factory=dict)
    required: Sequence[str] = ()
    type: str = "object"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "properties": {name: prop.to_dict() for name, prop in self.properties.items()},
            "required": list(self.required),
        }


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable catalog entry for a tool."""

    name: str
    description: str
    input_schema: InputSchema = field(default_factory=InputSchema)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema.to_dict(),
        }


class Tool(ABC):
    """
    Base class for tools.

    Subclasses set `name` and implement definition() and execute(). A tool
    instance holds only configuration fixed at construction, so one instance
    can serve concurrent calls from several agents.
    """

    name: str = ""

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return the tool's catalog entry."""
        pass

    @abstractmethod
    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        """
        Run the tool.

        Args:
            ctx: Cancellation/deadline scope for any commands the tool runs
            args: Arguments as supplied by the agent

        Returns:
            ToolResult

        Raises:
            ArgumentError: If arguments are missing or malformed
            FatalToolError: If a local step fails with no reportable outcome
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


# ============================================================================
# Result helpers
# ============================================================================

def json_result(payload: Dict[str, Any], effect: Optional[Effect] = None) -> ToolResult:
    """Wrap a structured payload as result content."""
    return ToolResult(content=json.dumps(payload, indent=2, default=str), effect=effect)


def failure(message: str, **fields: Any) -> ToolResult:
    """Structured failure the agent is expected to reason about."""
    payload: Dict[str, Any] = {"success": False, "error": message}
    payload.update(fields)
    return json_result(payload)


# ============================================================================
# Argument helpers
# ============================================================================

def require_str(args: Dict[str, Any], key: str, allow_empty: bool = False) -> str:
    if key not in args or args[key] is None:
        raise ArgumentError(f"{key} is required")
    value = args[key]
    if not isinstance(value, str):
        raise ArgumentError(f"{key} must be a string")
    if not allow_empty and not value.strip():
        raise ArgumentError(f"{key} is required")
    return value


def optional_str(args: Dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = args.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ArgumentError(f"{key} must be a string")
    return value


def optional_int(args: Dict[str, Any], key: str, default: int, minimum: Optional[int] = None) -> int:
    """Integer argument. Whole-number floats are accepted since JSON has one number type."""
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ArgumentError(f"{key} must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ArgumentError(f"{key} must be a whole number")
        value = int(value)
    if minimum is not None and value < minimum:
        raise ArgumentError(f"{key} must be >= {minimum}")
    return value


def require_enum(
    args: Dict[str, Any],
    key: str,
    choices: Sequence[str],
    default: Optional[str] = None,
    upper: bool = False,
    lower: bool = False,
) -> str:
    """String argument restricted to `choices`. Optional when a default is given."""
    if default is not None:
        value = optional_str(args, key, default)
    else:
        value = require_str(args, key)
    if upper:
        value = value.upper()
    if lower:
        value = value.lower()
    if value not in choices:
        raise ArgumentError(f"{key} must be one of {', '.join(choices)}, got {value!r}")
    return value


def optional_str_list(args: Dict[str, Any], key: str) -> List[str]:
    value = args.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ArgumentError(f"{key} must be an array of strings")
    return list(value)


def optional_str_map(args: Dict[str, Any], key: str) -> Dict[str, str]:
    value = args.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ArgumentError(f"{key} must be an object")
    result = {}
    for k, v in value.items():
        if isinstance(v, bool) or not isinstance(v, (str, int, float)):
            raise ArgumentError(f"{key}.{k} must be a string")
        result[str(k)] = str(v)
    return result


# ============================================================================
# Workspace paths
# ============================================================================

def clean_workspace_path(path: str, root: str) -> str:
    """
    Resolve a tool path argument against the workspace root.

    Relative paths are joined to root; absolute paths must already lie
    inside it. Anything that normalizes to a location outside root is
    rejected before any command sees it.

    Args:
        path: Path as supplied by the agent
        root: Absolute workspace root

    Returns:
        Normalized absolute path inside root

    Raises:
        ArgumentError: If path is empty or not a string
        PathEscapeError: If path escapes root
    """
    if not isinstance(path, str) or not path.strip():
        raise ArgumentError("path must be a non-empty string")
    if "\x00" in path:
        raise ArgumentError("path must not contain NUL bytes")

    root = os.path.normpath(root)
    cleaned = os.path.normpath(path)

    if os.path.isabs(cleaned):
        prefix = root if root.endswith("/") else root + "/"
        if cleaned != root and not cleaned.startswith(prefix):
            raise PathEscapeError(path, root)
        return cleaned

    if cleaned == ".." or cleaned.startswith("../"):
        raise PathEscapeError(path, root)
    return os.path.normpath(os.path.join(root, cleaned))


def relative_to_root(path: str, root: str) -> str:
    """Display form of a path inside root ("." for the root itself)."""
    return os.path.relpath(path, os.path.normpath(root))
