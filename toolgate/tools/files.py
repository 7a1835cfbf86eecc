"""
Workspace file tools: read_file, file_edit and list_files.

They run through the agent's executor (usually `docker exec` into the
agent container), pass paths as argv elements, and never build shell text
from agent input. Every path argument goes through clean_workspace_path()
before any command runs.
"""

import fnmatch
import logging
from typing import Any, Dict, List, Optional

from toolgate.errors import ArgumentError, ExecutionError
from toolgate.execution import ExecContext, ExecResult, RunOptions
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
    relative_to_root,
    require_str,
)
from toolgate.tools.context import AgentContext


logger = logging.getLogger(__name__)

# Writes stdin to the file named by $1; the path is an argv element, never shell text
WRITE_SCRIPT = 'cat > "$1"'

NO_EXECUTOR = "no executor configured - cannot access the workspace"


class WorkspaceFileTool(Tool):
    """Base for tools that run commands in the agent workspace."""

    def __init__(self, context: AgentContext):
        self.context = context

    @property
    def root(self) -> str:
        return self.context.workspace_root

    def run(self, ctx: ExecContext, argv: List[str], stdin: Optional[bytes] = None) -> ExecResult:
        return self.context.executor.run(
            ctx, argv, RunOptions(timeout=self.context.config.git_timeout, input=stdin)
        )


class ReadFileTool(WorkspaceFileTool):
    """Read a file with cat -n style line numbers, a window at a time."""

    name = "read_file"

    def definition(self) -> ToolDefinition:
        config = self.context.config
        return ToolDefinition(
            name=self.name,
            description=(
                "Read a file from the workspace. Output is line-numbered. Use offset and limit "
                f"to page through long files (at most {config.max_read_lines} lines per call)."
            ),
            input_schema=InputSchema(
                properties={
                    "path": Property(type="string", description="File path relative to the workspace root"),
                    "offset": Property(type="integer", description="First line to return, 1-based (default: 1)"),
                    "limit": Property(
                        type="integer",
                        description=f"Maximum number of lines to return (default: {config.max_read_lines})",
                    ),
                },
                required=["path"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        config = self.context.config
        path = require_str(args, "path")
        full_path = clean_workspace_path(path, self.root)
        offset = optional_int(args, "offset", 1, minimum=1)
        limit = optional_int(args, "limit", config.max_read_lines, minimum=1)
        limit = min(limit, config.max_read_lines)

        if self.context.executor is None:
            return failure(NO_EXECUTOR, path=path)

        # One byte past the limit tells "exactly at the limit" from "too large"
        try:
            result = self.run(ctx, ["head", "-c", str(config.max_read_bytes + 1), "--", full_path])
        except ExecutionError as e:
            return failure(f"cannot read {path}: {e}", path=path)
        if not result.ok:
            return failure(
                f"cannot read {path} ({result.describe_failure()}): {result.stderr.strip()}",
                path=path,
                exit_code=result.exit_code,
            )

        raw_size = len(result.stdout.encode("utf-8", errors="surrogateescape"))
        if raw_size > config.max_read_bytes:
            return failure(
                f"{path} is larger than {config.max_read_bytes} bytes; read it with a narrower tool "
                "(e.g. search for the section you need)",
                path=path,
            )

        lines = result.stdout.split("\n")
        if lines[-1] == "":
            lines.pop()
        total_lines = len(lines)
        if total_lines and offset > total_lines:
            return failure(f"offset {offset} is past the end of {path} ({total_lines} lines)", path=path)

        window = lines[offset - 1: offset - 1 + limit]
        truncated = offset - 1 + len(window) < total_lines
        numbered = []
        for number, line in enumerate(window, start=offset):
            if len(line) > config.max_line_length:
                line = line[:config.max_line_length] + " ... [line truncated]"
                truncated = True
            numbered.append(f"{number:6d}\t{line}")

        return json_result({
            "success": True,
            "content": "\n".join(numbered),
            "path": path,
            "truncated": truncated,
            "offset": offset,
            "limit": limit,
            "total_lines": total_lines,
        })


class FileEditTool(WorkspaceFileTool):
    """
    Replace exactly one occurrence of a string in a file.

    Zero matches or more than one match fail without touching the file.
    New content reaches the file as bytes on stdin, so quotes, newlines and
    non-UTF-8 bytes elsewhere in the file survive unchanged.
    """

    name = "file_edit"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "Replace exactly one occurrence of old_string with new_string in a file. "
                "old_string must match exactly once; include surrounding lines to make it unique."
            ),
            input_schema=InputSchema(
                properties={
                    "path": Property(type="string", description="File path relative to the workspace root"),
                    "old_string": Property(type="string", description="Exact text to replace (must be unique in the file)"),
                    "new_string": Property(type="string", description="Replacement text (may be empty to delete)"),
                },
                required=["path", "old_string", "new_string"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        path = require_str(args, "path")
        full_path = clean_workspace_path(path, self.root)
        old_string = require_str(args, "old_string", allow_empty=True)
        if old_string == "":
            raise ArgumentError("old_string must not be empty")
        new_string = require_str(args, "new_string", allow_empty=True)

        if self.context.executor is None:
            return failure(NO_EXECUTOR, path=path)

        try:
            read = self.run(ctx, ["cat", "--", full_path])
        except ExecutionError as e:
            return failure(f"cannot read {path}: {e}", path=path)
        if not read.ok:
            return failure(
                f"cannot read {path} ({read.describe_failure()}): {read.stderr.strip()}",
                path=path,
                exit_code=read.exit_code,
            )

        content = read.stdout
        matches = content.count(old_string)
        if matches == 0:
            return failure(
                f"old_string not found in {path}",
                path=path,
                matches=0,
                hint="Read the file again and copy the exact text, including whitespace.",
            )
        if matches > 1:
            return failure(
                f"old_string matches {matches} locations in {path} - must match exactly once. "
                "Include more surrounding context to make it unique.",
                path=path,
                matches=matches,
            )

        updated = content.replace(old_string, new_string, 1)
        data = updated.encode("utf-8", errors="surrogateescape")
        try:
            write = self.run(ctx, ["sh", "-c", WRITE_SCRIPT, "toolgate-write", full_path], stdin=data)
        except ExecutionError as e:
            return failure(f"cannot write {path}: {e}", path=path)
        if not write.ok:
            return failure(
                f"cannot write {path} ({write.describe_failure()}): {write.stderr.strip()}",
                path=path,
                exit_code=write.exit_code,
            )

        logger.info(f"file_edit: edited {path}", extra={"tool": self.name, "event": "edit"})
        return json_result({"success": True, "path": path, "message": "Edit applied successfully"})


def _matches(rel_path: str, pattern: str) -> bool:
    if "/" not in pattern:
        return fnmatch.fnmatch(rel_path.rsplit("/", 1)[-1], pattern)
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    # "**/" also matches zero directories
    collapsed = pattern.replace("/**/", "/")
    if collapsed.startswith("**/"):
        collapsed = collapsed[3:]
    return collapsed != pattern and fnmatch.fnmatch(rel_path, collapsed)


class ListFilesTool(WorkspaceFileTool):
    """List workspace files matching a glob pattern."""

    name = "list_files"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "List files in the workspace matching a glob pattern, e.g. '*.go' (by file name) "
                f"or 'src/**/*.py' (by path). At most {self.context.config.max_list_files} files are returned."
            ),
            input_schema=InputSchema(
                properties={
                    "pattern": Property(type="string", description="Glob pattern, e.g. '*.py' or 'pkg/**/*.go'"),
                    "path": Property(type="string", description="Directory to search, relative to the workspace root (default: root)"),
                },
                required=["pattern"],
            ),
        )

    def execute(self, ctx: ExecContext, args: Dict[str, Any]) -> ToolResult:
        pattern = require_str(args, "pattern").strip()
        subdir = optional_str(args, "path")
        search_dir = clean_workspace_path(subdir, self.root) if subdir is not None else self.root

        if self.context.executor is None:
            return failure(NO_EXECUTOR)

        argv = ["find", search_dir, "-type", "f", "-not", "-path", "*/.git/*"]
        try:
            result = self.run(ctx, argv)
        except ExecutionError as e:
            return failure(f"cannot list files: {e}")
        if not result.ok:
            return failure(
                f"cannot list files ({result.describe_failure()}): {result.stderr.strip()}",
                exit_code=result.exit_code,
            )

        files = []
        for line in result.stdout.splitlines():
            if not line:
                continue
            rel = relative_to_root(line, self.root)
            if _matches(rel, pattern):
                files.append(rel)
        files.sort()

        max_files = self.context.config.max_list_files
        truncated = len(files) > max_files
        return json_result({
            "success": True,
            "files": files[:max_files],
            "count": len(files),
            "truncated": truncated,
        })
