"""
CLI interface for toolgate.

Provides commands to inspect the tool catalog, run a single tool against a
workspace, check container images and serve the catalog over MCP.
"""

import json
import logging
import sys
import time
from pathlib import Path

import click
from rich.table import Table

from toolgate import __version__


logger = logging.getLogger(__name__)


def _config(ctx):
    """Loaded config, or exit with the load error."""
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Fix the file or run 'toolgate init --force' to recreate it.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _agent_context(ctx, container: str = None, story_id: str = None, host_root: str = None):
    from toolgate.execution import ContainerExecutor, LocalExecutor
    from toolgate.tools import AgentContext

    config = _config(ctx)
    if container:
        executor = ContainerExecutor(container, docker_cmd=config.docker_cmd)
    else:
        executor = LocalExecutor()
    return AgentContext(config=config, executor=executor, host_root=host_root, story_id=story_id)


def _registry(agent_context):
    from toolgate.tools import ToolRegistry, register_default_tools

    return register_default_tools(agent_context, ToolRegistry())


@click.group()
@click.version_option(version=__version__, prog_name="toolgate")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.option("--workspace", default=None, help="Override the configured workspace root")
@click.pass_context
def main(ctx, log_level: str, workspace: str):
    """
    toolgate - action-execution layer for coding agents.

    Inspect and run the tools agents use on workspaces and containers.
    """
    from dataclasses import replace

    from toolgate.config import load_config
    from toolgate.errors import ConfigError
    from toolgate.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
        if workspace:
            config = replace(config, workspace_root=str(Path(workspace).resolve()))
        if log_level:
            config = replace(config, log_level=log_level.upper())
        ctx.obj["config"] = config
    except ConfigError as e:
        # init must still work with a broken file; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)
        return

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=Path(config.log_file).expanduser() if config.log_file else None,
    )


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize toolgate configuration."""
    from toolgate.config import ToolgateConfig, get_config_path, save_config
    from toolgate.utils import print_success

    cfg_path = get_config_path()
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    save_config(ToolgateConfig(), cfg_path)
    print_success(f"Initialized toolgate config at {cfg_path}")


@main.group("tools")
def tools_group():
    """Inspect the tool catalog."""
    pass


@tools_group.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print definitions as JSON")
@click.pass_context
def list_tools(ctx, as_json: bool):
    """List available tools."""
    from toolgate.utils import console

    registry = _registry(_agent_context(ctx))
    definitions = registry.get_definitions()

    if as_json:
        click.echo(json.dumps([d.to_dict() for d in definitions], indent=2))
        return

    table = Table(title=f"Tools ({len(definitions)})")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Required")
    table.add_column("Description")
    for definition in definitions:
        table.add_row(
            definition.name,
            ", ".join(definition.input_schema.required) or "-",
            definition.description,
        )
    console.print(table)


@tools_group.command("show")
@click.argument("name")
@click.pass_context
def show_tool(ctx, name: str):
    """Show a tool's definition as JSON."""
    from toolgate.errors import ToolNotFoundError

    registry = _registry(_agent_context(ctx))
    try:
        tool = registry.get(name)
    except ToolNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(tool.definition().to_dict(), indent=2))


@main.command("run")
@click.argument("name")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object")
@click.option("--container", default=None, help="Run commands inside this container (docker exec)")
@click.option("--story-id", default=None, help="Story id used to prefix commit messages")
@click.option("--host-root", default=None, help="Host path of the workspace, if it differs from the workspace root")
@click.pass_context
def run_tool(ctx, name: str, args_json: str, container: str, story_id: str, host_root: str):
    """Run a single tool and print its result envelope."""
    from toolgate.errors import ArgumentError, FatalToolError, ToolNotFoundError
    from toolgate.execution import ExecContext
    from toolgate.utils import format_duration

    try:
        args = json.loads(args_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="--args")
    if not isinstance(args, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    registry = _registry(_agent_context(ctx, container, story_id, host_root))
    start = time.monotonic()
    try:
        result = registry.execute(name, ExecContext.background(), args)
    except ToolNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)
    except ArgumentError as e:
        click.echo(f"✗ Invalid arguments for {name}: {e}", err=True)
        raise SystemExit(1)
    except FatalToolError as e:
        click.echo(f"✗ {name} failed: {e}", err=True)
        raise SystemExit(1)

    logger.info(f"{name} finished in {format_duration(time.monotonic() - start)}")
    click.echo(json.dumps(result.to_dict(), indent=2))


@main.command("backend-info")
@click.argument("path", required=False, type=click.Path(file_okay=False))
@click.pass_context
def backend_info(ctx, path: str):
    """Show the build backend detected for PATH (default: current directory)."""
    from toolgate.build import BuildService
    from toolgate.errors import BuildError

    _config(ctx)
    project_root = str(Path(path or ".").resolve())
    try:
        info = BuildService().get_backend_info(project_root)
    except BuildError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Backend:    {info.name}")
    click.echo(f"Project:    {info.project_root}")
    click.echo(f"Operations: {', '.join(info.operations)}")


@main.command("validate-container")
@click.argument("image")
@click.pass_context
def validate_container(ctx, image: str):
    """Check that IMAGE can run agent work."""
    from toolgate.errors import ArgumentError
    from toolgate.execution import ExecContext
    from toolgate.workspace.container import ContainerCapabilityGate

    config = _config(ctx)
    gate = ContainerCapabilityGate(
        docker_cmd=config.docker_cmd,
        agent_uid=config.agent_uid,
        check_timeout=config.container_check_timeout,
    )
    try:
        report = gate.validate(ExecContext.background(), image)
    except ArgumentError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(report.render_report())
    if not report.success:
        raise SystemExit(1)


@main.command("serve")
@click.option("--container", default=None, help="Run commands inside this container (docker exec)")
@click.option("--story-id", default=None, help="Story id used to prefix commit messages")
@click.pass_context
def serve(ctx, container: str, story_id: str):
    """Serve the tool catalog over MCP (stdio)."""
    from toolgate.mcp_server import run_stdio
    from toolgate.tools import register_default_tools

    registry = register_default_tools(_agent_context(ctx, container, story_id))
    click.echo(f"Serving {len(registry)} tools over stdio", err=True)
    run_stdio(registry)


if __name__ == "__main__":
    sys.exit(main())
