"""Tests for the compose file tools."""

import json

import pytest
import yaml

from toolgate.errors import ArgumentError
from toolgate.execution import ExecContext
from toolgate.tools.compose import (
    ComposeAddServiceTool,
    ComposeFileError,
    ComposeReadTool,
    ComposeValidateTool,
    ComposeWriteTool,
    compose_problems,
    parse_compose,
)
from toolgate.tools.context import AgentContext


@pytest.fixture
def context(config):
    return AgentContext(config=config)


@pytest.fixture
def compose_file(workspace_root):
    return workspace_root / ".toolgate" / "compose.yml"


@pytest.fixture
def ctx():
    return ExecContext.background()


def _run(tool, ctx, args=None):
    return json.loads(tool.execute(ctx, args or {}).content)


class TestParsing:
    def test_empty_document(self):
        assert parse_compose("") == {"services": {}}

    def test_null_services(self):
        assert parse_compose("services:\n") == {"services": {}}

    @pytest.mark.parametrize("text", ["- a\n", "services: [a, b]\n", "services: {a: [unclosed\n"])
    def test_invalid(self, text):
        with pytest.raises(ComposeFileError):
            parse_compose(text)

    def test_problems(self):
        data = {"services": {
            "api": {"image": "api:1", "depends_on": ["db", "cache"]},
            "db": {"build": "."},
            "worker": {"environment": {}},
            "broken": "nginx",
        }}
        assert compose_problems(data) == [
            "service 'api' depends on unknown service 'cache'",
            "service 'worker' needs an 'image' or a 'build' section",
            "service 'broken' must be a mapping",
        ]


class TestComposeTools:
    def test_read_missing(self, context, ctx):
        payload = _run(ComposeReadTool(context), ctx)
        assert payload["success"] is False
        assert payload["error"].startswith("No compose.yml found at")

    def test_write_then_read(self, context, compose_file, ctx):
        content = "services:\n  db:\n    image: postgres:16\n"
        assert _run(ComposeWriteTool(context), ctx, {"content": content})["success"] is True
        assert compose_file.read_text() == content

        payload = _run(ComposeReadTool(context), ctx)
        assert payload["content"] == content

    def test_write_rejects_invalid_yaml(self, context, compose_file, ctx):
        payload = _run(ComposeWriteTool(context), ctx, {"content": "services: [oops"})
        assert payload["success"] is False
        assert not compose_file.exists()

    def test_add_service_creates_file(self, context, compose_file, ctx):
        payload = _run(ComposeAddServiceTool(context), ctx, {
            "name": "db",
            "image": "postgres:16",
            "ports": ["5432:5432"],
            "environment": {"POSTGRES_PASSWORD": "dev", "PGPORT": 5432},
        })

        assert payload["message"] == "Added service 'db' with image 'postgres:16'"
        data = yaml.safe_load(compose_file.read_text())
        assert data["services"]["db"] == {
            "image": "postgres:16",
            "ports": ["5432:5432"],
            "environment": {"POSTGRES_PASSWORD": "dev", "PGPORT": "5432"},
        }

    def test_add_service_replaces(self, context, compose_file, ctx):
        tool = ComposeAddServiceTool(context)
        _run(tool, ctx, {"name": "cache", "image": "redis:6"})
        payload = _run(tool, ctx, {"name": "cache", "image": "redis:7-alpine"})

        assert payload["message"] == "Replaced service 'cache' with image 'redis:7-alpine'"
        assert yaml.safe_load(compose_file.read_text())["services"]["cache"] == {"image": "redis:7-alpine"}

    def test_add_service_keeps_other_keys(self, context, compose_file, ctx):
        compose_file.parent.mkdir(parents=True)
        compose_file.write_text("volumes:\n  data: {}\nservices:\n  db:\n    image: postgres:16\n")

        _run(ComposeAddServiceTool(context), ctx, {"name": "api", "image": "api:1", "depends_on": ["db"]})

        data = yaml.safe_load(compose_file.read_text())
        assert data["volumes"] == {"data": {}}
        assert set(data["services"]) == {"db", "api"}

    def test_add_service_bad_ports(self, context, ctx):
        with pytest.raises(ArgumentError):
            ComposeAddServiceTool(context).execute(ctx, {"name": "x", "image": "y", "ports": [8080]})

    def test_validate(self, context, compose_file, ctx):
        compose_file.parent.mkdir(parents=True)
        compose_file.write_text("services:\n  api:\n    image: api:1\n    depends_on: [db]\n")

        payload = _run(ComposeValidateTool(context), ctx)

        assert payload["valid"] is False
        assert payload["services"] == ["api"]
        assert payload["problems"] == ["service 'api' depends on unknown service 'db'"]

    def test_validate_ok(self, context, ctx):
        _run(ComposeAddServiceTool(context), ctx, {"name": "db", "image": "postgres:16"})
        payload = _run(ComposeValidateTool(context), ctx)
        assert payload["valid"] is True
        assert payload["success"] is True

    def test_validate_broken_yaml(self, context, compose_file, ctx):
        compose_file.parent.mkdir(parents=True)
        compose_file.write_text("services: {db: [\n")
        payload = _run(ComposeValidateTool(context), ctx)
        assert payload["success"] is False
        assert payload["valid"] is False
