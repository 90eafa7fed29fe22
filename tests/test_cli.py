"""Tests for the mcpexec CLI."""

import json

import pytest
import yaml
from click.testing import CliRunner

from mcpexec.builtin import HandlerTable
from mcpexec.cli.main import cli
from mcpexec.executor import ToolExecutor
from mcpexec.registry import ToolRegistry
from mcpexec.schema import ProviderEntry, Scope


@pytest.fixture
def executor():
    chat = HandlerTable(Scope.CHAT)
    chat.register("echo", "say", lambda params, context: {"said": params["text"]})
    registry = ToolRegistry(
        [
            ProviderEntry(
                id="echo",
                description="Repeats what it is told",
                scope="chat",
                is_builtin=True,
                tools=[{"name": "say", "params": [{"name": "text", "type": "string", "required": True}]}],
            ),
            ProviderEntry(
                id="weather",
                scope="workspace",
                connection={"type": "http", "url": "http://weather.invalid"},
                tools=[{"name": "forecast"}],
            ),
        ]
    )
    return ToolExecutor(registry, chat_handler=chat)


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, executor, args):
    return runner.invoke(cli, args, obj={"executor": executor})


class TestProvidersCommand:
    def test_lists_all(self, runner, executor):
        result = invoke(runner, executor, ["providers"])
        assert result.exit_code == 0
        assert "echo" in result.output
        assert "weather" in result.output

    def test_scope_filter(self, runner, executor):
        result = invoke(runner, executor, ["providers", "--scope", "chat"])
        assert result.exit_code == 0
        assert "echo" in result.output
        assert "weather" not in result.output


class TestToolsCommand:
    def test_shows_schema(self, runner, executor):
        result = invoke(runner, executor, ["tools", "echo"])
        assert result.exit_code == 0
        assert "Tool: say" in result.output
        assert "text: string (required)" in result.output

    def test_unknown_provider(self, runner, executor):
        result = invoke(runner, executor, ["tools", "nope"])
        assert result.exit_code == 1


class TestCallCommand:
    def test_success(self, runner, executor):
        result = invoke(
            runner, executor, ["call", "echo", "say", "--scope", "chat", "--params", '{"text": "hi"}', "--user", "2"]
        )
        assert result.exit_code == 0
        envelope = json.loads(result.output)
        assert envelope["success"] is True
        assert envelope["result"] == {"said": "hi"}
        assert envelope["metadata"]["mcpId"] == "echo"
        assert executor.registry.usage_store.get(2, "echo") == 1

    def test_failure_exit_code(self, runner, executor):
        result = invoke(runner, executor, ["call", "echo", "say", "--scope", "workspace"])
        assert result.exit_code == 1
        envelope = json.loads(result.output)
        assert envelope["error"]["code"] == "SCOPE_MISMATCH"

    def test_bad_params_json(self, runner, executor):
        result = invoke(runner, executor, ["call", "echo", "say", "--scope", "chat", "--params", "{nope"])
        assert result.exit_code == 2


class TestBatchCommand:
    def test_batch(self, runner, executor, tmp_path):
        calls = [
            {"providerId": "echo", "tool": "say", "scope": "chat", "params": {"text": "one"}},
            {"providerId": "missing", "tool": "say", "scope": "chat"},
        ]
        path = tmp_path / "calls.yaml"
        path.write_text(yaml.dump(calls))

        result = invoke(runner, executor, ["batch", str(path)])

        assert result.exit_code == 1
        envelopes = json.loads(result.output)
        assert envelopes[0]["result"] == {"said": "one"}
        assert envelopes[1]["error"]["code"] == "MCP_NOT_FOUND"

    def test_batch_must_be_list(self, runner, executor, tmp_path):
        path = tmp_path / "calls.yaml"
        path.write_text("providerId: echo\n")
        result = invoke(runner, executor, ["batch", str(path)])
        assert result.exit_code == 2


class TestUsageCommand:
    def test_empty(self, runner, executor):
        result = invoke(runner, executor, ["usage"])
        assert "No usage recorded" in result.output

    def test_counts(self, runner, executor):
        executor.registry.record_usage(3, "echo")
        result = invoke(runner, executor, ["usage"])
        assert "echo" in result.output
