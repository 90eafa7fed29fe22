"""Tests for the data models."""

import pytest
from pydantic import ValidationError

from mcpexec.schema import (
    BuiltinConnection,
    CallMetadata,
    CallRequest,
    CallResponse,
    ErrorCode,
    HttpConnection,
    ProviderEntry,
    Scope,
    StdioConnection,
    WebSocketConnection,
)


class TestProviderEntry:
    def test_connection_union_dispatches_on_type(self):
        stdio = ProviderEntry(id="a", scope="chat", connection={"type": "stdio", "command": "node"})
        http = ProviderEntry(id="b", scope="chat", connection={"type": "http", "url": "http://x"})
        ws = ProviderEntry(id="c", scope="chat", connection={"type": "websocket", "url": "ws://x"})

        assert isinstance(stdio.connection, StdioConnection)
        assert isinstance(http.connection, HttpConnection)
        assert isinstance(ws.connection, WebSocketConnection)

    def test_default_timeout(self):
        entry = ProviderEntry(id="a", scope="chat", connection={"type": "stdio", "command": "node"})
        assert entry.connection.timeout_ms == 30000

    def test_duplicate_tool_names_rejected(self):
        with pytest.raises(ValidationError, match="declares tool .search. twice"):
            ProviderEntry(
                id="web",
                scope="chat",
                is_builtin=True,
                tools=[{"name": "search"}, {"name": "fetch"}, {"name": "search"}],
            )

    def test_timeout_alias(self):
        conn = HttpConnection.model_validate({"url": "http://x", "timeoutMs": 500})
        assert conn.timeout_ms == 500

    def test_unknown_connection_type_rejected(self):
        with pytest.raises(ValidationError):
            ProviderEntry(id="a", scope="chat", connection={"type": "carrier-pigeon"})

    def test_builtin_gets_builtin_connection(self):
        entry = ProviderEntry(id="calc", scope="both", is_builtin=True)
        assert isinstance(entry.connection, BuiltinConnection)
        assert entry.connection.handler == "calc"
        assert entry.name == "calc"

    def test_external_requires_connection(self):
        with pytest.raises(ValidationError):
            ProviderEntry(id="x", scope="chat")

    @pytest.mark.parametrize(
        "provider_scope, request_scope, accepted",
        [
            ("workspace", Scope.WORKSPACE, True),
            ("workspace", Scope.CHAT, False),
            ("chat", Scope.WORKSPACE, False),
            ("both", Scope.WORKSPACE, True),
            ("both", Scope.CHAT, True),
        ],
    )
    def test_accepts_scope(self, provider_scope, request_scope, accepted):
        entry = ProviderEntry(id="p", scope=provider_scope, is_builtin=True)
        assert entry.accepts_scope(request_scope) is accepted

    def test_tools_accept_parameters_key(self):
        entry = ProviderEntry(
            id="p",
            scope="chat",
            is_builtin=True,
            tools=[{"name": "search", "parameters": [{"name": "query", "type": "string", "required": True}]}],
        )
        assert entry.get_tool("search").params[0].name == "query"
        assert entry.get_tool("missing") is None


class TestCallRequest:
    def test_wire_aliases(self):
        request = CallRequest.model_validate(
            {
                "providerId": "calc",
                "tool": "evaluate",
                "scope": "chat",
                "params": {"expression": "1+1"},
                "context": {"userId": 7, "workspaceId": "ws-1"},
            }
        )
        assert request.provider_id == "calc"
        assert request.user_id == 7
        assert request.context.workspace_id == "ws-1"

    def test_mcp_id_alias(self):
        request = CallRequest.model_validate({"mcpId": "calc", "tool": "t", "scope": "workspace"})
        assert request.provider_id == "calc"
        assert request.user_id is None

    def test_invalid_scope(self):
        with pytest.raises(ValidationError):
            CallRequest(provider_id="x", tool="t", scope="galaxy")

    def test_both_is_not_a_call_scope(self):
        with pytest.raises(ValidationError, match="workspace or the chat"):
            CallRequest(provider_id="x", tool="t", scope="both")


class TestCallResponse:
    @pytest.fixture
    def metadata(self):
        return CallMetadata(duration_ms=12, provider_id="calc", tool="evaluate", scope=Scope.CHAT)

    def test_success_envelope(self, metadata):
        envelope = CallResponse.ok({"value": 2}, metadata).to_envelope()
        assert envelope["success"] is True
        assert envelope["result"] == {"value": 2}
        assert "error" not in envelope

    def test_failure_envelope(self, metadata):
        envelope = CallResponse.fail(ErrorCode.TOOL_NOT_FOUND, "nope", metadata).to_envelope()
        assert envelope["success"] is False
        assert envelope["error"] == {"code": "TOOL_NOT_FOUND", "message": "nope"}

    def test_metadata_shape_identical(self, metadata):
        ok = CallResponse.ok(None, metadata).to_envelope()
        failed = CallResponse.fail(ErrorCode.EXECUTION_ERROR, "x", metadata).to_envelope()
        assert set(ok["metadata"]) == set(failed["metadata"]) == {
            "duration",
            "timestamp",
            "mcpId",
            "tool",
            "scope",
        }
        assert ok["metadata"]["scope"] == "chat"
