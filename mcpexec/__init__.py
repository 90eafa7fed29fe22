"""
mcpexec - Tool-call execution engine for MCP providers.

Takes a structured tool call, resolves the provider in a registry, checks
scope and parameters, dispatches over the provider's transport and returns
a uniform response envelope.

Transports:
- builtin    in-process handlers, one per scope (workspace / chat)
- stdio      one-shot subprocess speaking JSON-RPC on stdin/stdout
- http       JSON-RPC POSTed to a URL
- websocket  reserved, always fails with "not yet implemented"

Every call is written to a call log; successful calls by known users bump
an advisory usage counter.
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from mcpexec.builtin import BuiltinError, HandlerTable
from mcpexec.calllog import MemoryCallLog, YamlCallLog
from mcpexec.executor import ToolExecutor
from mcpexec.permissions import AllowAllPolicy, InstallPolicy
from mcpexec.registry import RegistryError, ToolRegistry
from mcpexec.schema import (
    CallContext,
    CallLogRecord,
    CallRequest,
    CallResponse,
    CallStatus,
    ErrorCode,
    HttpConnection,
    ProviderEntry,
    Scope,
    StdioConnection,
    ToolDef,
    ToolParam,
    WebSocketConnection,
)
from mcpexec.transport import TransportError, TransportTimeoutError
from mcpexec.usage import MemoryUsageStore

__all__ = [
    "AllowAllPolicy",
    "BuiltinError",
    "CallContext",
    "CallLogRecord",
    "CallRequest",
    "CallResponse",
    "CallStatus",
    "ErrorCode",
    "HandlerTable",
    "HttpConnection",
    "InstallPolicy",
    "MemoryCallLog",
    "MemoryUsageStore",
    "ProviderEntry",
    "RegistryError",
    "Scope",
    "StdioConnection",
    "ToolDef",
    "ToolExecutor",
    "ToolParam",
    "ToolRegistry",
    "TransportError",
    "TransportTimeoutError",
    "WebSocketConnection",
    "YamlCallLog",
    "__version__",
]
