"""Data models for providers, tool definitions, call requests, responses and call logs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_TIMEOUT_MS = 30000


class Scope(str, Enum):
    """Operational context a provider is valid for."""

    WORKSPACE = "workspace"
    CHAT = "chat"
    BOTH = "both"


class ParamType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ErrorCode(str, Enum):
    MCP_NOT_FOUND = "MCP_NOT_FOUND"
    SCOPE_MISMATCH = "SCOPE_MISMATCH"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    INVALID_PARAMS = "INVALID_PARAMS"
    EXECUTION_ERROR = "EXECUTION_ERROR"


class CallStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Tool definitions ──────────────────────────────────────────────────────


class ToolParam(BaseModel):
    """A single declared parameter of a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ParamType = ParamType.STRING
    description: str = ""
    required: bool = False
    enum: Optional[List[str]] = None
    default: Any = None


class ToolDef(BaseModel):
    """A callable tool: its name and its parameters in declaration order."""

    name: str
    description: str = ""
    params: List[ToolParam] = Field(
        default_factory=list,
        validation_alias=AliasChoices("params", "parameters"),
    )

    def get_param(self, name: str) -> Optional[ToolParam]:
        for param in self.params:
            if param.name == name:
                return param
        return None

    def full_schema_text(self) -> str:
        """Parameter schema as text (for CLI display)."""
        lines = [f"Tool: {self.name}"]
        if self.description:
            lines.append(f"  {self.description}")
        lines.append("  Parameters:")
        if not self.params:
            lines.append("    (none)")
        for p in self.params:
            req = " (required)" if p.required else ""
            choices = f" [{', '.join(p.enum)}]" if p.enum else ""
            desc = f": {p.description}" if p.description else ""
            lines.append(f"    - {p.name}: {p.type.value}{req}{choices}{desc}")
        return "\n".join(lines)


# ── Connection descriptors ────────────────────────────────────────────────


class StdioConnection(BaseModel):
    """Spawn a child process and talk JSON-RPC over its stdin/stdout."""

    type: Literal["stdio"] = "stdio"
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout"),
    )


class HttpConnection(BaseModel):
    """POST JSON-RPC envelopes to a remote endpoint."""

    type: Literal["http"] = "http"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout"),
    )


class WebSocketConnection(BaseModel):
    type: Literal["websocket"] = "websocket"
    url: str


class BuiltinConnection(BaseModel):
    type: Literal["builtin"] = "builtin"
    handler: Optional[str] = None


Connection = Annotated[
    Union[StdioConnection, HttpConnection, WebSocketConnection, BuiltinConnection],
    Field(discriminator="type"),
]


# ── Registry entries ──────────────────────────────────────────────────────


class ProviderEntry(BaseModel):
    """A registered tool provider."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    scope: Scope
    is_builtin: bool = Field(
        default=False, validation_alias=AliasChoices("is_builtin", "isBuiltin", "builtin")
    )
    tools: List[ToolDef] = Field(default_factory=list)
    connection: Optional[Connection] = None

    @model_validator(mode="after")
    def fill_defaults(self) -> "ProviderEntry":
        if not self.name:
            self.name = self.id
        if self.connection is None:
            if not self.is_builtin:
                raise ValueError(f"provider '{self.id}' needs a connection unless it is builtin")
            self.connection = BuiltinConnection(handler=self.id)
        seen = set()
        for tool in self.tools:
            if tool.name in seen:
                raise ValueError(f"provider '{self.id}' declares tool '{tool.name}' twice")
            seen.add(tool.name)
        return self

    def accepts_scope(self, scope: Scope) -> bool:
        return self.scope == Scope.BOTH or self.scope == scope

    def get_tool(self, name: str) -> Optional[ToolDef]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


# ── Calls ─────────────────────────────────────────────────────────────────


class CallContext(BaseModel):
    """Caller identity supplied by the surrounding application."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    workspace_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("workspace_id", "workspaceId")
    )
    conversation_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("conversation_id", "conversationId")
    )


class CallRequest(BaseModel):
    """Inbound tool-call envelope."""

    model_config = ConfigDict(populate_by_name=True)

    provider_id: str = Field(validation_alias=AliasChoices("provider_id", "providerId", "mcpId"))
    tool: str
    scope: Scope
    params: Dict[str, Any] = Field(default_factory=dict)
    context: Optional[CallContext] = None

    @field_validator("scope")
    @classmethod
    def call_scope(cls, value: Scope) -> Scope:
        if value == Scope.BOTH:
            raise ValueError("a call is made from either the workspace or the chat scope")
        return value

    @property
    def user_id(self) -> Optional[int]:
        return self.context.user_id if self.context else None


class CallMetadata(BaseModel):
    duration_ms: int = 0
    timestamp: str = Field(default_factory=utc_now)
    provider_id: str
    tool: str
    scope: Scope


class CallError(BaseModel):
    code: ErrorCode
    message: str


class CallResponse(BaseModel):
    """Outcome of one call. Metadata has the same shape on success and failure."""

    success: bool
    result: Any = None
    error: Optional[CallError] = None
    metadata: CallMetadata

    @classmethod
    def ok(cls, result: Any, metadata: CallMetadata) -> "CallResponse":
        return cls(success=True, result=result, metadata=metadata)

    @classmethod
    def fail(cls, code: ErrorCode, message: str, metadata: CallMetadata) -> "CallResponse":
        return cls(success=False, error=CallError(code=code, message=message), metadata=metadata)

    def to_envelope(self) -> Dict[str, Any]:
        """Render the outbound wire envelope."""
        envelope: Dict[str, Any] = {"success": self.success}
        if self.success:
            envelope["result"] = self.result
        else:
            envelope["error"] = {"code": self.error.code.value, "message": self.error.message}
        envelope["metadata"] = {
            "duration": self.metadata.duration_ms,
            "timestamp": self.metadata.timestamp,
            "mcpId": self.metadata.provider_id,
            "tool": self.metadata.tool,
            "scope": self.metadata.scope.value,
        }
        return envelope


class CallLogRecord(BaseModel):
    """One invocation attempt, as handed to the call-log store."""

    model_config = ConfigDict(frozen=True)

    log_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:16])
    user_id: int = 0
    provider_id: str
    tool: str
    scope: Scope
    params_serialized: str = "{}"
    result_serialized: Optional[str] = None
    status: CallStatus
    latency_ms: int = Field(default=0, ge=0)
    error_message: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)
