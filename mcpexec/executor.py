"""Tool executor: resolves, checks, dispatches and logs tool calls."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from mcpexec.builtin import BuiltinHandler
from mcpexec.calllog import CallLogStore, MemoryCallLog, YamlCallLog, build_log_record
from mcpexec.permissions import PermissionPolicy
from mcpexec.registry import ToolRegistry
from mcpexec.schema import (
    CallMetadata,
    CallRequest,
    CallResponse,
    CallStatus,
    ErrorCode,
    ProviderEntry,
    Scope,
    utc_now,
)
from mcpexec.transport import Transport, TransportTimeoutError, default_transports
from mcpexec.usage import MemoryUsageStore
from mcpexec.validation.config import Config
from mcpexec.validation.params import validate_params

logger = logging.getLogger(__name__)


class CallStage(str, Enum):
    RESOLVING = "resolving"
    SCOPE_CHECKING = "scope_checking"
    PERMISSION_CHECKING = "permission_checking"
    TOOL_LOOKUP = "tool_lookup"
    PARAM_VALIDATING = "param_validating"
    DISPATCHING = "dispatching"


class _CallFailure(Exception):
    """Internal: ends a call early with a failure envelope."""

    def __init__(self, code: ErrorCode, message: str, status: CallStatus = CallStatus.FAILED):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


class ToolExecutor:
    """
    Public entry point for tool calls.

    ``execute()`` runs one call through resolve → scope check → tool lookup
    → parameter validation → dispatch, and always returns a ``CallResponse``.
    Every call, successful or not, produces exactly one call-log record.
    Usage is recorded only for successful calls made by a known user.

    Builtin providers are dispatched to the in-process handler for their
    scope; external providers go to the transport registered for their
    connection type.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        call_log: Optional[CallLogStore] = None,
        workspace_handler: Optional[BuiltinHandler] = None,
        chat_handler: Optional[BuiltinHandler] = None,
        transports: Optional[Dict[str, Transport]] = None,
        enforce_permissions: bool = False,
        max_workers: Optional[int] = None,
    ):
        self._registry = registry
        self._call_log = call_log if call_log is not None else MemoryCallLog()
        self._handlers: Dict[Scope, Optional[BuiltinHandler]] = {
            Scope.WORKSPACE: workspace_handler,
            Scope.CHAT: chat_handler,
        }
        self._transports = transports if transports is not None else default_transports()
        self._enforce_permissions = enforce_permissions
        self._max_workers = max_workers

    @classmethod
    def from_config(
        cls,
        config: Config,
        workspace_handler: Optional[BuiltinHandler] = None,
        chat_handler: Optional[BuiltinHandler] = None,
        permission_policy: Optional[PermissionPolicy] = None,
    ) -> "ToolExecutor":
        """Wire registry, usage store and call log from configuration."""
        settings = config.merged

        usage_store = MemoryUsageStore()
        usage_file = config.resolve_path(settings.usage.file)
        if usage_file is not None:
            usage_store.load(usage_file)

        registry = ToolRegistry.from_config(
            config, permission_policy=permission_policy, usage_store=usage_store
        )

        if settings.call_log.backend == "yaml":
            log_dir = config.resolve_path(settings.call_log.directory or "logs")
            call_log: CallLogStore = YamlCallLog(log_dir)
        else:
            call_log = MemoryCallLog()

        return cls(
            registry,
            call_log=call_log,
            workspace_handler=workspace_handler,
            chat_handler=chat_handler,
            enforce_permissions=settings.executor.enforce_permissions,
            max_workers=settings.executor.max_workers,
        )

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def call_log(self) -> CallLogStore:
        return self._call_log

    # ── Execution ─────────────────────────────────────────────────────────

    def execute(self, request: CallRequest) -> CallResponse:
        """Execute one tool call. Never raises."""
        t0 = time.perf_counter()
        timestamp = utc_now()
        stage = CallStage.RESOLVING

        try:
            provider = self._registry.resolve(request.provider_id)
            if provider is None:
                raise _CallFailure(ErrorCode.MCP_NOT_FOUND, f"MCP not found: {request.provider_id}")

            stage = CallStage.SCOPE_CHECKING
            if not provider.accepts_scope(request.scope):
                raise _CallFailure(
                    ErrorCode.SCOPE_MISMATCH,
                    f"MCP scope mismatch: expected {provider.scope.value}, got {request.scope.value}",
                )

            if self._enforce_permissions and request.user_id is not None:
                stage = CallStage.PERMISSION_CHECKING
                if not self._registry.is_permitted(request.user_id, provider):
                    raise _CallFailure(
                        ErrorCode.PERMISSION_DENIED,
                        f"User {request.user_id} may not use MCP {provider.id}",
                        CallStatus.PERMISSION_DENIED,
                    )

            stage = CallStage.TOOL_LOOKUP
            tool = provider.get_tool(request.tool)
            if tool is None:
                raise _CallFailure(
                    ErrorCode.TOOL_NOT_FOUND,
                    f"Tool {request.tool} not found in MCP {request.provider_id}",
                )

            stage = CallStage.PARAM_VALIDATING
            param_error = validate_params(tool, request.params)
            if param_error:
                raise _CallFailure(ErrorCode.INVALID_PARAMS, param_error)

            stage = CallStage.DISPATCHING
            try:
                result = self._dispatch(provider, request)
            except TransportTimeoutError as exc:
                raise _CallFailure(ErrorCode.EXECUTION_ERROR, str(exc), CallStatus.TIMEOUT)
            except Exception as exc:
                raise _CallFailure(ErrorCode.EXECUTION_ERROR, str(exc) or type(exc).__name__)

        except _CallFailure as failure:
            logger.info(
                "%s.%s failed at %s: %s", request.provider_id, request.tool, stage.value, failure.message
            )
            latency_ms = self._elapsed_ms(t0)
            self._log_call(request, failure.status, latency_ms, error_message=failure.message)
            return CallResponse.fail(
                failure.code, failure.message, self._metadata(request, t0, timestamp)
            )
        except Exception as exc:
            # Registry or handler lookups misbehaving; still answer with an envelope
            logger.exception("Unexpected error in %s.%s at %s", request.provider_id, request.tool, stage.value)
            message = str(exc) or type(exc).__name__
            self._log_call(request, CallStatus.FAILED, self._elapsed_ms(t0), error_message=message)
            return CallResponse.fail(
                ErrorCode.EXECUTION_ERROR, message, self._metadata(request, t0, timestamp)
            )

        latency_ms = self._elapsed_ms(t0)
        self._log_call(request, CallStatus.SUCCESS, latency_ms, result=result)

        if request.user_id:
            self._registry.record_usage(request.user_id, request.provider_id)

        logger.debug("%s.%s succeeded in %dms", request.provider_id, request.tool, latency_ms)
        return CallResponse.ok(result, self._metadata(request, t0, timestamp))

    def execute_batch(self, requests: Sequence[CallRequest]) -> List[CallResponse]:
        """
        Execute calls concurrently.

        Every member is issued at once unless ``max_workers`` caps the pool.
        Results come back in input order; each call succeeds or fails on
        its own.
        """
        if not requests:
            return []
        workers = len(requests)
        if self._max_workers is not None:
            workers = min(workers, self._max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mcpexec") as pool:
            return list(pool.map(self.execute, requests))

    def get_available_tools(self, user_id: Optional[int], scope: Scope) -> List[Dict[str, Any]]:
        """Tools grouped by provider, for the providers ``user_id`` may use in ``scope``."""
        return [
            {"mcpId": entry.id, "tools": list(entry.tools)}
            for entry in self._registry.list_available(user_id, scope)
        ]

    # ── Dispatch ──────────────────────────────────────────────────────────

    def _dispatch(self, provider: ProviderEntry, request: CallRequest) -> Any:
        if provider.is_builtin:
            handler_scope = request.scope if provider.scope == Scope.BOTH else provider.scope
            handler = self._handlers.get(handler_scope)
            if handler is None:
                raise RuntimeError(f"No {handler_scope.value} handler configured for builtin MCP {provider.id}")
            return handler.execute(provider.id, request.tool, request.params, request.context)

        connection = provider.connection
        transport = self._transports.get(connection.type)
        if transport is None:
            raise RuntimeError(f"Unsupported connection type: {connection.type}")
        return transport.invoke(connection, request.tool, request.params)

    # ── Side effects ──────────────────────────────────────────────────────

    def _log_call(
        self,
        request: CallRequest,
        status: CallStatus,
        latency_ms: int,
        result: Any = None,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            record = build_log_record(request, status, latency_ms, result=result, error_message=error_message)
            self._call_log.append(record)
        except Exception:
            logger.exception("Failed to log call %s.%s", request.provider_id, request.tool)

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _elapsed_ms(t0: float) -> int:
        return max(int((time.perf_counter() - t0) * 1000), 0)

    def _metadata(self, request: CallRequest, t0: float, timestamp: str) -> CallMetadata:
        return CallMetadata(
            duration_ms=self._elapsed_ms(t0),
            timestamp=timestamp,
            provider_id=request.provider_id,
            tool=request.tool,
            scope=request.scope,
        )
