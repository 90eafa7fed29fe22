"""In-process handlers for builtin providers."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from mcpexec.schema import CallContext, Scope

logger = logging.getLogger(__name__)

ToolFunc = Callable[[Dict[str, Any], Optional[CallContext]], Any]


class BuiltinError(Exception):
    """Raised when a builtin handler has no route for a call."""


class BuiltinHandler(Protocol):
    def execute(
        self,
        provider_id: str,
        tool: str,
        params: Dict[str, Any],
        context: Optional[CallContext] = None,
    ) -> Any:
        ...


class HandlerTable:
    """
    Routes builtin calls for one scope to plain functions.

    Functions receive ``(params, context)`` and return the tool result::

        workspace = HandlerTable(Scope.WORKSPACE)

        @workspace.route("mcp-file-system", "read_file")
        def read_file(params, context):
            return sandbox.read(params["path"])
    """

    def __init__(self, scope: Scope):
        self.scope = scope
        self._routes: Dict[Tuple[str, str], ToolFunc] = {}

    def register(self, provider_id: str, tool: str, func: ToolFunc) -> None:
        self._routes[(provider_id, tool)] = func

    def route(self, provider_id: str, tool: str) -> Callable[[ToolFunc], ToolFunc]:
        def decorator(func: ToolFunc) -> ToolFunc:
            self.register(provider_id, tool, func)
            return func

        return decorator

    def providers(self) -> set:
        return {pid for pid, _ in self._routes}

    def execute(
        self,
        provider_id: str,
        tool: str,
        params: Dict[str, Any],
        context: Optional[CallContext] = None,
    ) -> Any:
        func = self._routes.get((provider_id, tool))
        if func is None:
            if provider_id not in self.providers():
                raise BuiltinError(f"Unknown {self.scope.value} MCP: {provider_id}")
            raise BuiltinError(f"Unknown tool {tool} for {self.scope.value} MCP {provider_id}")
        logger.debug("Builtin %s.%s (%s)", provider_id, tool, self.scope.value)
        return func(params, context)
