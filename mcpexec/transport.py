"""Transport adapters: carry one JSON-RPC request/response pair to an external provider."""

from __future__ import annotations

import itertools
import json
import logging
import os
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from mcpexec.schema import (
    HttpConnection,
    StdioConnection,
    WebSocketConnection,
)

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)
_request_id_lock = threading.Lock()


class TransportError(Exception):
    """Raised when a transport fails to deliver a call or the provider reports an error."""


class TransportTimeoutError(TransportError):
    """Raised when a call exceeds its connection timeout."""


# ── JSON-RPC framing ──────────────────────────────────────────────────────


def next_request_id() -> int:
    with _request_id_lock:
        return next(_request_ids)


def build_request(tool: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the JSON-RPC envelope shared by the stdio and HTTP transports."""
    return {
        "jsonrpc": "2.0",
        "method": tool,
        "params": params or {},
        "id": next_request_id(),
    }


def parse_response(response: Any) -> Any:
    """Extract ``result`` from a decoded JSON-RPC response, raising on ``error``."""
    if not isinstance(response, dict):
        raise TransportError(f"Unexpected MCP response: {response!r}")

    err = response.get("error")
    if isinstance(err, (dict, list)) or err:
        if isinstance(err, dict):
            raise TransportError(err.get("message") or "MCP returned error")
        raise TransportError(str(err))

    return response.get("result")


# ── Adapters ──────────────────────────────────────────────────────────────


class Transport(ABC):
    """One adapter per connection kind."""

    kind: str = ""

    @abstractmethod
    def invoke(self, connection: Any, tool: str, params: Dict[str, Any]) -> Any:
        """Send one call and return the provider's raw result."""

    def _check_connection(self, connection: Any, expected: type) -> None:
        if not isinstance(connection, expected):
            kind = getattr(connection, "type", type(connection).__name__)
            raise TransportError(f"{self.kind} transport cannot handle a '{kind}' connection")


class StdioTransport(Transport):
    """
    Run an MCP provider as a one-shot subprocess.

    Each call spawns ``command args...``, writes a single JSON-RPC request
    line to stdin, closes it and waits for the process to exit. The
    process is killed if it outlives ``timeout_ms``.
    """

    kind = "stdio"

    def invoke(self, connection: StdioConnection, tool: str, params: Dict[str, Any]) -> Any:
        self._check_connection(connection, StdioConnection)
        if not connection.command:
            raise TransportError("stdio MCP missing command")

        request = build_request(tool, params)
        line = json.dumps(request) + "\n"
        timeout_s = connection.timeout_ms / 1000
        merged_env = {**os.environ, **connection.env}

        try:
            process = subprocess.Popen(
                [connection.command] + list(connection.args),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=merged_env,
            )
        except FileNotFoundError:
            raise TransportError(f"MCP server command not found: {connection.command}")
        except OSError as exc:
            raise TransportError(f"Failed to start MCP server {connection.command}: {exc}")

        logger.debug("Spawned %s (pid %s) for %s", connection.command, process.pid, tool)

        try:
            stdout, stderr = process.communicate(input=line.encode(), timeout=timeout_s)
        except subprocess.TimeoutExpired:
            self._kill(process)
            raise TransportTimeoutError(f"MCP execution timeout ({connection.timeout_ms}ms)")
        except OSError as exc:
            self._kill(process)
            raise TransportError(f"MCP transport error: {exc}")

        out_text = stdout.decode(errors="replace")
        err_text = stderr.decode(errors="replace")

        if process.returncode != 0:
            raise TransportError(
                f"MCP process exited with code {process.returncode}: {err_text.strip()}"
            )

        try:
            response = json.loads(out_text)
        except ValueError:
            raise TransportError(f"Failed to parse MCP response: {out_text}")

        return parse_response(response)

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        """Kill the child and reap it so nothing is left running."""
        if process.poll() is None:
            process.kill()
        try:
            process.communicate(timeout=5)
        except (subprocess.TimeoutExpired, OSError, ValueError):
            logger.warning("MCP process %s did not exit after kill", process.pid)


class HttpTransport(Transport):
    """
    POST the JSON-RPC envelope to ``connection.url``.

    ``timeout_ms`` bounds the whole exchange, not each socket operation:
    the body is streamed and the call is abandoned once the deadline
    passes, however slowly the server trickles bytes.
    """

    kind = "http"

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client

    def invoke(self, connection: HttpConnection, tool: str, params: Dict[str, Any]) -> Any:
        self._check_connection(connection, HttpConnection)
        if not connection.url:
            raise TransportError("HTTP MCP missing URL")

        headers = {"Content-Type": "application/json", **connection.headers}
        timeout = connection.timeout_ms / 1000
        deadline = time.monotonic() + timeout
        payload = build_request(tool, params)

        try:
            with self._stream(connection.url, payload, headers, timeout) as response:
                body = self._read_body(response, deadline, connection.timeout_ms)
                status = response.status_code
        except httpx.TimeoutException:
            raise TransportTimeoutError(f"MCP execution timeout ({connection.timeout_ms}ms)")
        except httpx.HTTPError as exc:
            raise TransportError(f"MCP transport error: {exc}")

        text = body.decode(errors="replace")
        if status >= 400:
            raise TransportError(f"MCP server returned HTTP {status}: {text[:200]}")

        try:
            data = json.loads(text)
        except ValueError:
            raise TransportError(f"Failed to parse MCP response: {text}")

        return parse_response(data)

    def _stream(self, url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float):
        if self._client is not None:
            return self._client.stream("POST", url, json=payload, headers=headers, timeout=timeout)
        return httpx.stream("POST", url, json=payload, headers=headers, timeout=timeout)

    @staticmethod
    def _read_body(response: httpx.Response, deadline: float, timeout_ms: int) -> bytes:
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise TransportTimeoutError(f"MCP execution timeout ({timeout_ms}ms)")
        if time.monotonic() > deadline:
            raise TransportTimeoutError(f"MCP execution timeout ({timeout_ms}ms)")
        return b"".join(chunks)


class WebSocketTransport(Transport):
    """Placeholder: fails at once instead of waiting on a connection."""

    kind = "websocket"

    def invoke(self, connection: WebSocketConnection, tool: str, params: Dict[str, Any]) -> Any:
        raise TransportError("WebSocket MCP not yet implemented")


def default_transports(http_client: Optional[httpx.Client] = None) -> Dict[str, Transport]:
    """Adapter table keyed by connection type."""
    return {
        StdioTransport.kind: StdioTransport(),
        HttpTransport.kind: HttpTransport(client=http_client),
        WebSocketTransport.kind: WebSocketTransport(),
    }
