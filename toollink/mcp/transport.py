"""MCP provider communication via stdio subprocess transport (JSON-RPC 2.0)."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError

from toollink.mcp.schema import JSONRPCErrorObject, JSONRPCRequest, LaunchSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Tool results can be large; asyncio's default 64 KiB line limit is too small.
STREAM_LIMIT = 16 * 1024 * 1024

_STOP_TIMEOUT = 5.0


class MCPTransportError(Exception):
    """Raised when MCP transport communication fails."""


class SpawnError(MCPTransportError):
    """The provider executable could not be started."""


class TransportClosedError(MCPTransportError):
    """The provider process has exited or the transport was closed."""


class RequestTimeoutError(MCPTransportError, TimeoutError):
    """No response arrived for a request within its timeout."""

    def __init__(self, method: str, request_id: int, timeout: float):
        super().__init__(f"MCP request '{method}' (id {request_id}) timed out after {timeout:g}s")
        self.method = method
        self.request_id = request_id
        self.timeout = timeout


class ProtocolError(MCPTransportError):
    """The provider answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message or f"MCP error {code}")
        self.code = code
        self.message = message
        self.data = data


def _protocol_error(error: Any) -> ProtocolError:
    """Build a ProtocolError from whatever the provider put in ``error``."""
    code, message, data = 0, None, None
    if isinstance(error, dict):
        try:
            parsed = JSONRPCErrorObject.model_validate(error)
            code, message, data = parsed.code, parsed.message, parsed.data
        except ValidationError:
            if isinstance(error.get("code"), int):
                code = error["code"]
            message, data = error.get("message"), error.get("data")
    if not isinstance(message, str) or not message:
        message = json.dumps(error, ensure_ascii=False)
    return ProtocolError(code, message, data)


class ConnectionState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    INITIALIZED = "initialized"
    TERMINATED = "terminated"


class StdioTransport:
    """
    Talk JSON-RPC to one provider process over its stdin/stdout.

    Requests are correlated to responses by id only, so any number of calls
    may be in flight at once and answered in any order. A single reader task
    consumes stdout; every line is parsed independently and a bad line is
    dropped without touching other requests.

    A transport owns exactly one process for its whole life. Once
    terminated it cannot be restarted; build a new one instead.
    """

    def __init__(self, spec: LaunchSpec, timeout: float = DEFAULT_TIMEOUT):
        self.spec = spec
        self.timeout = timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_id = 0
        self._state = ConnectionState.UNCONNECTED

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return (
            self._state in (ConnectionState.CONNECTING, ConnectionState.INITIALIZED)
            and self._process is not None
            and self._process.returncode is None
        )

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def pending_count(self) -> int:
        """Number of requests still awaiting a response."""
        return len(self._pending)

    def mark_initialized(self) -> None:
        """Record that the protocol handshake completed."""
        if self._state is ConnectionState.CONNECTING:
            self._state = ConnectionState.INITIALIZED

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def spawn(self) -> None:
        """Start the provider process. stderr is inherited from this process."""
        if self._state is not ConnectionState.UNCONNECTED:
            raise TransportClosedError(
                f"Transport for '{self.spec.command}' was already started; create a new one"
            )

        self._state = ConnectionState.CONNECTING
        merged_env = {**os.environ, **self.spec.env}
        logger.info("Starting MCP provider: %s", self.spec.display())
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.spec.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                env=merged_env,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            self._state = ConnectionState.TERMINATED
            raise SpawnError(f"Failed to start MCP provider '{self.spec.command}': {exc}") from exc

        logger.debug("MCP provider '%s' started with PID %s", self.spec.command, self._process.pid)
        self._reader = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        """Stop the provider process and fail anything still pending. Idempotent."""
        process = self._process
        if process is not None and process.returncode is None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), _STOP_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("MCP provider '%s' did not terminate, killing", self.spec.command)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader

        self._state = ConnectionState.TERMINATED
        self._fail_pending(f"MCP provider '{self.spec.command}' connection closed")

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    async def send_request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and wait for its ``result``."""
        if self._process is None or self._state is ConnectionState.UNCONNECTED:
            raise TransportClosedError("MCP transport not started")
        if self._state is ConnectionState.TERMINATED:
            raise TransportClosedError(f"MCP provider '{self.spec.command}' connection is closed")

        request_id = self._next_id
        self._next_id += 1
        request = JSONRPCRequest(id=request_id, method=method, params=params or {})

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            self._process.stdin.write(request.to_line())
            await self._process.stdin.drain()
        except OSError as exc:
            self._pending.pop(request_id, None)
            raise TransportClosedError(f"MCP transport error: {exc}") from exc

        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, limit)
        except asyncio.TimeoutError:
            logger.warning("MCP request '%s' (id %d) timed out after %gs", method, request_id, limit)
            raise RequestTimeoutError(method, request_id, limit) from None
        finally:
            self._pending.pop(request_id, None)

    # ── Inbound ───────────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        stdout = self._process.stdout
        while True:
            try:
                line = await stdout.readline()
            except ValueError as exc:
                logger.warning("Discarding oversized line from MCP provider '%s': %s", self.spec.command, exc)
                continue
            if not line:
                break
            self._dispatch(line)
        await self._handle_eof()

    def _dispatch(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return

        try:
            message = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding malformed line from MCP provider '%s': %s", self.spec.command, exc)
            return
        if not isinstance(message, dict):
            logger.warning("Discarding non-object frame from MCP provider '%s'", self.spec.command)
            return
        if "method" in message:
            # Provider-initiated request or notification; not part of this client's surface.
            logger.debug("Ignoring provider message '%s'", message.get("method"))
            return

        request_id = message.get("id")
        if request_id is None:
            logger.debug("Ignoring id-less frame from MCP provider '%s'", self.spec.command)
            return
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            logger.warning("Discarding frame with invalid id %r from MCP provider '%s'", request_id, self.spec.command)
            return

        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            logger.debug("Dropping response for unknown or expired id %r", request_id)
            return

        if message.get("error"):
            future.set_exception(_protocol_error(message["error"]))
        else:
            future.set_result(message.get("result"))

    async def _handle_eof(self) -> None:
        self._state = ConnectionState.TERMINATED
        self._fail_pending(f"MCP provider '{self.spec.command}' closed its output")

        returncode = await self._process.wait()
        if returncode != 0:
            logger.warning("MCP provider '%s' exited with code %s", self.spec.command, returncode)
        else:
            logger.info("MCP provider '%s' exited", self.spec.command)

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(TransportClosedError(reason))
