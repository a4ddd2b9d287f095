"""Session lifecycle for the streamable HTTP transport.

Each client session owns its own MCP server and transport. The only state
shared between sessions is the read-only tool registry behind them.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus
from fastmcp import FastMCP
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
SESSION_NOT_FOUND = -32001


class Session(Protocol):
    session_id: str

    async def serve(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None: ...

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None: ...

    async def terminate(self) -> None: ...


class McpSession:
    """One FastMCP server bound to one streamable HTTP transport."""

    def __init__(
        self, session_id: str, server: FastMCP, transport: StreamableHTTPServerTransport
    ) -> None:
        self.session_id = session_id
        self.server = server
        self.transport = transport

    async def serve(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        low_level = self.server._mcp_server
        async with self.transport.connect() as (read_stream, write_stream):
            task_status.started()
            await low_level.run(
                read_stream,
                write_stream,
                low_level.create_initialization_options(),
                stateless=False,
            )

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.transport.handle_request(scope, receive, send)

    async def terminate(self) -> None:
        if not self.transport.is_terminated:
            await self.transport.terminate()


SessionFactory = Callable[[str], Session]


class SessionManager:
    """Create, route and close sessions keyed by the ``mcp-session-id`` header."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._sessions: Dict[str, Session] = {}
        self._lock = anyio.Lock()
        self._task_group: Optional[TaskGroup] = None

    @property
    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    @asynccontextmanager
    async def run(self) -> AsyncIterator["SessionManager"]:
        if self._task_group is not None:
            raise RuntimeError("SessionManager is already running")
        async with anyio.create_task_group() as task_group:
            self._task_group = task_group
            try:
                yield self
            finally:
                with anyio.CancelScope(shield=True):
                    for session_id in list(self._sessions):
                        await self.close_session(session_id)
                task_group.cancel_scope.cancel()
                self._task_group = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.handle_request(scope, receive, send)

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self._task_group is None:
            raise RuntimeError("SessionManager.run() must be entered before handling requests")

        request = Request(scope, receive)
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        if session_id is not None:
            session = self._sessions.get(session_id)
            if session is None:
                logger.info("Rejected request for unknown session %s", session_id[:8])
                await _jsonrpc_error(404, SESSION_NOT_FOUND, "Session not found")(scope, receive, send)
                return
            await session.handle_request(scope, receive, send)
            if request.method == "DELETE":
                await self.close_session(session_id)
            return

        if request.method != "POST":
            await _jsonrpc_error(400, INVALID_REQUEST, "Bad Request: Missing session ID")(scope, receive, send)
            return

        body = await request.body()
        try:
            message = json.loads(body)
        except ValueError:
            await _jsonrpc_error(400, PARSE_ERROR, "Parse error")(scope, receive, send)
            return
        if not is_initialize_request(message):
            await _jsonrpc_error(
                400, INVALID_REQUEST, "Bad Request: No valid session ID provided"
            )(scope, receive, send)
            return

        session = await self.create_session()
        status: Optional[int] = None

        async def send_and_record(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        try:
            await session.handle_request(scope, _replay(body, receive), send_and_record)
        finally:
            # The transport can still reject the handshake after the session exists.
            if status is None or not 200 <= status < 300:
                logger.info(
                    "Initialize rejected with status %s; dropping session %s...",
                    status,
                    session.session_id[:8],
                )
                with anyio.CancelScope(shield=True):
                    await self.close_session(session.session_id)

    async def create_session(self) -> Session:
        assert self._task_group is not None
        async with self._lock:
            session_id = uuid4().hex
            session = self._session_factory(session_id)
            self._sessions[session_id] = session
        await self._task_group.start(self._serve, session_id, session)
        logger.info("Created session %s... (%s active)", session_id[:8], len(self._sessions))
        return session

    async def close_session(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.terminate()
        logger.info("Closed session %s... (%s active)", session_id[:8], len(self._sessions))

    async def _serve(
        self,
        session_id: str,
        session: Session,
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        try:
            await session.serve(task_status=task_status)
        except Exception:  # noqa: BLE001
            logger.exception("Session %s... stopped with an error", session_id[:8])
        finally:
            with anyio.CancelScope(shield=True):
                await self.close_session(session_id)


def is_initialize_request(message: Any) -> bool:
    return (
        isinstance(message, dict)
        and message.get("jsonrpc") == "2.0"
        and message.get("method") == "initialize"
        and "id" in message
    )


def _jsonrpc_error(status_code: int, code: int, message: str) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": "2.0", "id": None, "error": {"code": code, "message": message}},
        status_code=status_code,
    )


def _replay(body: bytes, receive: Receive) -> Receive:
    """Hand an already-consumed request body to the next ASGI app."""
    delivered = False

    async def replay() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay
