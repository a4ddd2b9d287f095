"""MCP server setup for the OpenAPI MCP Adapter."""

from __future__ import annotations

import json
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.server.streamable_http import StreamableHTTPServerTransport
from mcp.server.transport_security import TransportSecuritySettings
from mcp.types import TextContent, ToolAnnotations
from pydantic import PrivateAttr
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import ASGIApp, Receive, Scope, Send

from .config import Settings
from .executors import CredentialInjector, RestExecutor
from .models import ToolDefinition
from .openapi import OpenAPILoader
from .service import AdapterService, error_message
from .sessions import McpSession, SessionManager
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

DOCUMENT_URI = "openapi://document"
OPERATIONS_URI = "openapi://operations"


class OperationTool(Tool):
    """MCP tool backed by one OpenAPI operation."""

    _service: AdapterService = PrivateAttr()

    @classmethod
    def from_definition(cls, definition: ToolDefinition, service: AdapterService) -> "OperationTool":
        tool = cls(
            name=definition.name,
            description=definition.description,
            parameters=definition.input_schema,
            annotations=ToolAnnotations(title=definition.title),
        )
        tool._service = service
        return tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        result = await self._service.call_tool(self.name, arguments)
        if result.is_error:
            raise ToolError(error_message(result))
        return ToolResult(
            content=[TextContent(type="text", text=result.text)],
            structured_content=result.structured,
        )


class AdapterApp:
    """Everything built once per process and shared by every session."""

    def __init__(
        self,
        settings: Settings,
        document: Dict[str, Any],
        registry: ToolRegistry,
        service: AdapterService,
    ) -> None:
        self.settings = settings
        self.document = document
        self.registry = registry
        self.service = service

    def build_mcp(self) -> FastMCP:
        mcp = FastMCP(
            self.settings.service_name,
            instructions=_instructions(self.document),
            version=self.settings.service_version,
        )
        for definition in self.registry.load():
            mcp.add_tool(OperationTool.from_definition(definition, self.service))
        _register_resources(mcp, self.document, self.registry)
        return mcp

    def build_session(self, session_id: str) -> McpSession:
        transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=self.settings.adapter_json_response,
            event_store=None,
            security_settings=_security_settings(self.settings),
        )
        return McpSession(session_id, self.build_mcp(), transport)


async def build_adapter(settings: Settings) -> AdapterApp:
    loader = OpenAPILoader(timeout_seconds=settings.api_timeout_seconds)
    document, operations = await loader.load_operations(settings.openapi_document)

    registry = ToolRegistry(document, operations, token_header=settings.api_token_header)
    for definition in registry.load():
        logger.info("Registered tool: %s", definition.name)

    executor = RestExecutor(
        base_url=settings.api_base_url,
        credentials=CredentialInjector(settings.api_token_header, settings.api_token),
        timeout_seconds=settings.api_timeout_seconds,
    )
    service = AdapterService(registry, executor)
    return AdapterApp(settings, document, registry, service)


def build_http_app(adapter: AdapterApp, session_manager: Optional[SessionManager] = None) -> Starlette:
    settings = adapter.settings
    session_manager = session_manager or SessionManager(adapter.build_session)

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            logger.info(
                "%s ready on http://%s:%s%s with %s tools",
                settings.service_name,
                settings.adapter_host,
                settings.adapter_port,
                settings.adapter_path,
                len(adapter.registry.names()),
            )
            yield

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins() or ["*"],
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["mcp-session-id"],
        ),
        Middleware(BearerAuthMiddleware, token=settings.adapter_auth_token, path=settings.adapter_path),
    ]
    routes = [
        Route("/health", _healthcheck, methods=["GET"]),
        Route(settings.adapter_path, endpoint=session_manager, methods=["GET", "POST", "DELETE"]),
    ]
    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.session_manager = session_manager
    return app


class BearerAuthMiddleware:
    """Require ``Authorization: Bearer <token>`` on the MCP endpoint when a token is configured."""

    def __init__(self, app: ASGIApp, token: Optional[str], path: str) -> None:
        self.app = app
        self.token = token
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self.token or scope["type"] != "http" or scope.get("method") == "OPTIONS":
            await self.app(scope, receive, send)
            return
        if scope.get("path", "").rstrip("/") != self.path.rstrip("/"):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        supplied = request.headers.get("authorization", "").replace("Bearer", "", 1).strip()
        if supplied and secrets.compare_digest(supplied, self.token):
            await self.app(scope, receive, send)
            return
        await JSONResponse({"error": "Unauthorized"}, status_code=401)(scope, receive, send)


async def _healthcheck(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def _register_resources(mcp: FastMCP, document: Dict[str, Any], registry: ToolRegistry) -> None:
    @mcp.resource(
        DOCUMENT_URI,
        name="openapi-document",
        description="Full OpenAPI document served by this adapter.",
        mime_type="application/json",
    )
    def openapi_document() -> str:
        return json.dumps(document, indent=2)

    @mcp.resource(
        OPERATIONS_URI,
        name="openapi-operations",
        description="One line per API operation exposed as a tool.",
        mime_type="text/plain",
    )
    def openapi_operations() -> str:
        return registry.summary()


def _security_settings(settings: Settings) -> TransportSecuritySettings:
    return TransportSecuritySettings(
        enable_dns_rebinding_protection=settings.dns_rebinding_protection(),
        allowed_hosts=settings.allowed_hosts(),
        allowed_origins=settings.allowed_origins(),
    )


def _instructions(document: Dict[str, Any]) -> str:
    info = document.get("info") or {}
    parts: List[str] = []
    if isinstance(info, dict):
        if info.get("title"):
            parts.append(str(info["title"]) + ".")
        if info.get("description"):
            parts.append(str(info["description"]))
    parts.append(
        "Each tool calls one operation of the HTTP API described by the OpenAPI document. "
        f"Read {OPERATIONS_URI} for an overview."
    )
    return " ".join(parts)
