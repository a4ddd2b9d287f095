"""CLI entry point for the OpenAPI MCP Adapter."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from .config import get_settings
from .logging import configure_logging
from .openapi import DocumentError
from .server import build_adapter, build_http_app

logger = logging.getLogger(__name__)


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.adapter_log_level)

    adapter = await build_adapter(settings)
    transport = settings.adapter_transport.lower()

    if transport in {"streamable-http", "streamablehttp", "http"}:
        app = build_http_app(adapter)
        config = uvicorn.Config(
            app,
            host=settings.adapter_host,
            port=settings.adapter_port,
            log_level=settings.adapter_log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()
        return
    if transport != "stdio":
        raise RuntimeError(f"Unsupported transport: {settings.adapter_transport}")

    mcp = adapter.build_mcp()
    logger.info(
        "%s ready on stdio with %s registered tools",
        settings.service_name,
        len(adapter.registry.names()),
    )
    await mcp.run_stdio_async()


def main() -> None:
    try:
        asyncio.run(_run())
    except DocumentError as exc:
        logger.error("Failed to start MCP server: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
