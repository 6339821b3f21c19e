"""FastAPI application exposing the MCP endpoint."""
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request

from .config import Settings
from .jsonrpc.handler import JSONRPCHandler
from .mcp_server import MCP_PROTOCOL_VERSION, MCPProtocolServer
from .mcp_transport import IdentityResolver, MCPTransport
from .schema_compiler import ToolDefinition
from .spec_cache import SpecCache, SpecLoader, json_file_loader
from .tool_registry import ToolRegistry

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def create_app(
    registry: Optional[ToolRegistry] = None,
    spec_loader: Optional[SpecLoader] = None,
    identity_resolver: Optional[IdentityResolver] = None,
    public_tools: Optional[List[ToolDefinition]] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the MCP application.

    Args:
        registry: Tool handlers supplied by the embedding application
        spec_loader: Callable returning the OpenAPI document; defaults to
            reading ``settings.openapi_spec_path``
        identity_resolver: Sync or async callable mapping a bearer token to user info
        public_tools: Tools offered to callers without an identity
        settings: Defaults to ``Settings.from_env()``
    """
    settings = settings or Settings.from_env()
    if registry is None:
        registry = ToolRegistry()
    spec_cache = SpecCache(spec_loader or json_file_loader(settings.openapi_spec_path))

    jsonrpc_handler = JSONRPCHandler()
    mcp_server = MCPProtocolServer(
        spec_cache,
        registry,
        server_name=settings.server_name,
        server_version=settings.server_version,
        public_tools=public_tools,
    )
    mcp_server.register_methods(jsonrpc_handler)
    mcp_transport = MCPTransport(jsonrpc_handler, identity_resolver)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI app."""
        logger.info("Starting MCP server...")
        registry.freeze()
        logger.info(f"Registered {len(registry)} tool handlers")
        logger.info(f"Registered {len(jsonrpc_handler.methods)} JSON-RPC methods")
        if settings.validate_on_startup:
            tools = await spec_cache.get_tools()
            registry.validate(tools, strict=settings.strict_tools)
        yield
        logger.info("Shutting down MCP server...")

    app = FastAPI(
        title="CRM MCP Server",
        description="MCP server exposing the CRM HTTP API as tools",
        version=settings.server_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.spec_cache = spec_cache
    app.state.mcp_server = mcp_server

    @app.post("/mcp")
    async def mcp_post_endpoint(request: Request):
        """MCP endpoint: one JSON-RPC message (or batch) per HTTP POST."""
        return await mcp_transport.handle_post_request(request)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.server_name,
            "version": settings.server_version,
            "protocol_version": MCP_PROTOCOL_VERSION,
            "tools_loaded": spec_cache.loaded,
        }

    return app


app = create_app()


def main():
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
