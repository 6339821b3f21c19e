"""MCP protocol methods: handshake, tool discovery and tool invocation."""
import logging
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException

from .jsonrpc.handler import JSONRPCHandler
from .jsonrpc.models import ErrorCode, RPCError
from .schema_compiler import ToolDefinition
from .spec_cache import SpecCache
from .tool_registry import ToolRegistry
from .utils.errors import ToolError, http_status_to_jsonrpc_code

logger = logging.getLogger(__name__)

# MCP Protocol Version
MCP_PROTOCOL_VERSION = "2024-11-05"

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def tool_error_to_rpc_error(exc: Exception) -> RPCError:
    """Translate an exception raised by a tool handler into a JSON-RPC error.

    Only the status and the handler's own message cross the wire; anything
    unclassified becomes a generic internal error.
    """
    if isinstance(exc, ToolError):
        status, message = exc.status, exc.message
    elif isinstance(exc, HTTPException):
        status, message = exc.status_code, str(exc.detail)
    elif isinstance(getattr(exc, "status", None), int) and isinstance(getattr(exc, "message", None), str):
        status, message = exc.status, exc.message
    else:
        status, message = 500, INTERNAL_ERROR_MESSAGE
    return RPCError(code=http_status_to_jsonrpc_code(status), message=message)


class MCPProtocolServer:
    """Implements ``initialize``, ``ping``, ``tools/list`` and ``tools/call``.

    Tools come from the lazily compiled OpenAPI document held by ``spec_cache``;
    handlers come from ``registry``. A tool must be present in both to be
    callable. When ``public_tools`` is given, callers without an identity
    (no ``arguments.userInfo``) see and may call only those tools.
    """

    def __init__(
        self,
        spec_cache: SpecCache,
        registry: ToolRegistry,
        server_name: str = "crm-mcp-server",
        server_version: str = "1.0.0",
        public_tools: Optional[List[ToolDefinition]] = None,
    ):
        self.spec_cache = spec_cache
        self.registry = registry
        self.server_name = server_name
        self.server_version = server_version
        self.public_tools = public_tools

    def register_methods(self, jsonrpc_handler: JSONRPCHandler) -> None:
        """Register all MCP methods on a JSON-RPC handler."""
        jsonrpc_handler.register_method("initialize", self.initialize)
        jsonrpc_handler.register_method("notifications/initialized", self.initialized)
        jsonrpc_handler.register_method("ping", self.ping)
        jsonrpc_handler.register_method("tools/list", self.tools_list)
        jsonrpc_handler.register_method("tools/call", self.tools_call)

    async def initialize(self, params: dict) -> Dict[str, Any]:
        client_info = params.get("clientInfo") or {}
        if isinstance(client_info, dict) and client_info.get("name"):
            logger.info(f"Initialize from client {client_info.get('name')} {client_info.get('version', '')}")
        return {
            "protocolVersion": params.get("protocolVersion") or MCP_PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {
                "name": self.server_name,
                "version": self.server_version,
            },
        }

    async def initialized(self, params: dict) -> None:
        return None

    async def ping(self, params: dict) -> Dict[str, Any]:
        return {}

    async def visible_tools(self, arguments: Dict[str, Any]) -> List[ToolDefinition]:
        if self.public_tools is not None and not arguments.get("userInfo"):
            return self.public_tools
        return await self.spec_cache.get_tools()

    async def tools_list(self, params: dict) -> Dict[str, Any]:
        try:
            tools = await self.visible_tools(_arguments(params))
        except Exception:
            logger.error("tools/list: could not load tool definitions", exc_info=True)
            raise RPCError(code=ErrorCode.INTERNAL_ERROR, message="Internal error")
        return {"tools": [tool.model_dump() for tool in tools]}

    async def tools_call(self, params: dict) -> Any:
        name = params.get("name")
        arguments = _arguments(params)
        logger.info(f"tools/call {name}")

        try:
            tools = await self.visible_tools(arguments)
        except Exception:
            # An unloadable document leaves no tool callable
            logger.error(f"tools/call {name}: could not load tool definitions", exc_info=True)
            tools = []
        known = any(tool.name == name for tool in tools)
        if not known or name not in self.registry:
            logger.warning(f"tools/call {name}: tool not found")
            raise RPCError(code=ErrorCode.METHOD_NOT_FOUND, message=f"Method not found: {name}")

        try:
            result = await self.registry.execute(name, arguments)
            return jsonable_encoder(result)
        except Exception as e:
            rpc_error = tool_error_to_rpc_error(e)
            if isinstance(e, (ToolError, HTTPException)):
                logger.warning(f"tools/call {name} failed with code {rpc_error.code}: {rpc_error.message}")
            else:
                logger.error(f"tools/call {name} raised unexpectedly", exc_info=True)
            raise rpc_error from e


def _arguments(params: dict) -> Dict[str, Any]:
    arguments = params.get("arguments")
    return arguments if isinstance(arguments, dict) else {}
