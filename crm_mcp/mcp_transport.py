"""MCP over HTTP POST: envelope decoding, identity injection, status codes."""
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder

from .jsonrpc.handler import JSONRPCHandler
from .jsonrpc.models import ErrorCode, JSONRPCError, JSONRPCResponse
from .mcp_server import MCP_PROTOCOL_VERSION

logger = logging.getLogger(__name__)

# Resolves a bearer token to the caller's identity, sync or async; None or an
# exception means the token is rejected.
IdentityResolver = Callable[
    [str], Union[Optional[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]
]


class AuthenticationFailed(Exception):
    pass


class MCPTransport:
    """Handles the MCP HTTP endpoint."""

    def __init__(
        self,
        jsonrpc_handler: JSONRPCHandler,
        identity_resolver: Optional[IdentityResolver] = None,
    ):
        self.jsonrpc_handler = jsonrpc_handler
        self.identity_resolver = identity_resolver

    async def resolve_identity(self, request: Request) -> Optional[Dict[str, Any]]:
        """Resolve the caller from the Authorization header.

        Returns None for anonymous requests.

        Raises:
            AuthenticationFailed: the header is present but not accepted.
        """
        authorization = request.headers.get("Authorization")
        if not authorization:
            return None
        if self.identity_resolver is None:
            logger.warning("Authorization header received but no identity resolver is configured")
            return None

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationFailed("Malformed Authorization header")
        try:
            user_info = self.identity_resolver(token.strip())
            if inspect.isawaitable(user_info):
                user_info = await user_info
        except Exception as e:
            logger.warning(f"Identity resolution failed: {e}")
            raise AuthenticationFailed(str(e)) from e
        if not user_info:
            raise AuthenticationFailed("Unknown token")
        return user_info

    @staticmethod
    def prepare_message(message: Any, user_info: Optional[Dict[str, Any]]) -> Any:
        """Default ``params``/``params.arguments`` and inject the caller identity.

        A client-supplied ``arguments.userInfo`` is always discarded.
        """
        if isinstance(message, list):
            return [MCPTransport.prepare_message(item, user_info) for item in message]
        if not isinstance(message, dict):
            return message
        params = message.get("params")
        if params is None:
            params = message["params"] = {}
        if not isinstance(params, dict):
            return message
        arguments = params.get("arguments")
        if not isinstance(arguments, dict):
            arguments = params["arguments"] = {}
        arguments.pop("userInfo", None)
        if user_info is not None:
            arguments["userInfo"] = user_info
        return message

    async def handle_post_request(self, request: Request) -> Response:
        """Handle POST request from client.

        Every JSON-RPC message from the client is a new HTTP POST. Requests
        are answered with 200 and a JSON body, notifications with 204.
        """
        protocol_version = request.headers.get("Mcp-Protocol-Version")
        if protocol_version and protocol_version != MCP_PROTOCOL_VERSION:
            logger.warning(f"Client protocol version mismatch: {protocol_version}")

        try:
            user_info = await self.resolve_identity(request)
        except AuthenticationFailed:
            return Response(content="Unauthorized", status_code=401, media_type="text/plain")

        body = await request.body()
        try:
            message = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Received unparseable JSON-RPC body")
            return self._json_response(
                JSONRPCResponse(
                    id=None,
                    error=JSONRPCError(code=ErrorCode.PARSE_ERROR, message="Parse error")
                ).to_wire()
            )

        message = self.prepare_message(message, user_info)
        result = await self.jsonrpc_handler.handle_message(message)

        if result is None:
            return Response(status_code=204)
        if isinstance(result, list):
            return self._json_response([response.to_wire() for response in result])
        return self._json_response(result.to_wire())

    @staticmethod
    def _json_response(data: Any) -> Response:
        return Response(
            content=json.dumps(jsonable_encoder(data)),
            media_type="application/json",
            headers={"Mcp-Protocol-Version": MCP_PROTOCOL_VERSION}
        )
