"""JSON-RPC 2.0 request handler."""
from typing import Any, Dict, Callable, List, Optional, Union
import logging

from pydantic import ValidationError

from .models import (
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCError,
    ErrorCode,
    RPCError,
)

logger = logging.getLogger(__name__)


class JSONRPCHandler:
    """Handles JSON-RPC 2.0 requests and routes to registered methods."""

    def __init__(self):
        self.methods: Dict[str, Callable] = {}

    def register_method(self, method_name: str, handler: Callable):
        """Register a JSON-RPC method handler.

        Args:
            method_name: Name of the JSON-RPC method (e.g., "tools/list")
            handler: Async callable that handles the method
        """
        self.methods[method_name] = handler
        logger.info(f"Registered JSON-RPC method: {method_name}")

    async def handle_request(
        self,
        request: JSONRPCRequest
    ) -> Optional[JSONRPCResponse]:
        """Handle a JSON-RPC 2.0 request.

        Args:
            request: JSONRPCRequest object

        Returns:
            JSONRPCResponse with result or error, or None for notifications
        """
        response = await self._dispatch(request)
        if request.is_notification:
            if response.error is not None:
                logger.debug(
                    f"Dropped error for notification {request.method}: {response.error.message}"
                )
            return None
        return response

    async def handle_message(
        self,
        message: Any
    ) -> Union[JSONRPCResponse, List[JSONRPCResponse], None]:
        """Handle a decoded JSON body: a single envelope or a batch.

        Returns:
            A response, a list of responses for a batch, or None when
            nothing needs to be sent back
        """
        if isinstance(message, list):
            if not message:
                return self._invalid_request("Empty batch")
            responses = []
            for item in message:
                response = await self._handle_single(item)
                if response is not None:
                    responses.append(response)
            return responses or None
        return await self._handle_single(message)

    async def _handle_single(self, message: Any) -> Optional[JSONRPCResponse]:
        try:
            request = JSONRPCRequest.model_validate(message)
        except ValidationError as e:
            logger.warning(f"Invalid JSON-RPC request: {e.error_count()} validation errors")
            request_id = message.get("id") if isinstance(message, dict) else None
            if not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
                request_id = None
            return self._invalid_request("Invalid Request", request_id)
        return await self.handle_request(request)

    @staticmethod
    def _invalid_request(message: str, request_id=None) -> JSONRPCResponse:
        return JSONRPCResponse(
            id=request_id,
            error=JSONRPCError(code=ErrorCode.INVALID_REQUEST, message=message)
        )

    async def _dispatch(self, request: JSONRPCRequest) -> JSONRPCResponse:
        try:
            # Validate method exists
            if request.method not in self.methods:
                return JSONRPCResponse(
                    id=request.id,
                    error=JSONRPCError(
                        code=ErrorCode.METHOD_NOT_FOUND,
                        message=f"Method not found: {request.method}"
                    )
                )

            # Execute method
            handler = self.methods[request.method]
            result = await handler(request.params or {})

            # Return success response
            return JSONRPCResponse(
                id=request.id,
                result=result
            )

        except RPCError as e:
            return JSONRPCResponse(id=request.id, error=e.to_error())
        except ValueError as e:
            # Invalid parameters
            return JSONRPCResponse(
                id=request.id,
                error=JSONRPCError(
                    code=ErrorCode.INVALID_PARAMS,
                    message=str(e)
                )
            )
        except Exception as e:
            # Internal error; details stay in the server log
            logger.error(f"Internal error handling {request.method}: {e}", exc_info=True)
            return JSONRPCResponse(
                id=request.id,
                error=JSONRPCError(
                    code=ErrorCode.INTERNAL_ERROR,
                    message="Internal error"
                )
            )
