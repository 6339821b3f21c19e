"""Custom exception classes for the MCP server."""
from typing import Optional


class MCPError(Exception):
    """Base exception for MCP-related errors."""

    pass


class ToolError(MCPError):
    """Error raised by a business handler while executing a tool.

    Carries the HTTP status the handler would have answered with and a
    message that is forwarded to the caller verbatim.
    """

    status = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class BadRequest(ToolError):
    """Malformed call arguments."""

    status = 400


class Unauthorized(ToolError):
    status = 401


class Forbidden(ToolError):
    status = 403


class NotFound(ToolError):
    """Unknown account, contact or other target."""

    status = 404


class Conflict(ToolError):
    status = 409


class RateLimited(ToolError):
    status = 429


class Internal(ToolError):
    status = 500


class RegistryError(MCPError):
    """Invalid tool registration."""

    pass


class RegistryMismatchError(RegistryError):
    """Registered handlers and compiled tools disagree."""

    def __init__(self, unregistered, orphaned, duplicates=()):
        self.unregistered = sorted(unregistered)
        self.orphaned = sorted(orphaned)
        self.duplicates = sorted(duplicates)
        parts = []
        if self.unregistered:
            parts.append(f"tools without handler: {', '.join(self.unregistered)}")
        if self.orphaned:
            parts.append(f"handlers without tool: {', '.join(self.orphaned)}")
        if self.duplicates:
            parts.append(f"duplicate tool names: {', '.join(self.duplicates)}")
        super().__init__("; ".join(parts) or "registry mismatch")


_STATUS_CODES = {
    400: -32000,
    401: -32001,
    402: -32002,
    403: -32003,
    404: -32004,
    405: -32005,
    408: -32008,
    409: -32009,
    410: -32010,
    429: -32029,
}


def http_status_to_jsonrpc_code(status) -> int:
    """Map an HTTP status to the JSON-RPC error code sent to MCP clients.

    Known 4xx statuses have dedicated codes, any other 4xx becomes -32040
    and everything else (5xx, garbage) becomes -32099.
    """
    if not isinstance(status, int) or isinstance(status, bool):
        return -32099
    if status in _STATUS_CODES:
        return _STATUS_CODES[status]
    if 400 <= status < 500:
        return -32040
    return -32099
