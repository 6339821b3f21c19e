"""Input validation utilities."""
import re

MAX_TOOL_NAME_LENGTH = 64

VALID_TOOL_NAME = re.compile(r"^[A-Za-z0-9_]{1,64}$")

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def validate_tool_name(name) -> bool:
    """Validate a tool name against the MCP tool identifier rules."""
    return isinstance(name, str) and bool(VALID_TOOL_NAME.match(name))


def is_http_method(method) -> bool:
    """Check whether a path-item key is an OpenAPI operation verb."""
    return isinstance(method, str) and method.lower() in HTTP_METHODS
