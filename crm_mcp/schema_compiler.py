"""Compile an OpenAPI 3.0 document into MCP tool definitions.

Every ``(path, method)`` operation becomes one ``ToolDefinition`` whose
``parameters`` JSON schema merges the operation's path/query parameters
with its JSON request body. The compiler is deliberately lenient: broken
or unresolvable fragments shrink the resulting schema instead of raising,
so tool discovery keeps working against imperfect documents.
"""
import copy
import logging
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

from .utils.validation import MAX_TOOL_NAME_LENGTH, is_http_method

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "No description provided"
SCHEMA_REF_PREFIX = "#/components/schemas/"

_TRAILING_PLACEHOLDER = re.compile(r"\{\w+\}$")
_PLACEHOLDER = re.compile(r"\{\w+\}")
_NON_WORD = re.compile(r"\W+", re.ASCII)
_UNDERSCORES = re.compile(r"_+")

# Schema keywords holding nested schemas.
_SCHEMA_KEYS = ("items", "not", "additionalProperties")
_SCHEMA_LIST_KEYS = ("allOf", "anyOf", "oneOf", "prefixItems")
_SCHEMA_MAP_KEYS = ("properties", "patternProperties")


class ToolDefinition(BaseModel):
    """A function-style tool exposed to MCP clients."""

    type: Literal["function"] = "function"
    name: str
    description: str
    parameters: Dict[str, Any]


def derive_tool_name(method: str, path: str, operation_id: Optional[str] = None) -> str:
    """Derive a stable identifier for an operation.

    ``DELETE /accounts/{account_id}`` becomes ``delete_accounts_id``.
    """
    name = operation_id if isinstance(operation_id, str) and operation_id else f"{method}_{path}"
    name = _TRAILING_PLACEHOLDER.sub("id", name)
    name = _PLACEHOLDER.sub("", name)
    name = _NON_WORD.sub("_", name)
    name = _UNDERSCORES.sub("_", name)
    name = name.rstrip("_")
    if not name:
        name = "op"
    return name[:MAX_TOOL_NAME_LENGTH]


def resolve_schema_ref(schema: Any, openapi_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve a single ``$ref`` hop against ``components.schemas``.

    Refs nested inside the resolved schema are left untouched.
    """
    if not isinstance(schema, dict):
        return {}
    ref = schema.get("$ref")
    if ref is None:
        return schema
    components = openapi_doc.get("components")
    schemas = components.get("schemas") if isinstance(components, dict) else None
    target = None
    if isinstance(ref, str) and isinstance(schemas, dict):
        target = schemas.get(ref.replace(SCHEMA_REF_PREFIX, "", 1))
    if not isinstance(target, dict):
        logger.debug(f"Unresolvable schema reference: {ref}")
        return {}
    return copy.deepcopy(target)


def _nested_schemas(schema: Dict[str, Any]):
    for key in _SCHEMA_KEYS:
        if isinstance(schema.get(key), dict):
            yield schema[key]
    for key in _SCHEMA_LIST_KEYS:
        members = schema.get(key)
        if isinstance(members, list):
            yield from (member for member in members if isinstance(member, dict))
    for key in _SCHEMA_MAP_KEYS:
        members = schema.get(key)
        if isinstance(members, dict):
            yield from (member for member in members.values() if isinstance(member, dict))


def drop_invalid_required(schema: Any) -> None:
    """Remove ``required`` keywords whose value is not a list, recursively."""
    if not isinstance(schema, dict):
        return
    if "required" in schema and not isinstance(schema["required"], list):
        del schema["required"]
    for nested in _nested_schemas(schema):
        drop_invalid_required(nested)


def allow_additional_properties(schema: Any) -> None:
    """Set ``additionalProperties: true`` on every node defining ``properties``."""
    if not isinstance(schema, dict):
        return
    if "properties" in schema and "additionalProperties" not in schema:
        schema["additionalProperties"] = True
    for nested in _nested_schemas(schema):
        allow_additional_properties(nested)


def _collect_parameters(path_item: Dict[str, Any], operation: Dict[str, Any]) -> List[Dict[str, Any]]:
    merged: Dict[Any, Dict[str, Any]] = {}
    for source in (path_item.get("parameters"), operation.get("parameters")):
        if not isinstance(source, list):
            continue
        for param in source:
            if isinstance(param, dict) and param.get("name") and isinstance(param["name"], str):
                merged[(param["name"], str(param.get("in")))] = param
    return list(merged.values())


def _request_body_schema(operation: Dict[str, Any]) -> Optional[Any]:
    body = operation.get("requestBody")
    if not isinstance(body, dict):
        return None
    content = body.get("content")
    if not isinstance(content, dict):
        return None
    media = content.get("application/json")
    if not isinstance(media, dict):
        return None
    return media.get("schema")


def compile_operation(
    method: str,
    path: str,
    path_item: Dict[str, Any],
    operation: Dict[str, Any],
    openapi_doc: Dict[str, Any],
) -> ToolDefinition:
    """Build the tool definition for one operation."""
    description = operation.get("description")
    if description is None:
        description = operation.get("summary")
    if description is None:
        description = DEFAULT_DESCRIPTION

    properties: Dict[str, Any] = {}
    required: List[str] = []

    for param in _collect_parameters(path_item, operation):
        name = param["name"]
        schema = param.get("schema")
        schema = copy.deepcopy(schema) if isinstance(schema, dict) else {"type": "string"}
        if param.get("description"):
            schema["description"] = param["description"]
        properties[name] = schema
        if param.get("required"):
            required.append(name)

    body_schema = _request_body_schema(operation)
    if body_schema is not None:
        resolved = resolve_schema_ref(copy.deepcopy(body_schema), openapi_doc)
        body_properties = resolved.get("properties")
        if isinstance(body_properties, dict):
            for prop in body_properties.values():
                drop_invalid_required(prop)
            properties.update(body_properties)
        body_required = resolved.get("required")
        if isinstance(body_required, list):
            required.extend(item for item in body_required if isinstance(item, str))

    parameters: Dict[str, Any] = {"type": "object"}
    if properties:
        parameters["properties"] = properties
    required = list(dict.fromkeys(required))
    if required:
        parameters["required"] = required
    allow_additional_properties(parameters)
    parameters["additionalProperties"] = True

    return ToolDefinition(
        name=derive_tool_name(method, path, operation.get("operationId")),
        description=str(description),
        parameters=parameters,
    )


def compile_tools(openapi_doc: Dict[str, Any]) -> List[ToolDefinition]:
    """Compile every operation of an OpenAPI document, in document order."""
    tools: List[ToolDefinition] = []
    if not isinstance(openapi_doc, dict):
        logger.warning("OpenAPI document is not an object; no tools compiled")
        return tools
    paths = openapi_doc.get("paths")
    if not isinstance(paths, dict):
        logger.warning("OpenAPI document has no paths; no tools compiled")
        return tools

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if not is_http_method(method) or not isinstance(operation, dict):
                continue
            tools.append(
                compile_operation(method.lower(), str(path), path_item, operation, openapi_doc)
            )

    logger.info(f"Compiled {len(tools)} tools from OpenAPI document")
    return tools
