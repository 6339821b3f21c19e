"""Shared fixtures: a small CRM-flavoured OpenAPI document and server wiring."""
import copy
from unittest.mock import Mock

import pytest

from crm_mcp.jsonrpc.handler import JSONRPCHandler
from crm_mcp.mcp_server import MCPProtocolServer
from crm_mcp.schema_compiler import compile_tools
from crm_mcp.spec_cache import SpecCache
from crm_mcp.tool_registry import ToolRegistry

SAMPLE_OPENAPI = {
    "openapi": "3.0.0",
    "info": {"title": "CRM APIs", "version": "1.0.0"},
    "paths": {
        "/accounts": {
            "get": {
                "operationId": "getAllAccounts",
                "summary": "Get all accounts",
            },
            "post": {
                "operationId": "createAccount",
                "summary": "Create account",
                "description": "Create a new account owned by the caller",
                "requestBody": {
                    "content": {
                        "application/json": {
                            "schema": {"$ref": "#/components/schemas/Account"}
                        }
                    }
                },
            },
        },
        "/accounts/{account_id}": {
            "delete": {
                "summary": "Delete an account",
                "parameters": [
                    {
                        "name": "account_id",
                        "in": "path",
                        "required": True,
                        "description": "Account identifier",
                        "schema": {"type": "string"},
                    }
                ],
            },
        },
        "/accounts/{account_id}/interactions": {
            "post": {
                "operationId": "addInteraction",
                "parameters": [
                    {"name": "account_id", "in": "path", "required": True},
                    {"name": "title", "in": "query", "required": True},
                ],
                "requestBody": {
                    "content": {
                        "application/json": {
                            "schema": {"$ref": "#/components/schemas/Interaction"}
                        }
                    }
                },
            },
        },
    },
    "components": {
        "schemas": {
            "Account": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "owner": {"$ref": "#/components/schemas/UserSummary"},
                    "address": {
                        "type": "object",
                        "properties": {"city": {"type": "string"}},
                    },
                    "contacts": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"email": {"type": "string"}},
                        },
                    },
                    "settings": {
                        "type": "object",
                        "additionalProperties": False,
                        "properties": {"theme": {"type": "string"}},
                    },
                },
            },
            "UserSummary": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
            },
            "Interaction": {
                "type": "object",
                "required": ["title", "kind"],
                "properties": {
                    "title": {"type": "string", "description": "Short title"},
                    "kind": {"type": "string", "enum": ["call", "meeting", "email"]},
                },
            },
        }
    },
}

SAMPLE_TOOL_NAMES = ["getAllAccounts", "createAccount", "delete_accounts_id", "addInteraction"]


@pytest.fixture
def openapi_doc():
    """A fresh copy of the sample OpenAPI document."""
    return copy.deepcopy(SAMPLE_OPENAPI)


@pytest.fixture
def counting_compiler():
    """compile_tools wrapped in a Mock so calls can be counted."""
    return Mock(side_effect=compile_tools)


@pytest.fixture
def build_server(openapi_doc, counting_compiler):
    """Factory wiring a JSON-RPC handler to an MCPProtocolServer.

    Returns (jsonrpc_handler, mcp_server).
    """

    def build(handlers=None, public_tools=None, doc=None, loader=None):
        spec_cache = SpecCache(loader or (lambda: doc or openapi_doc), compiler=counting_compiler)
        registry = ToolRegistry.from_mapping(handlers or {})
        server = MCPProtocolServer(spec_cache, registry, public_tools=public_tools)
        jsonrpc_handler = JSONRPCHandler()
        server.register_methods(jsonrpc_handler)
        return jsonrpc_handler, server

    return build
