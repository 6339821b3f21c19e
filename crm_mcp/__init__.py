"""Expose an OpenAPI-described HTTP API as MCP tools over JSON-RPC 2.0."""

__version__ = "1.0.0"
