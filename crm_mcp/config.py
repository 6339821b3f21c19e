"""Environment-driven server settings."""
import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    openapi_spec_path: str = "./openapi.json"
    server_name: str = "crm-mcp-server"
    server_version: str = "1.0.0"
    strict_tools: bool = False
    validate_on_startup: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openapi_spec_path=os.getenv("OPENAPI_SPEC_PATH", "./openapi.json"),
            server_name=os.getenv("MCP_SERVER_NAME", "crm-mcp-server"),
            server_version=os.getenv("MCP_SERVER_VERSION", "1.0.0"),
            strict_tools=_env_flag("MCP_STRICT_TOOLS", False),
            validate_on_startup=_env_flag("MCP_VALIDATE_ON_STARTUP", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )
