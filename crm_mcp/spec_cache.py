"""Lazily loaded OpenAPI document and its compiled tool list."""
import asyncio
import inspect
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Union

from .schema_compiler import ToolDefinition, compile_tools

logger = logging.getLogger(__name__)

SpecLoader = Callable[[], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]
Compiler = Callable[[Dict[str, Any]], List[ToolDefinition]]


class _NotLoaded:
    def __repr__(self):
        return "NOT_LOADED"


# Sentinel held by SpecCache until the first successful load.
NOT_LOADED = _NotLoaded()


def json_file_loader(path: Union[str, Path]) -> SpecLoader:
    """Return a loader reading an OpenAPI document from a JSON file."""
    spec_path = Path(path)

    def load() -> Dict[str, Any]:
        with spec_path.open("r", encoding="utf-8") as f:
            return json.load(f)

    return load


class SpecCache:
    """Memoizing accessor for ``(openapi_doc, compiled_tools)``.

    The document is loaded and compiled on the first ``get_tools()`` call and
    kept for the lifetime of the cache. Concurrent first callers wait on the
    same compilation. A failed load leaves the cache unloaded so the next
    call retries.
    """

    def __init__(self, loader: SpecLoader, compiler: Compiler = compile_tools):
        self._loader = loader
        self._compiler = compiler
        self._lock = asyncio.Lock()
        self.openapi_doc: Any = NOT_LOADED
        self.compiled_tools: Any = NOT_LOADED

    @property
    def loaded(self) -> bool:
        return self.compiled_tools is not NOT_LOADED

    async def get_tools(self) -> List[ToolDefinition]:
        if self.loaded:
            return self.compiled_tools

        async with self._lock:
            if not self.loaded:
                doc = self._loader()
                if inspect.isawaitable(doc):
                    doc = await doc
                tools = self._compiler(doc)
                self.openapi_doc = doc
                self.compiled_tools = tools
                logger.info(f"Tool cache populated with {len(tools)} tools")
        return self.compiled_tools
