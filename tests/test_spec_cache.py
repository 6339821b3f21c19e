"""Unit tests for the lazily compiled tool cache."""
import asyncio
import json
from unittest.mock import Mock

import pytest

from crm_mcp.spec_cache import NOT_LOADED, SpecCache, json_file_loader

from conftest import SAMPLE_TOOL_NAMES


@pytest.mark.asyncio
async def test_cache_starts_unloaded(openapi_doc):
    cache = SpecCache(lambda: openapi_doc)
    assert not cache.loaded
    assert cache.openapi_doc is NOT_LOADED
    assert cache.compiled_tools is NOT_LOADED


@pytest.mark.asyncio
async def test_compiles_once(openapi_doc, counting_compiler):
    loader = Mock(return_value=openapi_doc)
    cache = SpecCache(loader, compiler=counting_compiler)

    first = await cache.get_tools()
    second = await cache.get_tools()

    assert [tool.name for tool in first] == SAMPLE_TOOL_NAMES
    assert first == second
    assert loader.call_count == 1
    assert counting_compiler.call_count == 1
    assert cache.loaded
    assert cache.openapi_doc is openapi_doc


@pytest.mark.asyncio
async def test_concurrent_first_callers_share_compilation(openapi_doc, counting_compiler):
    async def slow_loader():
        await asyncio.sleep(0.01)
        return openapi_doc

    cache = SpecCache(slow_loader, compiler=counting_compiler)

    results = await asyncio.gather(*(cache.get_tools() for _ in range(5)))

    assert counting_compiler.call_count == 1
    assert all(result == results[0] for result in results)


@pytest.mark.asyncio
async def test_failed_load_is_retried(openapi_doc):
    loader = Mock(side_effect=[OSError("spec unavailable"), openapi_doc])
    cache = SpecCache(loader)

    with pytest.raises(OSError):
        await cache.get_tools()
    assert not cache.loaded

    tools = await cache.get_tools()
    assert len(tools) == len(SAMPLE_TOOL_NAMES)


@pytest.mark.asyncio
async def test_json_file_loader(tmp_path, openapi_doc):
    spec_file = tmp_path / "openapi.json"
    spec_file.write_text(json.dumps(openapi_doc), encoding="utf-8")

    cache = SpecCache(json_file_loader(spec_file))

    tools = await cache.get_tools()
    assert [tool.name for tool in tools] == SAMPLE_TOOL_NAMES
