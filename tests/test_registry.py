"""Tests for the tools registry and the reader/writer lock behind it."""

import asyncio

import pytest
from conftest import EchoTool, SlowTool

from relay.tools.registry import ToolsRegistry, create_default_registry
from relay.utils.locks import AsyncRWLock


class TestToolsRegistry:
    """Tests for ToolsRegistry."""

    @pytest.mark.asyncio
    async def test_register_and_get(self):
        registry = ToolsRegistry()
        tool = EchoTool()

        await registry.register(tool)

        assert await registry.get("echo") is tool
        assert await registry.has_tool("echo")
        assert await registry.get("nope") is None
        assert not await registry.has_tool("nope")

    @pytest.mark.asyncio
    async def test_register_replaces_same_name(self):
        first, second = EchoTool(), EchoTool()
        registry = ToolsRegistry([first])

        await registry.register(second)

        assert await registry.get("echo") is second
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_listing_sorted_by_name(self):
        registry = ToolsRegistry([SlowTool(), EchoTool()])

        assert await registry.tool_names() == ["echo", "slow"]
        assert [tool.name for tool in await registry.list_tools()] == ["echo", "slow"]
        assert [d.name for d in await registry.definitions()] == ["echo", "slow"]

    @pytest.mark.asyncio
    async def test_default_registry(self, tmp_path):
        registry = create_default_registry(tmp_path)

        assert await registry.tool_names() == ["bash", "glob", "read", "write"]
        read = await registry.get("read")
        assert read.working_dir == tmp_path


class TestAsyncRWLock:
    """Tests for AsyncRWLock."""

    @pytest.mark.asyncio
    async def test_readers_share(self):
        lock = AsyncRWLock()

        async with lock.read():
            async with lock.read():
                assert lock.readers == 2

        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_excludes_readers(self):
        lock = AsyncRWLock()
        events: list[str] = []

        async def reader():
            async with lock.read():
                events.append("read")

        async with lock.write():
            assert lock.write_locked
            task = asyncio.create_task(reader())
            await asyncio.sleep(0.01)
            assert events == []

        await task
        assert events == ["read"]

    @pytest.mark.asyncio
    async def test_waiting_writer_blocks_new_readers(self):
        lock = AsyncRWLock()
        events: list[str] = []

        async def writer():
            async with lock.write():
                events.append("write")

        async def late_reader():
            async with lock.read():
                events.append("late read")

        async with lock.read():
            writer_task = asyncio.create_task(writer())
            await asyncio.sleep(0.01)
            reader_task = asyncio.create_task(late_reader())
            await asyncio.sleep(0.01)
            assert events == []

        await asyncio.gather(writer_task, reader_task)
        assert events == ["write", "late read"]
