import asyncio
import contextlib

import pytest

from partitionlink.config import Config
from partitionlink.manager import ConnectionManager, new_connection
from partitionlink.node import Node, NodeTable, SharedNodeTable


@contextlib.asynccontextmanager
async def _server():
    release = asyncio.Event()
    writers = []

    async def handler(reader, writer):
        writers.append(writer)
        await release.wait()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    try:
        yield server.sockets[0].getsockname()[1]
    finally:
        release.set()
        for writer in writers:
            writer.close()
        server.close()


async def _closed_port():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


def _node(node_id, port, is_self=False):
    return Node(addr="127.0.0.1", id=node_id, port=port, is_self=is_self, online=True)


async def _manager(*nodes):
    table = SharedNodeTable(NodeTable(Config()))
    for node in nodes:
        await table.ping(node)
    return ConnectionManager(table)


@pytest.mark.asyncio
async def test_get_reuses_open_connection():
    async with _server() as port:
        node = _node(1, port)
        manager = await _manager(node)
        first = await manager.get(node)
        second = await manager.get(node)
        assert first is second
        assert first.node == node
        await first.close()


@pytest.mark.asyncio
async def test_get_reopens_closed_connection():
    async with _server() as port:
        node = _node(1, port)
        manager = await _manager(node)
        first = await manager.get(node)
        await first.close()
        second = await manager.get(node)
        assert second is not first
        assert second.is_open()
        await second.close()


@pytest.mark.asyncio
async def test_get_by_id_unknown_node_is_none():
    manager = await _manager()
    assert await manager.get_by_id(42) is None


@pytest.mark.asyncio
async def test_get_by_id_known_node():
    async with _server() as port:
        node = _node(7, port)
        manager = await _manager(node)
        conn = await manager.get_by_id(7)
        assert conn.node == node
        await conn.close()


@pytest.mark.asyncio
async def test_all_conn_skips_self_node():
    async with _server() as port:
        other = _node(1, port)
        own = _node(2, await _closed_port(), is_self=True)
        manager = await _manager(other, own)
        conns = await manager.all_conn()
        assert [c.node for c in conns] == [other]
        for conn in conns:
            await conn.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("addr", ["localhost", "::1", "not an address"])
async def test_new_connection_rejects_non_ipv4(addr):
    node = Node(addr=addr, id=1, port=7111, is_self=False, online=True)
    with pytest.raises(ValueError):
        await new_connection(node)


@pytest.mark.asyncio
async def test_new_connection_refused():
    node = _node(1, await _closed_port())
    with pytest.raises(OSError):
        await new_connection(node)