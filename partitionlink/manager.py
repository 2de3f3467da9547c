"""Pool of outgoing connections to the other cluster nodes."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Optional

from .connection import NodeConnection
from .node import Node, SharedNodeTable

log = logging.getLogger(__name__)


async def new_connection(node: Node) -> NodeConnection:
    """Open a TCP connection to ``node``, whose address must be an IPv4 literal."""
    try:
        address = ipaddress.ip_address(node.addr)
    except ValueError as err:
        raise ValueError(f"parse connection addr error {node.connection_endpoint()!r}") from err
    if not isinstance(address, ipaddress.IPv4Address):
        raise ValueError(f"parse connection addr error {node.connection_endpoint()!r}")
    if not 0 < node.port <= 0xFFFF:
        raise ValueError(f"parse connection addr error {node.connection_endpoint()!r}")
    reader, writer = await asyncio.open_connection(str(address), node.port)
    log.debug("new other node connection addr=%s, node=%r", node.connection_endpoint(), node)
    return NodeConnection(node, reader, writer)


class ConnectionManager:
    """Keeps one open connection per node, reopening closed ones on demand."""

    def __init__(self, node_table: SharedNodeTable) -> None:
        self.node_table = node_table
        self._connections: dict[Node, NodeConnection] = {}
        self._lock = asyncio.Lock()

    async def all_conn(self) -> list[NodeConnection]:
        """Connections to every node other than this one."""
        nodes = await self.node_table.get_other_nodes()
        log.debug("find node table's other node count %d", len(nodes))
        return [await self.get(node) for node in nodes]

    async def get(self, node: Node) -> NodeConnection:
        async with self._lock:
            conn = self._connections.get(node)
            if conn is not None and conn.is_open():
                return conn
            conn = await new_connection(node)
            self._connections[node] = conn
            return conn

    async def get_by_id(self, node_id: int) -> Optional[NodeConnection]:
        node = await self.node_table.get_other_node(node_id)
        if node is None:
            return None
        return await self.get(node)