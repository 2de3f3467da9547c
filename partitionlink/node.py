"""Cluster members and the table of nodes discovered so far."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from .config import Config
from .postman import Channel, LetterMessage
from .timeutil import now_ts

log = logging.getLogger(__name__)

_U64_MAX = 2**64 - 1


def _require_uint(data: dict, name: str, upper: int = _U64_MAX) -> int:
    value = data.get(name)
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= upper:
        raise ValueError(f"field {name!r} must be an unsigned integer")
    return value


@dataclass
class NodeMsg:
    """The announcement a node multicasts to its peers."""

    id: int
    addr: str
    port: int
    online: bool

    def to_json(self) -> str:
        return json.dumps(
            {"id": self.id, "addr": self.addr, "port": self.port, "online": self.online},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, text: str) -> "NodeMsg":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as err:
            raise ValueError(f"malformed node message: {err}") from err
        if not isinstance(data, dict):
            raise ValueError("node message must be a JSON object")
        addr = data.get("addr")
        if not isinstance(addr, str):
            raise ValueError("field 'addr' must be a string")
        online = data.get("online")
        if not isinstance(online, bool):
            raise ValueError("field 'online' must be a boolean")
        return cls(
            id=_require_uint(data, "id"),
            addr=addr,
            port=_require_uint(data, "port"),
            online=online,
        )


@dataclass(frozen=True)
class Node(LetterMessage):
    """A cluster member as seen from this process."""

    addr: str
    id: int
    port: int
    is_self: bool
    online: bool

    def connection_endpoint(self) -> str:
        return f"{self.addr}:{self.port}"

    def channel(self) -> Channel:
        return Channel.DISCOVER


@dataclass(frozen=True)
class ProposalAddNode(LetterMessage):
    """A request to add a node to the consensus group."""

    node: Node

    def channel(self) -> Channel:
        return Channel.RAFT_PROPOSAL


@dataclass
class NodeTable:
    """Known nodes and the time each one expires, in epoch milliseconds."""

    cfg: Config
    clock: Callable[[], int] = now_ts
    nodes: dict[int, Node] = field(default_factory=dict)
    expire_until: dict[int, int] = field(default_factory=dict)

    def ping(self, node: Node) -> None:
        """Refresh a node, or drop it when it announces going offline."""
        if not node.online:
            self.nodes.pop(node.id, None)
            self.expire_until.pop(node.id, None)
            log.info("Node offline remove %s", json.dumps(asdict(node)))
            return
        if node.id not in self.nodes:
            log.info("New Node %s", json.dumps(asdict(node)))
            self.nodes[node.id] = node
        ttl_ms = round(self.cfg.disc_multicast_ttl * 1000)
        self.expire_until[node.id] = self.clock() + ttl_ms

    def exist(self, node_id: int) -> bool:
        now = self.clock()
        return node_id in self.nodes and self.expire_until.get(node_id, 0) > now

    def prune(self) -> int:
        """Forget expired nodes and return how many were removed."""
        now = self.clock()
        expired = [node_id for node_id, ts in self.expire_until.items() if ts < now]
        for node_id in expired:
            self.nodes.pop(node_id, None)
            log.info("Node %s disconnect, remove", node_id)
        if expired:
            log.info("Current Nodes: %s", list(self.nodes.values()))
            self.expire_until = {k: ts for k, ts in self.expire_until.items() if ts > now}
        return len(expired)

    def get_other_nodes(self) -> list[Node]:
        return [node for node in self.nodes.values() if not node.is_self]

    def get_other_node(self, node_id: int) -> Optional[Node]:
        return self.nodes.get(node_id)


class SharedNodeTable:
    """A node table shared between tasks, guarded by a lock."""

    def __init__(self, table: NodeTable) -> None:
        self._table = table
        self._lock = asyncio.Lock()

    async def ping(self, node: Node) -> None:
        async with self._lock:
            self._table.ping(node)

    async def exist(self, node_id: int) -> bool:
        async with self._lock:
            return self._table.exist(node_id)

    async def prune(self) -> int:
        async with self._lock:
            return self._table.prune()

    async def get_other_nodes(self) -> list[Node]:
        async with self._lock:
            return self._table.get_other_nodes()

    async def get_other_node(self, node_id: int) -> Optional[Node]:
        async with self._lock:
            return self._table.get_other_node(node_id)