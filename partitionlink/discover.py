"""Finding other nodes through periodic multicast announcements."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
import struct
from typing import Any, Optional

from .config import Config
from .node import Node, NodeMsg, SharedNodeTable

log = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 1024


def parse_node_message(data: bytes, host: str, my_id: int) -> Optional[Node]:
    """Turn an announcement received from ``host`` into a node, or None if malformed."""
    text = bytes(data).decode("utf-8", errors="replace")
    log.debug("recv node ping msg %s", text)
    try:
        msg = NodeMsg.from_json(text)
    except ValueError as err:
        log.error("handle node ping message error %s", err)
        return None
    return Node(
        addr=host,
        id=msg.id,
        port=msg.port,
        is_self=msg.id == my_id,
        online=msg.online,
    )


class _DiscoverProtocol(asyncio.DatagramProtocol):
    def __init__(self, my_id: int, inbox: asyncio.Queue) -> None:
        self._my_id = my_id
        self._inbox = inbox

    def datagram_received(self, data: bytes, addr: Any) -> None:
        node = parse_node_message(data[:RECV_BUFFER_SIZE], str(addr[0]), self._my_id)
        if node is not None:
            self._inbox.put_nowait(node)

    def error_received(self, exc: Exception) -> None:
        log.error("discover socket error %r", exc)


def _multicast_socket(group: ipaddress.IPv4Address, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.bind(("0.0.0.0", port))
        membership = struct.pack("4s4s", group.packed, socket.inet_aton("0.0.0.0"))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class Discover:
    """Announces this node on the multicast group and listens for the others."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg
        self.node_id = cfg.node_id
        self.started = False
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._tasks: list[asyncio.Task] = []
        self._target: tuple[str, int] = ("", 0)
        self._offline = b""

    async def start(self, app: Any) -> None:
        """Join the multicast group and start announcing and receiving.

        Received nodes are handed to ``app.postman``.
        """
        if self.started:
            return
        cfg = self.cfg
        try:
            group = ipaddress.ip_address(cfg.disc_multicast_group)
        except ValueError as err:
            raise ValueError(f"invalid multicast group {cfg.disc_multicast_group!r}") from err
        if not isinstance(group, ipaddress.IPv4Address):
            raise ValueError("Multicast IP should be IPv4")

        sock = _multicast_socket(group, cfg.disc_multicast_port)
        inbox: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _DiscoverProtocol(self.node_id, inbox), sock=sock
        )
        self._transport = transport
        self._target = (str(group), cfg.disc_multicast_port)
        online = NodeMsg(self.node_id, "", cfg.listen_port, True).to_json().encode()
        self._offline = NodeMsg(self.node_id, "", cfg.listen_port, False).to_json().encode()
        log.info("This Node ID: %s", self.node_id)

        self._tasks = [
            asyncio.create_task(self._announce(online), name="discover-multicast"),
            asyncio.create_task(self._forward(app, inbox), name="discover-server"),
        ]
        self.started = True

    async def _announce(self, message: bytes) -> None:
        log.info("discover multicast thread startup %s:%s", *self._target)
        while True:
            try:
                self._transport.sendto(message, self._target)
            except OSError as err:
                log.error("multicast send failed %r", err)
            await asyncio.sleep(self.cfg.disc_multicast_interval)

    async def _forward(self, app: Any, inbox: asyncio.Queue) -> None:
        log.info("discover server thread startup")
        while True:
            node = await inbox.get()
            if not node.is_self:
                log.debug("From other node %r", node)
            try:
                await app.postman.send(node)
            except Exception:
                log.exception("send node message error")

    async def stop(self) -> None:
        """Stop the tasks, announce that this node goes offline and leave the group."""
        if not self.started:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._transport is not None:
            try:
                self._transport.sendto(self._offline, self._target)
            except OSError as err:
                log.error("multicast send failed %r", err)
            self._transport.close()
            self._transport = None
        self.started = False
        log.info("discover shutdown")


async def start_discover(
    app: Any,
    cfg: Config,
    node_manager: SharedNodeTable,
    queue: asyncio.Queue,
) -> asyncio.Task:
    """Start discovery and a task that records nodes arriving on ``queue``.

    The task also prunes expired nodes periodically; cancelling it stops discovery.
    """
    discover = Discover(cfg)
    await discover.start(app)

    async def _consume() -> None:
        while True:
            message = await queue.get()
            if isinstance(message, Node):
                log.debug("Recv node ping %r", message)
                try:
                    await node_manager.ping(message)
                except Exception:
                    log.exception("node ping failed")

    async def _prune() -> None:
        while True:
            await asyncio.sleep(cfg.disc_multicast_ttl_check_interval)
            count = await node_manager.prune()
            if count > 0:
                log.info("Prune complete, remove node count %d", count)

    async def _run() -> None:
        log.info("discover consumer thread startup")
        try:
            await asyncio.gather(_consume(), _prune())
        finally:
            await discover.stop()
            log.info("discover consumer thread shutdown")

    return asyncio.create_task(_run(), name="discover-consumer")