"""The node runtime: wires discovery, the command server and the database together."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .cmd_server import start_cmd_server
from .config import Config
from .database import Database, start_db_cmd_channel
from .discover import start_discover
from .manager import ConnectionManager
from .node import NodeTable, SharedNodeTable
from .postman import Channel, Postman

log = logging.getLogger(__name__)

DISCOVER_BUFFER = 16
DB_CMD_BUFFER = 32


class Runtime:
    """Holds the configuration and the message router shared by all tasks."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg
        self.postman = Postman()
        self.node_manager: Optional[SharedNodeTable] = None
        self.conn_manager: Optional[ConnectionManager] = None

    @classmethod
    def with_default_config(cls) -> "Runtime":
        return cls(Config())

    async def start(self) -> list[asyncio.Task]:
        """Start node discovery, the command server and the database task.

        Returns the running tasks; cancelling them shuts the node down.
        Raises RuntimeError when a required channel is already taken.
        """
        node_manager = SharedNodeTable(NodeTable(self.cfg))
        self.node_manager = node_manager
        self.conn_manager = ConnectionManager(node_manager)

        discover_queue = self.postman.new_channel(Channel.DISCOVER, DISCOVER_BUFFER)
        if discover_queue is None:
            raise RuntimeError("Discover channel is already open, cannot start")

        tasks: list[asyncio.Task] = []
        try:
            tasks.append(await start_discover(self, self.cfg, node_manager, discover_queue))
            tasks.append(await start_cmd_server(self, self.cfg))
            db_queue = self.postman.new_channel(Channel.DB_CMD_REQ, DB_CMD_BUFFER)
            if db_queue is None:
                raise RuntimeError("Database channel is already open, cannot start")
            tasks.append(start_db_cmd_channel(self, Database(), db_queue))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        log.info("runtime started with %d tasks", len(tasks))
        return tasks