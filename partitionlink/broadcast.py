"""Sending a command to every other node of the cluster."""

from __future__ import annotations

import logging

from .commands import Command
from .manager import ConnectionManager

log = logging.getLogger(__name__)


async def broadcast(conn_manager: ConnectionManager, command: Command) -> None:
    """Write ``command`` to all other nodes; a failed write is logged, not raised."""
    frames = command.encode_to_frames()
    log.debug("broadcasting frames to the other nodes")
    connections = await conn_manager.all_conn()
    log.debug("other node count %d", len(connections))
    for conn in connections:
        if conn.node.is_self:
            continue
        try:
            await conn.write_frames(frames)
        except (OSError, ConnectionError) as err:
            log.error(
                "send frame to node %s throws error case: %r",
                conn.node.connection_endpoint(),
                err,
            )