"""A small client that connects to a node and exercises the frame protocol."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from .cmd_server import serve_connection
from .commands import Command, HelloCmd
from .config import DEFAULT_LISTEN_PORT
from .connection import Connection
from .frame import Frame

log = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
OUTBOX_SIZE = 10
SETTLE_DELAY = 1.0
PING_TIMES = 10
PING_INTERVAL = 1.0


async def hello_cmd_test(outbox: asyncio.Queue, times: int) -> None:
    """Queue ``times`` hello commands whose ``valid`` flag alternates, starting False."""
    valid = False
    for _ in range(times):
        command = Command(HelloCmd(valid=valid))
        valid = not valid
        frames = command.encode_to_frames()
        log.debug("frame count: %d", len(frames))
        await outbox.put(frames)


async def ping_test(outbox: asyncio.Queue, times: int, interval: float) -> None:
    """Queue ``times`` single ping frames, ``interval`` seconds apart."""
    for _ in range(times):
        log.debug("frame count: 1")
        await outbox.put([Frame.ping()])
        await asyncio.sleep(interval)


async def run(host: str = DEFAULT_HOST, port: int = DEFAULT_LISTEN_PORT) -> None:
    """Connect to a node, send a series of pings and disconnect."""
    conn = await Connection.open(host, port)
    outbox: asyncio.Queue = asyncio.Queue(maxsize=OUTBOX_SIZE)
    conn_task = asyncio.create_task(serve_connection(None, conn, outbox), name="client-conn")
    try:
        await asyncio.sleep(SETTLE_DELAY)
        await ping_test(outbox, PING_TIMES, PING_INTERVAL)
        await asyncio.sleep(SETTLE_DELAY)
    finally:
        conn_task.cancel()
        await asyncio.gather(conn_task, return_exceptions=True)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="partitionlink-client",
        description="Connect to a node and send ping frames.",
    )
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_LISTEN_PORT)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(run(args.host, args.port))
    except KeyboardInterrupt:
        log.info("interrupted")
    return 0