"""The command server: accepts framed connections and acts on what arrives."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from .commands import Command
from .config import Config
from .connection import Connection
from .frame import Frame, build_frames
from .protocol import CURRENT_VERSION, Kind

log = logging.getLogger(__name__)


class MessageKind(Enum):
    PING = "ping"
    PONG = "pong"
    CMD = "cmd"
    ERROR = "error"


@dataclass(frozen=True)
class ServerMessage:
    """A whole message assembled from one or more frames."""

    kind: MessageKind
    command: Optional[Command] = None
    error: Optional[str] = None


def _join_payloads(frames: Iterable[Frame]) -> bytes:
    return b"".join(frame.payload for frame in frames)


def parse_cmd(frames: Iterable[Frame]) -> Command:
    """Decode the command carried by the payloads of ``frames``."""
    payload = _join_payloads(frames)
    log.debug("before decode payload, payload=%r", payload)
    return Command.from_payload(payload)


def parse_error_message(frames: Iterable[Frame]) -> str:
    """Decode the error text carried by ``frames``; invalid UTF-8 is replaced."""
    return _join_payloads(frames).decode("utf-8", errors="replace")


async def read_message(conn: Connection) -> Optional[ServerMessage]:
    """Read frames until a whole message is assembled; None at end of stream.

    Raises ValueError when a frame carries a different protocol version.
    """
    frames: list[Frame] = []
    while True:
        frame = await conn.read_frame()
        if frame is None:
            return None
        if frame.header.version.to_byte() != CURRENT_VERSION:
            raise ValueError("incorrect protocol version")
        kind = frame.header.kind
        if kind is Kind.PING:
            return ServerMessage(MessageKind.PING)
        if kind is Kind.PONG:
            return ServerMessage(MessageKind.PONG)
        if kind is Kind.CMD:
            frames.append(frame)
            if frame.is_last():
                return ServerMessage(MessageKind.CMD, command=parse_cmd(frames))
        elif kind is Kind.ERROR:
            frames.append(frame)
            if frame.is_last():
                return ServerMessage(MessageKind.ERROR, error=parse_error_message(frames))
        else:
            log.warning("cannot parse frame, from=%s, kind=%s", conn.peer_addr, kind)


async def reply_error(conn: Connection, error: BaseException) -> None:
    """Send ``error`` back to the peer as ERROR frames, if the connection is open."""
    if not conn.is_open():
        return
    frames = build_frames(Kind.ERROR, str(error).encode("utf-8"))
    await conn.write_frames(frames)


async def handle_message(conn: Connection, message: ServerMessage, app: Any) -> None:
    """Act on one message: answer pings, route or execute commands, log the rest."""
    if message.kind is MessageKind.PING:
        log.debug("received PING, from=%s", conn.peer_addr)
        if conn.is_open():
            await conn.write_frames([Frame.pong()])
    elif message.kind is MessageKind.PONG:
        log.debug("received PONG, from=%s", conn.peer_addr)
    elif message.kind is MessageKind.CMD:
        command = message.command
        log.info("received command: from=%s, command=%s", conn.peer_addr, command)
        if command.inner.is_raft_cmd():
            if app is not None:
                try:
                    await app.postman.send(command)
                except Exception:
                    log.exception("failed to queue the command for the cluster")
        else:
            await command.execute(app, None)
    else:
        log.warning(
            "received error response: from=%s, error=%s", conn.peer_addr, message.error
        )


async def _try_reply_error(conn: Connection, error: BaseException) -> None:
    try:
        await reply_error(conn, error)
    except (OSError, ConnectionError) as reply_err:
        log.error("reply to client failed: %r", reply_err)


async def serve_connection(
    app: Any,
    conn: Connection,
    outbox: Optional[asyncio.Queue] = None,
) -> None:
    """Serve ``conn`` until the peer goes away or an error ends it.

    Frame lists put on ``outbox`` are written to the peer as they arrive.
    The connection is closed on return.
    """

    async def _reading() -> None:
        while True:
            try:
                message = await read_message(conn)
            except Exception as err:
                log.error("read command error: %r", err)
                await _try_reply_error(conn, err)
                return
            if message is None:
                return
            try:
                await handle_message(conn, message, app)
            except Exception as err:
                log.error("handle command error: %r", err)
                await _try_reply_error(conn, err)

    async def _writing() -> None:
        while True:
            frames = await outbox.get()
            try:
                await conn.write_frames(frames)
            except (OSError, ConnectionError) as err:
                log.error("send frames error: %r", err)
                return
            log.debug("sent frame count: %d", len(frames))

    tasks = [asyncio.create_task(_reading())]
    if outbox is not None:
        tasks.append(asyncio.create_task(_writing()))
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        with contextlib.suppress(OSError, ConnectionError):
            await conn.close()


async def start_cmd_server(app: Any, cfg: Config) -> asyncio.Task:
    """Listen on the configured address and serve each client connection.

    Cancelling the returned task stops the server and all its connections.
    """
    handlers: set[asyncio.Task] = set()

    async def _serve(conn: Connection) -> None:
        log.info("new connect %s", conn.peer_addr)
        try:
            await serve_connection(app, conn)
        finally:
            log.info("disconnect %s", conn.peer_addr)

    def _on_client(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        conn = Connection(reader, writer)
        log.info("Accept new conn %s", conn.peer_addr)
        task = asyncio.create_task(_serve(conn))
        handlers.add(task)
        task.add_done_callback(handlers.discard)

    server = await asyncio.start_server(_on_client, cfg.listen_addr, cfg.listen_port)
    log.info("Command server listening at: %s:%s", cfg.listen_addr, cfg.listen_port)

    async def _run() -> None:
        try:
            await server.serve_forever()
        finally:
            pending = list(handlers)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            server.close()
            with contextlib.suppress(OSError):
                await server.wait_closed()
            log.info("Command server loop stop")

    return asyncio.create_task(_run(), name="cmd-server")