"""Framed TCP connections between nodes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Iterable, Optional

from .frame import Frame, MatchStatus, MissMatchReason
from .node import Node

log = logging.getLogger(__name__)

READ_CHUNK = 4096


def _format_peer(peer: Any) -> str:
    if isinstance(peer, tuple) and len(peer) >= 2:
        host, port = peer[0], peer[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return "" if peer is None else str(peer)


class Connection:
    """Reads and writes frames over a stream pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._buffer = bytearray()
        self._read_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self.peer_addr = _format_peer(writer.get_extra_info("peername"))

    @classmethod
    async def open(cls, host: str, port: int) -> "Connection":
        reader, writer = await asyncio.open_connection(host, port)
        return cls(reader, writer)

    def is_open(self) -> bool:
        return not self._writer.is_closing()

    def parse_frame(self) -> Optional[Frame]:
        """Take one whole frame off the read buffer, if one is there.

        A buffer that does not start with the magic byte is discarded.
        """
        result = Frame.check(self._buffer)
        if result.status is MatchStatus.COMPLETE:
            frame = Frame.parse(self._buffer)
            del self._buffer[: len(frame.encode())]
            log.debug("got frame %r", frame)
            return frame
        if result.status is MatchStatus.MISS_MATCH:
            log.debug("miss match: reason=%s", result.reason)
            if result.reason is MissMatchReason.NONE_MAGIC:
                self._buffer.clear()
        else:
            log.debug("incomplete, reason=%s", result.detail)
        return None

    async def read_frame(self) -> Optional[Frame]:
        """Read the next frame; None at a clean end of stream.

        Raises ConnectionResetError when the stream ends in the middle of a frame.
        """
        async with self._read_lock:
            while True:
                frame = self.parse_frame()
                if frame is not None:
                    return frame
                data = await self._reader.read(READ_CHUNK)
                if not data:
                    if not self._buffer:
                        return None
                    raise ConnectionResetError("connection reset by peer")
                self._buffer.extend(data)

    async def write_frames(self, frames: Iterable[Frame]) -> None:
        async with self._write_lock:
            for frame in frames:
                self._writer.write(frame.encode())
            await self._writer.drain()

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        with contextlib.suppress(OSError, ConnectionError):
            await self._writer.wait_closed()


class NodeConnection(Connection):
    """A connection to a known cluster node."""

    def __init__(
        self,
        node: Node,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        super().__init__(reader, writer)
        self.node = node