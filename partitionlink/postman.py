"""In-process message routing between the runtime's tasks."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class Channel(Enum):
    """Named mailboxes a message can be delivered to."""

    DB_CMD_REQ = "db_cmd_req"
    RAFT_MSG = "raft_msg"
    RAFT_PROPOSAL = "raft_proposal"
    DISCOVER = "discover"


class LetterMessage(ABC):
    """A message that knows which channel it belongs to."""

    @abstractmethod
    def channel(self) -> Channel:
        """The channel this message is delivered on."""


class Postman:
    """Routes messages to a bounded queue per channel."""

    def __init__(self) -> None:
        self._channels: dict[Channel, asyncio.Queue] = {}

    def new_channel(self, channel: Channel, buf_size: int) -> Optional[asyncio.Queue]:
        """Register ``channel`` and return its queue, or None if already registered."""
        if buf_size < 1:
            raise ValueError("buffer size must be at least 1")
        if channel in self._channels:
            return None
        queue: asyncio.Queue = asyncio.Queue(maxsize=buf_size)
        self._channels[channel] = queue
        return queue

    async def send(self, message: LetterMessage) -> bool:
        """Deliver ``message``; False when its channel has no receiver."""
        queue = self._channels.get(message.channel())
        if queue is None:
            return False
        await queue.put(message)
        return True