"""The in-memory key/value store and the task that feeds it commands."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from .commands import Command

log = logging.getLogger(__name__)


@dataclass
class Database:
    """Maps string keys to database values."""

    entries: dict[str, Any] = field(default_factory=dict)

    def set(self, key: str, value: Any) -> None:
        self.entries[key] = value

    def get(self, key: str) -> Optional[Any]:
        return self.entries.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)


def start_db_cmd_channel(app: Any, db: Database, queue: asyncio.Queue) -> asyncio.Task:
    """Run commands arriving on ``queue`` against ``db`` until the task is cancelled.

    Each command's result is handed back through the command's own result queue.
    Messages that are not commands are ignored.
    """

    async def _loop() -> None:
        log.info("Database channel thread startup")
        try:
            while True:
                message = await queue.get()
                if not isinstance(message, Command):
                    continue
                try:
                    await message.execute_and_send(app, db)
                except Exception:
                    log.exception("Execute command error")
                else:
                    log.debug("Command executed: %s", message.inner)
        finally:
            log.info("Database channel loop stop")

    return asyncio.create_task(_loop(), name="db-cmd-channel")