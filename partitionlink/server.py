"""Node entry point: run the runtime until a shutdown signal arrives."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import itertools
import logging
import os
import signal
from typing import Any, Optional

from .commands import Command, ExecutableCommand, HashGetCmd, HashPutCmd
from .runtime import Runtime

log = logging.getLogger(__name__)

LOCAL_CMD_MODE_ENV = "LOCAL_CMD_MODE"
STATE_MAP_KEY = "UserConnectStateMap"
MEMBER_KEY = "jason"
DEFAULT_ROUNDS = 10
DEFAULT_INTERVAL = 5.0


async def _wait_for_shutdown_signal() -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(sig)
    try:
        await stop.wait()
        log.info("Got shutdown signal, stopping")
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


async def start_runtime(app: Any, stop: Optional[asyncio.Event] = None) -> None:
    """Start ``app`` and keep it running until ``stop`` is set or a signal arrives.

    All runtime tasks are cancelled on the way out; the first error a task
    ended with is raised.
    """
    tasks = await app.start()
    try:
        if stop is None:
            await _wait_for_shutdown_signal()
        else:
            await stop.wait()
    finally:
        for task in tasks:
            task.cancel()
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
    failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    if failures:
        raise failures[0]


async def _run_command(app: Any, inner: ExecutableCommand) -> Any:
    results: asyncio.Queue = asyncio.Queue(maxsize=1)
    try:
        delivered = await app.postman.send(Command(inner, results))
    except Exception:
        log.exception("Send command error")
        return None
    if not delivered:
        log.error("Send command error: no receiver for %s", inner)
        return None
    result = await results.get()
    log.debug("Execute command %s, got result => %r", inner, result)
    return result


async def execute_cmd(
    app: Any,
    server_task: asyncio.Task,
    rounds: int = DEFAULT_ROUNDS,
    interval: float = DEFAULT_INTERVAL,
) -> list[tuple[Any, Any]]:
    """Every ``interval`` seconds put a counter into the state map and read it back.

    Stops early once ``server_task`` has finished. Returns the (put, get)
    results of each round; a failed command yields its exception.
    """
    counter = itertools.count()
    outcomes: list[tuple[Any, Any]] = []
    for _ in range(rounds):
        await asyncio.sleep(interval)
        if server_task.done():
            break
        put = HashPutCmd(
            key=STATE_MAP_KEY,
            member_key=MEMBER_KEY,
            member_value=f"online: {next(counter)}",
        )
        put_result = await _run_command(app, put)
        get_result = await _run_command(app, HashGetCmd(key=STATE_MAP_KEY, member_key=MEMBER_KEY))
        outcomes.append((put_result, get_result))
    return outcomes


async def _local_cmd_mode(app: Runtime) -> None:
    server_task = asyncio.create_task(start_runtime(app), name="runtime")
    try:
        await execute_cmd(app, server_task)
    finally:
        if server_task.done():
            server_task.result()
        else:
            server_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await server_task


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="partitionlink-server",
        description="Run a cluster node until interrupted.",
    )
    parser.add_argument(
        "--local-cmd-mode",
        action="store_true",
        default=LOCAL_CMD_MODE_ENV in os.environ,
        help="also execute sample commands against the local node",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    app = Runtime.with_default_config()
    try:
        if args.local_cmd_mode:
            log.info("local command mode set, running server and executing commands")
            asyncio.run(_local_cmd_mode(app))
        else:
            log.info("running server only")
            asyncio.run(start_runtime(app))
    except KeyboardInterrupt:
        log.info("interrupted")
    return 0