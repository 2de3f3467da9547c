"""Node configuration."""

from __future__ import annotations

import hashlib
import os
import uuid
from dataclasses import dataclass, field

LISTEN_PORT_ENV = "PL_LISTEN_PORT"
DEFAULT_LISTEN_PORT = 7111


@dataclass
class RaftConfig:
    """Settings handed to the consensus layer."""

    id: int = 0
    election_tick: int = 10
    heartbeat_tick: int = 3


def new_node_id() -> int:
    """Derive a random 64-bit node identifier from a fresh UUID."""
    digest = hashlib.blake2b(str(uuid.uuid4()).encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def _default_listen_port() -> int:
    raw = os.environ.get(LISTEN_PORT_ENV)
    if raw is None:
        return DEFAULT_LISTEN_PORT
    try:
        return int(raw, 10)
    except ValueError as err:
        raise ValueError(f"invalid {LISTEN_PORT_ENV} value: {raw!r}") from err


@dataclass
class Config:
    """Runtime settings of a node. Durations are in seconds."""

    node_id: int = field(default_factory=new_node_id)
    disc_multicast_group: str = "224.0.0.1"
    disc_multicast_port: int = 54123
    disc_multicast_interval: float = 10.0
    # how long a discovered node stays alive without a fresh ping
    disc_multicast_ttl: float = 30.0
    # how often expired nodes are pruned
    disc_multicast_ttl_check_interval: float = 10.0
    listen_port: int = field(default_factory=_default_listen_port)
    listen_addr: str = "0.0.0.0"
    raft_config: RaftConfig = field(default_factory=RaftConfig)
    raft_loop_interval: float = 1.0

    def __post_init__(self) -> None:
        self.raft_config.id = self.node_id