"""Commands that can be sent to a node, and their wire encoding."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Optional

import msgpack

from .dbvalue import format_value, from_wire, to_wire
from .frame import Frame, build_frames
from .postman import Channel, LetterMessage
from .protocol import Kind
from .timeutil import now_ts

if TYPE_CHECKING:
    from .database import Database

Cmd = tuple[str, dict]


class CommandType(Enum):
    READ = "read"
    WRITE = "write"


class _Missing(Enum):
    MISSING = "missing"

    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = _Missing.MISSING
"""Marks a hash put that carries no member value at all."""


class ExecutableCommand(ABC):
    """Base of every command a node can execute."""

    cmd_type: ClassVar[CommandType] = CommandType.READ

    @abstractmethod
    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        """Run the command and return its result value, if any."""

    @abstractmethod
    def to_cmd(self) -> Cmd:
        """The wire form of the command: a name and its fields."""

    def is_raft_cmd(self) -> bool:
        return isinstance(self, RaftCmd)

    def is_write_type(self) -> bool:
        return self.cmd_type is CommandType.WRITE

    def is_read_type(self) -> bool:
        return self.cmd_type is CommandType.READ

    def is_valid(self) -> bool:
        return not isinstance(self, InvalidCommand)


@dataclass(frozen=True)
class HelloCmd(ExecutableCommand):
    valid: bool = False

    cmd_type: ClassVar[CommandType] = CommandType.READ

    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        return None

    def to_cmd(self) -> Cmd:
        return ("hello", {"valid": self.valid})

    def __str__(self) -> str:
        return f"Hello:{'true' if self.valid else 'false'}"


@dataclass(frozen=True)
class HashGetCmd(ExecutableCommand):
    key: str
    member_key: str

    cmd_type: ClassVar[CommandType] = CommandType.READ

    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        if db is None:
            return None
        value = db.get(self.key)
        if isinstance(value, dict):
            return value.get(self.member_key)
        return None

    def to_cmd(self) -> Cmd:
        return ("hash_get", {"key": self.key, "member_key": self.member_key})

    def __str__(self) -> str:
        return f"HashGet {self.key}"


@dataclass(frozen=True)
class HashPutCmd(ExecutableCommand):
    key: str
    member_key: str
    member_value: Any = NO_VALUE

    cmd_type: ClassVar[CommandType] = CommandType.WRITE

    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        """Store the member and return the value it replaced."""
        if db is None or self.member_value is NO_VALUE:
            return None
        if self.key not in db:
            db.set(self.key, {self.member_key: self.member_value})
            return None
        existing = db.get(self.key)
        if not isinstance(existing, dict):
            raise ValueError(
                f"Mismatch DBValue type, required Hash but got {format_value(existing)}"
            )
        old = existing.get(self.member_key)
        existing[self.member_key] = self.member_value
        return old

    def to_cmd(self) -> Cmd:
        fields: dict[str, Any] = {"key": self.key, "member_key": self.member_key}
        if self.member_value is not NO_VALUE:
            fields["member_value"] = to_wire(self.member_value)
        return ("hash_put", fields)

    def __str__(self) -> str:
        if self.member_value is NO_VALUE:
            return f"HashPut {self.key} None"
        return f"HashPut {self.key} {format_value(self.member_value)}"


@dataclass(frozen=True)
class RaftCmd(ExecutableCommand):
    """Carries a serialized consensus message between nodes."""

    body: bytes = b""

    cmd_type: ClassVar[CommandType] = CommandType.WRITE

    def __post_init__(self) -> None:
        object.__setattr__(self, "body", bytes(self.body))

    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        return None

    def to_cmd(self) -> Cmd:
        return ("raft", {"body": self.body})

    def __str__(self) -> str:
        return "RaftCmd"


@dataclass(frozen=True)
class InvalidCommand(ExecutableCommand):
    """Stands in for anything that could not be decoded."""

    cmd_type: ClassVar[CommandType] = CommandType.READ

    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        return None

    def to_cmd(self) -> Cmd:
        raise ValueError("InvalidCommand cannot to cmd")

    def __str__(self) -> str:
        return "Invalid"


def _str_field(fields: dict, name: str) -> str:
    value = fields.get(name)
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _decode_hello(fields: dict) -> ExecutableCommand:
    valid = fields.get("valid", False)
    if not isinstance(valid, bool):
        raise ValueError("field 'valid' must be a boolean")
    return HelloCmd(valid=valid)


def _decode_hash_get(fields: dict) -> ExecutableCommand:
    return HashGetCmd(key=_str_field(fields, "key"), member_key=_str_field(fields, "member_key"))


def _decode_hash_put(fields: dict) -> ExecutableCommand:
    member_value: Any = NO_VALUE
    if "member_value" in fields:
        raw = fields["member_value"]
        if not isinstance(raw, bytes):
            raise ValueError("field 'member_value' must be bytes")
        member_value = from_wire(raw)
    return HashPutCmd(
        key=_str_field(fields, "key"),
        member_key=_str_field(fields, "member_key"),
        member_value=member_value,
    )


def _decode_raft(fields: dict) -> ExecutableCommand:
    body = fields.get("body", b"")
    if not isinstance(body, bytes):
        raise ValueError("field 'body' must be bytes")
    return RaftCmd(body=body)


_DECODERS: dict[str, Callable[[dict], ExecutableCommand]] = {
    "hello": _decode_hello,
    "hash_put": _decode_hash_put,
    "hash_get": _decode_hash_get,
    "raft": _decode_raft,
}


def parse_proto_command(cmd: Cmd) -> ExecutableCommand:
    """Build the command described by a wire ``(name, fields)`` pair."""
    name, fields = cmd
    if not isinstance(fields, dict):
        raise ValueError("command fields must be a mapping")
    decoder = _DECODERS.get(name) if isinstance(name, str) else None
    if decoder is None:
        raise ValueError(f"unknown command: {name!r}")
    return decoder(fields)


class Command(LetterMessage):
    """A command together with the queue its result is reported on."""

    def __init__(
        self,
        inner: ExecutableCommand,
        tx: Optional[asyncio.Queue] = None,
    ) -> None:
        self.inner = inner
        self.tx = tx

    async def execute(self, app: Any, db: Optional["Database"]) -> Any:
        return await self.inner.execute(app, db)

    async def send(self, value: Any) -> None:
        """Report ``value`` (a result or an exception) to whoever waits for it."""
        if self.tx is not None:
            await self.tx.put(value)

    async def execute_and_send(self, app: Any, db: Optional["Database"]) -> None:
        """Execute and report the outcome; a failure is reported as the exception."""
        try:
            result = await self.execute(app, db)
        except Exception as err:
            result = err
        await self.send(result)

    def encode_to_payload(self) -> bytes:
        seconds, millis = divmod(now_ts(), 1000)
        message = {
            "ts": {"seconds": seconds, "nanos": millis * 1_000_000},
            "cmd": list(self.inner.to_cmd()),
        }
        return msgpack.packb(message, use_bin_type=True)

    def encode_to_frames(self) -> list[Frame]:
        return build_frames(Kind.CMD, self.encode_to_payload())

    @classmethod
    def from_payload(cls, data: bytes) -> "Command":
        """Decode a payload; anything undecodable becomes an invalid command."""
        try:
            message = msgpack.unpackb(bytes(data), raw=False)
            cmd = message.get("cmd") if isinstance(message, dict) else None
            if not isinstance(cmd, list) or len(cmd) != 2:
                return cls(InvalidCommand())
            return cls(parse_proto_command((cmd[0], cmd[1])))
        except (ValueError, TypeError, msgpack.UnpackException):
            return cls(InvalidCommand())

    @classmethod
    def from_name(cls, name: str) -> "Command":
        if name == "hello":
            return cls(HelloCmd(valid=True))
        return cls(InvalidCommand())

    def channel(self) -> Channel:
        if self.inner.is_raft_cmd():
            return Channel.RAFT_MSG
        return Channel.DB_CMD_REQ

    def __str__(self) -> str:
        return str(self.inner)

    def __repr__(self) -> str:
        return f"Command({self.inner!r})"


@dataclass(frozen=True)
class ProposalCommand(LetterMessage):
    """A command proposed to the consensus group."""

    command: Command

    def channel(self) -> Channel:
        return Channel.RAFT_PROPOSAL