"""Wire-level building blocks of the frame header.

A frame on the wire is laid out as::

    MAGIC(8) + HEAD(1) + VERSION(3) + KIND(4) + LENGTH(8) + PAYLOAD...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

MAGIC_PREFIX = 0xFF
CURRENT_VERSION = 1
MAX_PAYLOAD_LENGTH = 255

HEAD_BITS = 1
VERSION_BITS = 3
KIND_BITS = 4
HEADER_BITS = 8


def _check_byte(byte: int) -> int:
    if not 0 <= byte <= 0xFF:
        raise ValueError(f"not a byte value: {byte}")
    return byte


class Head(Enum):
    """Whether a frame is the last one of a message."""

    UNFIN = 0b0
    FIN = 0b1

    def to_byte(self) -> int:
        return self.value

    @classmethod
    def from_byte(cls, byte: int) -> "Head":
        return cls.UNFIN if byte == 0 else cls.FIN


class Kind(Enum):
    """The type of a frame."""

    PING = 0b0000
    PONG = 0b0001
    CMD = 0b0010
    ERROR = 0b1110
    UNKNOWN = 0b1111

    def to_byte(self) -> int:
        return self.value

    @classmethod
    def from_byte(cls, byte: int) -> "Kind":
        return _KIND_BY_BYTE.get(byte, cls.UNKNOWN)


_KIND_BY_BYTE = {
    Kind.PING.value: Kind.PING,
    Kind.PONG.value: Kind.PONG,
    Kind.CMD.value: Kind.CMD,
}


@dataclass(frozen=True)
class Version:
    """Protocol version number carried in the header."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError("version can not be negative")
        if self.value > 8:
            raise ValueError("version can not be greater than 8")

    def to_byte(self) -> int:
        return self.value

    @classmethod
    def from_byte(cls, byte: int) -> "Version":
        return cls(byte)


@dataclass
class Header:
    """The single header byte: head flag, version and kind."""

    head: Head = Head.FIN
    version: Version = field(default_factory=lambda: Version(CURRENT_VERSION))
    kind: Kind = Kind.CMD

    def to_byte(self) -> int:
        head_shift = HEADER_BITS - HEAD_BITS
        version_shift = head_shift - VERSION_BITS
        kind_mask = (1 << KIND_BITS) - 1
        byte = (self.head.to_byte() << head_shift) & 0xFF
        byte |= (self.version.to_byte() << version_shift) & 0xFF
        byte |= self.kind.to_byte() & kind_mask
        return byte

    @classmethod
    def from_byte(cls, byte: int) -> "Header":
        _check_byte(byte)
        head_shift = HEADER_BITS - HEAD_BITS
        version_shift = HEADER_BITS - VERSION_BITS
        kind_shift = HEADER_BITS - KIND_BITS
        head = Head.from_byte(byte >> head_shift)
        version = Version(((byte << HEAD_BITS) & 0xFF) >> version_shift)
        kind = Kind.from_byte(((byte << (HEAD_BITS + VERSION_BITS)) & 0xFF) >> kind_shift)
        return cls(head=head, version=version, kind=kind)