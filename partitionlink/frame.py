"""Frames: the unit of data exchanged over a connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .protocol import (
    CURRENT_VERSION,
    MAGIC_PREFIX,
    MAX_PAYLOAD_LENGTH,
    Head,
    Header,
    Kind,
)

PREFIX_SIZE = 3

BytesLike = Union[bytes, bytearray, memoryview]


class MatchStatus(Enum):
    INCOMPLETE = "incomplete"
    MISS_MATCH = "miss_match"
    COMPLETE = "complete"


class MissMatchReason(Enum):
    NONE_MAGIC = "none_magic"
    INVALID_VERSION = "invalid_version"
    INVALID_KIND = "invalid_kind"
    INVALID_PAYLOAD = "invalid_payload"


@dataclass(frozen=True)
class FrameMatchResult:
    """Outcome of checking whether a buffer starts with a frame."""

    status: MatchStatus
    reason: Optional[MissMatchReason] = None
    detail: Optional[str] = None

    @classmethod
    def complete(cls) -> "FrameMatchResult":
        return cls(MatchStatus.COMPLETE)

    @classmethod
    def incomplete(cls, detail: str) -> "FrameMatchResult":
        return cls(MatchStatus.INCOMPLETE, detail=detail)

    @classmethod
    def miss_match(cls, reason: MissMatchReason) -> "FrameMatchResult":
        return cls(MatchStatus.MISS_MATCH, reason=reason)


@dataclass
class Frame:
    """A single frame: a header and up to 255 bytes of payload."""

    header: Header = field(default_factory=Header)
    payload: bytes = b""

    def __post_init__(self) -> None:
        self.payload = bytes(self.payload)
        if len(self.payload) > MAX_PAYLOAD_LENGTH:
            raise ValueError(
                f"payload of {len(self.payload)} bytes exceeds {MAX_PAYLOAD_LENGTH}"
            )

    @property
    def length(self) -> int:
        return len(self.payload)

    @classmethod
    def ping(cls) -> "Frame":
        return cls(Header(head=Head.FIN, kind=Kind.PING))

    @classmethod
    def pong(cls) -> "Frame":
        return cls(Header(head=Head.FIN, kind=Kind.PONG))

    def encode(self) -> bytes:
        return bytes((MAGIC_PREFIX, self.header.to_byte(), self.length)) + self.payload

    @classmethod
    def parse(cls, data: BytesLike) -> "Frame":
        """Decode the frame at the start of ``data``; the magic byte is not checked."""
        data = bytes(data)
        if len(data) < PREFIX_SIZE:
            raise ValueError("buffer too short for a frame header")
        header = Header.from_byte(data[1])
        length = data[2]
        end = PREFIX_SIZE + length
        if len(data) < end:
            raise ValueError("buffer too short for the frame payload")
        return cls(header=header, payload=data[PREFIX_SIZE:end])

    @classmethod
    def check(
        cls,
        data: BytesLike,
        check_version: bool = False,
        check_kind: bool = False,
    ) -> FrameMatchResult:
        """Tell whether ``data`` begins with a whole, well-formed frame."""
        data = bytes(data)
        if not data:
            return FrameMatchResult.incomplete("no_data")
        if data[0] != MAGIC_PREFIX:
            return FrameMatchResult.miss_match(MissMatchReason.NONE_MAGIC)

        if len(data) < 2:
            return FrameMatchResult.incomplete("header")
        header = Header.from_byte(data[1])
        if check_version and header.version.to_byte() != CURRENT_VERSION:
            return FrameMatchResult.miss_match(MissMatchReason.INVALID_VERSION)
        if check_kind and header.kind is Kind.UNKNOWN:
            return FrameMatchResult.miss_match(MissMatchReason.INVALID_KIND)

        if len(data) < PREFIX_SIZE:
            return FrameMatchResult.incomplete("length")
        length = data[2]
        if length > 0 and len(data) - PREFIX_SIZE < length:
            return FrameMatchResult.miss_match(MissMatchReason.INVALID_PAYLOAD)
        return FrameMatchResult.complete()

    def is_last(self) -> bool:
        return self.header.head is Head.FIN


def build_frames(kind: Kind, payload: BytesLike) -> list[Frame]:
    """Split ``payload`` into frames of ``kind``; only the last is marked FIN."""
    payload = bytes(payload)
    chunks = [
        payload[start:start + MAX_PAYLOAD_LENGTH]
        for start in range(0, len(payload), MAX_PAYLOAD_LENGTH)
    ]
    last = len(chunks) - 1
    return [
        Frame(
            header=Header(head=Head.FIN if i == last else Head.UNFIN, kind=kind),
            payload=chunk,
        )
        for i, chunk in enumerate(chunks)
    ]