"""Packet buffer and the tags that label the fields stacked on it."""

from __future__ import annotations

import copy
from enum import Enum
from typing import Optional, Tuple

from .names import ShortName

Address = Tuple[str, int]


def _tag(code: int, length: int) -> int:
    return (code << 8) | length


class PacketTag(Enum):
    """Tag written after each field; the high byte is the wire code, the low
    byte the fixed number of payload bytes that precede it (0 if variable)."""

    NONE = 0
    SYNC = _tag(1, 0)
    SYNC_ACK = _tag(2, 16)
    RESET = _tag(3, 4)
    RESET_RETRY = _tag(4, 4)
    RESET_REDIRECT = _tag(5, 0)
    SUBSCRIBE = _tag(6, 0)
    CLIENT_DATA = _tag(7, 4)
    NACK = _tag(8, 4)
    RATE = _tag(9, 0)
    ACK = _tag(10, 16)
    RELAY_DATA = _tag(11, 8)
    SHORT_NAME = _tag(12, 18)
    DATA_BLOCK = _tag(13, 0)
    ENC_DATA_BLOCK = _tag(14, 0)
    HEADER_DATA = _tag(15, 0)
    HEADER_SYN = _tag(16, 0)
    HEADER_SYN_ACK = _tag(17, 0)
    HEADER_RST = _tag(18, 0)
    HEADER_DATA_CRAZY = _tag(19, 0)
    HEADER_RST_CRAZY = _tag(20, 0)
    HEADER_SYN_CRAZY = _tag(21, 0)
    HEADER_SYN_ACK_CRAZY = _tag(22, 0)
    HEADER = _tag(23, 4)
    BAD_TAG = _tag(126, 0)

    @property
    def code(self) -> int:
        """The single byte that represents this tag on the wire."""
        return self.value >> 8

    @property
    def length(self) -> int:
        """Fixed payload length announced by the tag."""
        return self.value & 0xFF


class Packet:
    """A byte buffer used as a stack: fields are pushed onto and popped off its end.

    The first ``header_size`` bytes form the transport header; the bytes after
    them are the payload.
    """

    def __init__(self, data: bytes = b"", header_size: int = 0) -> None:
        self.buffer = bytearray(data)
        if not 0 <= header_size <= len(self.buffer):
            raise ValueError("header size outside of the buffer")
        self.header_size = header_size
        self.name = ShortName()
        self.src: Optional[Address] = None
        self.dst: Optional[Address] = None
        self.priority = 1
        self.fec = False
        self.reliable = False
        self.path_token = 0

    def __len__(self) -> int:
        return len(self.buffer)

    def __repr__(self) -> str:
        return (
            f"Packet(name={self.name}, size={len(self.buffer)}, "
            f"header_size={self.header_size})"
        )

    @property
    def payload_size(self) -> int:
        """Number of bytes after the header."""
        return len(self.buffer) - self.header_size

    @property
    def header(self) -> bytes:
        return bytes(self.buffer[: self.header_size])

    @property
    def payload(self) -> bytes:
        return bytes(self.buffer[self.header_size:])

    @payload.setter
    def payload(self, data: bytes) -> None:
        self.buffer[self.header_size:] = data

    def push(self, data: bytes) -> None:
        """Append bytes to the end of the buffer."""
        self.buffer += data

    def pop(self, count: int = 1) -> bytes:
        """Remove and return the last ``count`` bytes, in buffer order."""
        if count < 0:
            raise ValueError("count must not be negative")
        if count > len(self.buffer):
            raise IndexError(f"cannot pop {count} bytes from {len(self.buffer)}")
        if count == 0:
            return b""
        data = bytes(self.buffer[-count:])
        del self.buffer[-count:]
        return data

    def peek(self, count: int = 1) -> bytes:
        """Return the last ``count`` bytes without removing them."""
        if count < 0:
            raise ValueError("count must not be negative")
        if count > len(self.buffer):
            raise IndexError(f"cannot peek {count} bytes from {len(self.buffer)}")
        return bytes(self.buffer[len(self.buffer) - count:])

    def resize(self, size: int) -> None:
        """Set the payload length, truncating or padding with zero bytes."""
        if size < 0:
            raise ValueError("size must not be negative")
        target = self.header_size + size
        if target < len(self.buffer):
            del self.buffer[target:]
        else:
            self.buffer += bytes(target - len(self.buffer))

    def clone(self) -> Packet:
        """Return an independent copy of this packet."""
        return copy.deepcopy(self)

    def set_frag_id(self, fragment: int, last: bool) -> None:
        """Mark this packet as fragment number ``fragment``.

        Fragment 0 means the packet is whole; numbered fragments carry
        ``fragment * 2`` plus one when they are the last of their packet.
        """
        if not 0 <= fragment < 128:
            raise ValueError("fragment number must be between 0 and 127")
        fragment_id = 0 if fragment == 0 else fragment * 2 + int(bool(last))
        self.name = self.name.with_fragment(fragment_id)