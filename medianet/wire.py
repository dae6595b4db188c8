"""Encoding of primitive values and tags onto the end of a packet.

Fields are pushed onto the end of a packet and read back from the end,
each one followed by a tag that names it.  Integers are little endian.
"""

from __future__ import annotations

from .packet import Packet, PacketTag

VARINT_LIMIT = 1 << 60
_WIDTHS = (1, 2, 4, 8)
_TAGS_BY_CODE = {tag.code: tag for tag in PacketTag}

_DESCRIPTIONS = {
    PacketTag.HEADER_DATA: "magicData",
    PacketTag.HEADER_DATA_CRAZY: "magicData",
    PacketTag.HEADER_SYN: "magicSync",
    PacketTag.HEADER_SYN_CRAZY: "magicSync",
    PacketTag.HEADER_SYN_ACK: "magicSyncAck",
    PacketTag.HEADER_SYN_ACK_CRAZY: "magicSyncAck",
    PacketTag.HEADER_RST: "magicReset",
    PacketTag.HEADER_RST_CRAZY: "magicReset",
    PacketTag.SYNC: "sync",
    PacketTag.SYNC_ACK: "syncAck",
    PacketTag.RESET_RETRY: "resetRetry",
    PacketTag.RESET_REDIRECT: "resetRedirect",
    PacketTag.SHORT_NAME: "shortName",
    PacketTag.CLIENT_DATA: "clientData",
    PacketTag.RELAY_DATA: "relayData",
}


class DecodeError(ValueError):
    """A packet does not hold the field that was expected at its end."""


def _take(packet: Packet, count: int) -> bytes:
    if count > len(packet):
        raise DecodeError(f"need {count} bytes, packet holds {len(packet)}")
    return packet.pop(count)


def tag_from_byte(value: int) -> PacketTag:
    """Map a wire byte to its tag; unknown bytes give ``BAD_TAG``."""
    return _TAGS_BY_CODE.get(value, PacketTag.BAD_TAG)


def next_tag(packet: Packet) -> PacketTag:
    """The tag at the end of the packet, or ``NONE`` if it is empty."""
    if len(packet) == 0:
        return PacketTag.NONE
    return tag_from_byte(packet.peek(1)[0])


def push_tag(packet: Packet, tag: PacketTag) -> None:
    packet.push(bytes([tag.code]))


def pop_tag(packet: Packet) -> PacketTag:
    if len(packet) == 0:
        raise DecodeError("no tag in an empty packet")
    tag = next_tag(packet)
    packet.pop(1)
    return tag


def encode_uint(packet: Packet, value: int, width: int) -> None:
    """Push an unsigned integer of ``width`` bytes, little endian."""
    if width not in _WIDTHS:
        raise ValueError(f"unsupported integer width {width}")
    if not 0 <= value < (1 << (8 * width)):
        raise ValueError(f"{value} does not fit in {width} bytes")
    packet.push(value.to_bytes(width, "little"))


def decode_uint(packet: Packet, width: int) -> int:
    """Pop an unsigned integer of ``width`` bytes, little endian."""
    if width not in _WIDTHS:
        raise ValueError(f"unsupported integer width {width}")
    return int.from_bytes(_take(packet, width), "little")


def encode_varint(packet: Packet, value: int) -> None:
    """Push a variable length integer of 1, 2, 4 or 8 bytes.

    The last byte pushed carries the length prefix in its top bits.
    """
    if not 0 <= value < VARINT_LIMIT:
        raise ValueError(f"{value} is out of range for a varint")
    if value < (1 << 7):
        packet.push(bytes([value]))
    elif value < (1 << 14):
        packet.push(bytes([value & 0xFF, ((value >> 8) & 0x3F) | 0x80]))
    elif value < (1 << 29):
        low = (value & 0xFFFFFF).to_bytes(3, "little")
        packet.push(low + bytes([((value >> 24) & 0x1F) | 0xC0]))
    else:
        low = (value & 0xFFFFFFFFFFFFFF).to_bytes(7, "little")
        packet.push(low + bytes([((value >> 56) & 0x0F) | 0xE0]))


def decode_varint(packet: Packet) -> int:
    if len(packet) == 0:
        raise DecodeError("no varint in an empty packet")
    first = packet.peek(1)[0]
    if first & 0x80 == 0:
        return _take(packet, 1)[0] & 0x7F
    if first & 0xC0 == 0x80:
        size, mask = 2, 0x3F
    elif first & 0xE0 == 0xC0:
        size, mask = 4, 0x1F
    else:
        size, mask = 8, 0x0F
    data = bytearray(_take(packet, size))
    data[-1] &= mask
    return int.from_bytes(data, "little")


def encode_bytes(packet: Packet, data: bytes) -> None:
    """Push up to 255 bytes followed by their length."""
    if len(data) > 255:
        raise ValueError("byte strings are limited to 255 bytes")
    packet.push(bytes(data))
    packet.push(bytes([len(data)]))


def decode_bytes(packet: Packet) -> bytes:
    """Pop a length-prefixed byte string; an empty one is an error."""
    if len(packet) == 0:
        raise DecodeError("no byte string in an empty packet")
    size = packet.pop(1)[0]
    if size == 0:
        raise DecodeError("byte string has zero length")
    return _take(packet, size)


def encode_string(packet: Packet, text: str) -> None:
    encode_bytes(packet, text.encode("utf-8"))


def decode_string(packet: Packet) -> str:
    data = decode_bytes(packet)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("string is not valid UTF-8") from exc


def describe(packet: Packet) -> str:
    """List the tags found walking back from the end of the packet."""
    data = packet.buffer
    parts = []
    ptr = len(data) - 1
    while ptr >= 0:
        tag = tag_from_byte(data[ptr])
        ptr -= 1
        length = tag.length
        if length == 255 and ptr >= 2:
            length = (data[ptr] << 8) + data[ptr - 1]
            ptr -= 2
        ptr -= length
        label = _DESCRIPTIONS.get(tag)
        parts.append(f" {label}" if label else f" tag:{tag.code}({length})")
        if tag is PacketTag.NONE:
            break
    return "".join(parts)