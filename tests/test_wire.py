import pytest
from hypothesis import given
from hypothesis import strategies as st

from medianet.packet import Packet, PacketTag
from medianet.wire import (
    VARINT_LIMIT,
    DecodeError,
    decode_bytes,
    decode_string,
    decode_uint,
    decode_varint,
    describe,
    encode_bytes,
    encode_string,
    encode_uint,
    encode_varint,
    next_tag,
    pop_tag,
    push_tag,
    tag_from_byte,
)


def test_uint_is_little_endian():
    packet = Packet()
    encode_uint(packet, 0x0102, 2)
    assert bytes(packet.buffer) == b"\x02\x01"


@given(st.sampled_from([1, 2, 4, 8]), st.data())
def test_uint_round_trip(width, data):
    value = data.draw(st.integers(0, (1 << (8 * width)) - 1))
    packet = Packet(b"keep")
    encode_uint(packet, value, width)
    assert len(packet) == 4 + width
    assert decode_uint(packet, width) == value
    assert bytes(packet.buffer) == b"keep"


def test_uint_range_and_width_checked():
    with pytest.raises(ValueError):
        encode_uint(Packet(), 256, 1)
    with pytest.raises(ValueError):
        encode_uint(Packet(), 1, 3)


def test_decode_uint_short_packet():
    with pytest.raises(DecodeError):
        decode_uint(Packet(b"\x01\x02"), 4)


def test_fields_decode_in_reverse_order():
    packet = Packet()
    encode_uint(packet, 7, 4)
    encode_uint(packet, 9, 8)
    assert decode_uint(packet, 8) == 9
    assert decode_uint(packet, 4) == 7


@pytest.mark.parametrize(
    "value, size",
    [(0, 1), (127, 1), (128, 2), ((1 << 14) - 1, 2), (1 << 14, 4),
     ((1 << 29) - 1, 4), (1 << 29, 8), (VARINT_LIMIT - 1, 8)],
)
def test_varint_sizes(value, size):
    packet = Packet()
    encode_varint(packet, value)
    assert len(packet) == size
    assert decode_varint(packet) == value
    assert len(packet) == 0


@given(st.integers(0, VARINT_LIMIT - 1))
def test_varint_round_trip(value):
    packet = Packet(b"\x99")
    encode_varint(packet, value)
    assert decode_varint(packet) == value
    assert bytes(packet.buffer) == b"\x99"


def test_varint_range_checked():
    with pytest.raises(ValueError):
        encode_varint(Packet(), VARINT_LIMIT)
    with pytest.raises(ValueError):
        encode_varint(Packet(), -1)
    with pytest.raises(DecodeError):
        decode_varint(Packet())


@given(st.binary(min_size=1, max_size=255))
def test_bytes_round_trip(data):
    packet = Packet()
    encode_bytes(packet, data)
    assert packet.peek(1)[0] == len(data)
    assert decode_bytes(packet) == data
    assert len(packet) == 0


def test_bytes_errors():
    with pytest.raises(ValueError):
        encode_bytes(Packet(), bytes(256))
    packet = Packet()
    encode_bytes(packet, b"")
    with pytest.raises(DecodeError):
        decode_bytes(packet)
    with pytest.raises(DecodeError):
        decode_bytes(Packet(b"\x05ab"[::-1]))


def test_string_round_trip():
    packet = Packet()
    encode_string(packet, "localhost")
    assert decode_string(packet) == "localhost"


def test_invalid_utf8_string():
    packet = Packet()
    encode_bytes(packet, b"\xff\xfe")
    with pytest.raises(DecodeError):
        decode_string(packet)


@pytest.mark.parametrize("tag", list(PacketTag))
def test_tag_round_trip(tag):
    packet = Packet()
    push_tag(packet, tag)
    assert len(packet) == 1
    assert next_tag(packet) is tag
    assert pop_tag(packet) is tag
    assert len(packet) == 0


def test_tag_bytes_are_distinct_and_below_127():
    seen = set()
    for tag in PacketTag:
        packet = Packet()
        push_tag(packet, tag)
        seen.add(packet.peek(1)[0])
    assert len(seen) == len(PacketTag)
    assert max(seen) < 127


def test_next_tag_of_empty_packet_is_none():
    assert next_tag(Packet()) is PacketTag.NONE
    with pytest.raises(DecodeError):
        pop_tag(Packet())


def test_unknown_byte_is_bad_tag():
    assert tag_from_byte(200) is PacketTag.BAD_TAG
    packet = Packet()
    push_tag(packet, PacketTag.ACK)
    assert tag_from_byte(packet.peek(1)[0]) is PacketTag.ACK


def test_describe_client_data():
    packet = Packet()
    encode_uint(packet, 42, 4)
    push_tag(packet, PacketTag.CLIENT_DATA)
    assert describe(packet) == " clientData"


def test_describe_stops_at_none_tag():
    packet = Packet(b"\xaa\xbb")
    push_tag(packet, PacketTag.NONE)
    encode_uint(packet, 1, 8)
    encode_uint(packet, 2, 4)
    push_tag(packet, PacketTag.RELAY_DATA)
    assert describe(packet).startswith(" relayData")
    assert describe(packet).endswith("(0)")
    assert describe(packet).count(" ") == 2