from collections import deque

import pytest
from hypothesis import given, settings, strategies as st

from medianet.fragment import FragmentPipe
from medianet.messages import (
    ClientData,
    DataBlock,
    EncryptedDataBlock,
    NamedDataChunk,
    NetAck,
)
from medianet.names import ShortName
from medianet.packet import Packet
from medianet.pipes import Pipe, StatName
from medianet.wire import DecodeError

NAME = ShortName(1234, 12, 1, 77)
HEADER = b"HDR"


class Sink(Pipe):
    def __init__(self):
        super().__init__(None)
        self.sent = []
        self.inbox = deque()
        self.mtu = None

    def send(self, packet):
        self.sent.append(packet)
        return True

    def recv(self):
        return self.inbox.popleft() if self.inbox else None

    def update_mtu(self, mtu, pps):
        self.mtu = (mtu, pps)


def make_packet(payload, encrypted=False, name=NAME, seq=9):
    packet = Packet(HEADER, header_size=len(HEADER))
    packet.push(payload)
    packet.name = name
    if encrypted:
        EncryptedDataBlock(0, 0, len(payload)).encode(packet)
    else:
        DataBlock(0, len(payload)).encode(packet)
    NamedDataChunk(name, 5).encode(packet)
    ClientData(seq).encode(packet)
    return packet


def strip_client_data(packets):
    for packet in packets:
        ClientData.decode(packet)
    return packets


def test_small_packet_not_fragmented():
    sink = Sink()
    pipe = FragmentPipe(sink)
    packet = make_packet(b"hello")
    assert pipe.send(packet) is True
    assert sink.sent == [packet]


def test_fragments_carry_names_and_client_data():
    sink = Sink()
    pipe = FragmentPipe(sink, mtu=100)
    payload = bytes(range(200))
    pipe.send(make_packet(payload))
    assert len(sink.sent) == 3
    ids = []
    pieces = b""
    for frag in sink.sent:
        assert ClientData.decode(frag).client_seq_num == 9
        chunk = NamedDataChunk.decode(frag)
        ids.append(chunk.short_name.fragment_id)
        assert chunk.short_name.with_fragment(0) == NAME
        block = DataBlock.decode(frag)
        assert block.data_len == frag.payload_size
        assert frag.header == HEADER
        pieces += frag.payload
    assert ids == [2, 4, 7]
    assert pieces == payload


@pytest.mark.parametrize("encrypted", [False, True])
@pytest.mark.parametrize("order", [(0, 1, 2), (2, 0, 1), (1, 2, 0)])
def test_reassembly_in_any_order(encrypted, order):
    sender = Sink()
    FragmentPipe(sender, mtu=100).send(make_packet(bytes(range(200)), encrypted))
    frags = strip_client_data(sender.sent)
    receiver = FragmentPipe(Sink())
    results = [receiver.process_rx_packet(frags[i]) for i in order]
    assert results[:2] == [None, None]
    whole = results[2]
    chunk = NamedDataChunk.decode(whole)
    assert chunk.short_name == NAME
    assert whole.name == NAME
    block_type = EncryptedDataBlock if encrypted else DataBlock
    block = block_type.decode(whole)
    assert whole.payload == bytes(range(200))
    assert whole.header == HEADER
    assert receiver.pending_fragments == 0
    length = block.cipher_data_len if encrypted else block.data_len
    assert length == 200


@settings(max_examples=30, deadline=None)
@given(st.binary(min_size=1, max_size=1500), st.integers(min_value=60, max_value=600))
def test_round_trip_property(payload, mtu):
    sender = Sink()
    FragmentPipe(sender, mtu=mtu).send(make_packet(payload))
    receiver = FragmentPipe(Sink())
    results = [receiver.process_rx_packet(p) for p in strip_client_data(sender.sent)]
    assert all(r is None for r in results[:-1])
    whole = results[-1]
    assert NamedDataChunk.decode(whole).short_name == NAME
    DataBlock.decode(whole)
    assert whole.payload == payload


def test_unfragmented_packet_returned_intact():
    packet = make_packet(b"abc")
    ClientData.decode(packet)
    expected = bytes(packet.buffer)
    pipe = FragmentPipe(Sink())
    result = pipe.process_rx_packet(packet)
    assert result is packet
    assert bytes(result.buffer) == expected


def test_non_name_packet_passes_through():
    packet = Packet()
    NetAck(client_seq_num=4).encode(packet)
    result = FragmentPipe(Sink()).process_rx_packet(packet)
    assert result is packet
    assert NetAck.decode(result).client_seq_num == 4


def test_recv_reassembles_from_next_pipe():
    sender = Sink()
    FragmentPipe(sender, mtu=100).send(make_packet(bytes(150)))
    source = Sink()
    source.inbox.extend(strip_client_data(sender.sent))
    pipe = FragmentPipe(source)
    assert pipe.recv() is None
    whole = pipe.recv()
    NamedDataChunk.decode(whole)
    DataBlock.decode(whole)
    assert whole.payload == bytes(150)
    assert pipe.recv() is None


def test_missing_block_after_name_is_dropped():
    packet = Packet(b"xyz")
    NamedDataChunk(NAME.with_fragment(3), 0).encode(packet)
    assert FragmentPipe(Sink()).process_rx_packet(packet) is None


def test_send_without_block_raises():
    packet = Packet(bytes(300))
    NamedDataChunk(NAME, 0).encode(packet)
    ClientData(1).encode(packet)
    with pytest.raises(DecodeError):
        FragmentPipe(Sink(), mtu=100).send(packet)


def test_send_of_fragment_raises():
    packet = make_packet(bytes(300), name=NAME.with_fragment(2))
    with pytest.raises(ValueError):
        FragmentPipe(Sink(), mtu=100).send(packet)


def test_too_many_fragments_raises():
    sink = Sink()
    with pytest.raises(ValueError):
        FragmentPipe(sink, mtu=81).send(make_packet(bytes(56 * 63)))
    assert sink.sent == []


def test_minimum_fragment_payload():
    sink = Sink()
    FragmentPipe(sink, mtu=30).send(make_packet(bytes(112)))
    assert len(sink.sent) == 2
    for frag in strip_client_data(sink.sent):
        NamedDataChunk.decode(frag)
        assert DataBlock.decode(frag).data_len == 56


def test_update_stat_and_mtu():
    sink = Sink()
    pipe = FragmentPipe(sink)
    pipe.update_stat(StatName.MTU, 500)
    assert pipe.mtu == 500
    pipe.update_mtu(700, 25)
    assert pipe.mtu == 700
    assert sink.mtu == (700, 25)