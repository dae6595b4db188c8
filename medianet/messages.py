"""Protocol messages and how they are stacked onto the end of a packet.

Each message pushes its fields followed by its tag, so a packet is read
from the end: the tag tells which message comes next, and the message's
fields are popped in the reverse of the order they were pushed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .names import ShortName
from .packet import Packet, PacketTag
from .wire import (
    DecodeError,
    decode_string,
    decode_uint,
    decode_varint,
    encode_string,
    encode_uint,
    encode_varint,
    next_tag,
    pop_tag,
    push_tag,
)


def _expect(packet: Packet, tag: PacketTag, what: str) -> None:
    """Pop ``tag`` from the end of ``packet`` or raise ``DecodeError``."""
    found = next_tag(packet)
    if found is not tag:
        raise DecodeError(f"expected {what} ({tag.name}), found {found.name}")
    pop_tag(packet)


def encode_short_name(packet: Packet, name: ShortName) -> None:
    """Push the 18 bytes of a short name followed by its tag."""
    encode_uint(packet, name.fragment_id, 1)
    encode_uint(packet, name.media_time, 4)
    encode_uint(packet, name.source_id, 1)
    encode_uint(packet, name.sender_id, 4)
    encode_uint(packet, name.resource_id, 8)
    push_tag(packet, PacketTag.SHORT_NAME)


def decode_short_name(packet: Packet) -> ShortName:
    """Pop a short name and its tag from the end of the packet."""
    _expect(packet, PacketTag.SHORT_NAME, "short name")
    resource_id = decode_uint(packet, 8)
    sender_id = decode_uint(packet, 4)
    source_id = decode_uint(packet, 1)
    media_time = decode_uint(packet, 4)
    fragment_id = decode_uint(packet, 1)
    return ShortName(resource_id, sender_id, source_id, media_time, fragment_id)


@dataclass
class Header:
    """Transport header: the kind of packet and the path token."""

    tag: PacketTag = PacketTag.HEADER_DATA
    path_token: int = 0

    def encode(self, packet: Packet) -> None:
        push_tag(packet, self.tag)
        encode_uint(packet, self.path_token, 4)
        push_tag(packet, PacketTag.HEADER)

    @classmethod
    def decode(cls, packet: Packet) -> Header:
        _expect(packet, PacketTag.HEADER, "message header")
        path_token = decode_uint(packet, 4)
        tag = pop_tag(packet)
        return cls(tag=tag, path_token=path_token)


@dataclass
class NetSyncReq:
    """Connection request sent by a client."""

    cookie: int = 0
    origin: str = ""
    sender_id: int = 0
    client_time_ms: int = 0
    supported_features_vec: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.supported_features_vec, 8)
        encode_uint(packet, self.client_time_ms, 8)
        encode_uint(packet, self.sender_id, 4)
        encode_string(packet, self.origin)
        encode_uint(packet, self.cookie, 4)
        push_tag(packet, PacketTag.SYNC)

    @classmethod
    def decode(cls, packet: Packet) -> NetSyncReq:
        _expect(packet, PacketTag.SYNC, "sync")
        cookie = decode_uint(packet, 4)
        origin = decode_string(packet)
        sender_id = decode_uint(packet, 4)
        client_time_ms = decode_uint(packet, 8)
        supported_features_vec = decode_uint(packet, 8)
        return cls(cookie, origin, sender_id, client_time_ms, supported_features_vec)


@dataclass
class NetSyncAck:
    """Server reply accepting a connection request."""

    server_time_ms: int = 0
    use_features_vec: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.use_features_vec, 8)
        encode_uint(packet, self.server_time_ms, 8)
        push_tag(packet, PacketTag.SYNC_ACK)

    @classmethod
    def decode(cls, packet: Packet) -> NetSyncAck:
        _expect(packet, PacketTag.SYNC_ACK, "sync ack")
        server_time_ms = decode_uint(packet, 8)
        use_features_vec = decode_uint(packet, 8)
        return cls(server_time_ms, use_features_vec)


@dataclass
class NetResetRetry:
    """Reset asking the client to retry with the given cookie."""

    cookie: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.cookie, 4)
        push_tag(packet, PacketTag.RESET_RETRY)

    @classmethod
    def decode(cls, packet: Packet) -> NetResetRetry:
        _expect(packet, PacketTag.RESET_RETRY, "reset retry")
        return cls(decode_uint(packet, 4))


@dataclass
class NetResetRedirect:
    """Reset sending the client to another origin and port."""

    cookie: int = 0
    origin: str = ""
    port: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.port, 2)
        encode_string(packet, self.origin)
        encode_uint(packet, self.cookie, 4)
        push_tag(packet, PacketTag.RESET_REDIRECT)

    @classmethod
    def decode(cls, packet: Packet) -> NetResetRedirect:
        _expect(packet, PacketTag.RESET_REDIRECT, "reset redirect")
        cookie = decode_uint(packet, 4)
        origin = decode_string(packet)
        port = decode_uint(packet, 2)
        return cls(cookie, origin, port)


@dataclass
class NetRateReq:
    """Requested bitrate in kilobits per second."""

    bitrate_kbps: int = 0

    def encode(self, packet: Packet) -> None:
        encode_varint(packet, self.bitrate_kbps)
        push_tag(packet, PacketTag.RATE)

    @classmethod
    def decode(cls, packet: Packet) -> NetRateReq:
        _expect(packet, PacketTag.RATE, "rate request")
        return cls(decode_varint(packet))


@dataclass
class NetAck:
    """Acknowledgement of a client packet."""

    client_seq_num: int = 0
    recv_time_us: int = 0
    ack_vec: int = 0
    ecn_vec: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.ecn_vec, 4)
        encode_uint(packet, self.ack_vec, 4)
        encode_uint(packet, self.client_seq_num, 4)
        encode_uint(packet, self.recv_time_us, 4)
        push_tag(packet, PacketTag.ACK)

    @classmethod
    def decode(cls, packet: Packet) -> NetAck:
        _expect(packet, PacketTag.ACK, "ack")
        recv_time_us = decode_uint(packet, 4)
        client_seq_num = decode_uint(packet, 4)
        ack_vec = decode_uint(packet, 4)
        ecn_vec = decode_uint(packet, 4)
        return cls(client_seq_num, recv_time_us, ack_vec, ecn_vec)


@dataclass
class NetNack:
    """Negative acknowledgement of a relay sequence number."""

    relay_seq_num: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.relay_seq_num, 4)
        push_tag(packet, PacketTag.NACK)

    @classmethod
    def decode(cls, packet: Packet) -> NetNack:
        _expect(packet, PacketTag.NACK, "nack")
        return cls(decode_uint(packet, 4))


@dataclass
class Subscribe:
    """Subscription request for a name and everything under it."""

    name: ShortName = field(default_factory=ShortName)

    def encode(self, packet: Packet) -> None:
        encode_short_name(packet, self.name)
        push_tag(packet, PacketTag.SUBSCRIBE)

    @classmethod
    def decode(cls, packet: Packet) -> Subscribe:
        _expect(packet, PacketTag.SUBSCRIBE, "subscribe")
        return cls(decode_short_name(packet))


@dataclass
class ClientData:
    """Client sequence number of an application packet."""

    client_seq_num: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.client_seq_num, 4)
        push_tag(packet, PacketTag.CLIENT_DATA)

    @classmethod
    def decode(cls, packet: Packet) -> ClientData:
        _expect(packet, PacketTag.CLIENT_DATA, "client data")
        return cls(decode_uint(packet, 4))


@dataclass
class RelayData:
    """Relay sequence number and send time added when forwarding."""

    relay_seq_num: int = 0
    relay_send_time_us: int = 0

    def encode(self, packet: Packet) -> None:
        encode_uint(packet, self.relay_send_time_us, 4)
        encode_uint(packet, self.relay_seq_num, 4)
        push_tag(packet, PacketTag.RELAY_DATA)

    @classmethod
    def decode(cls, packet: Packet) -> RelayData:
        _expect(packet, PacketTag.RELAY_DATA, "relay data")
        relay_seq_num = decode_uint(packet, 4)
        relay_send_time_us = decode_uint(packet, 4)
        return cls(relay_seq_num, relay_send_time_us)


@dataclass
class EncryptedDataBlock:
    """Lengths describing an encrypted payload."""

    auth_tag_len: int = 0
    meta_data_len: int = 0
    cipher_data_len: int = 0

    def encode(self, packet: Packet) -> None:
        encode_varint(packet, self.cipher_data_len)
        encode_varint(packet, self.meta_data_len)
        encode_uint(packet, self.auth_tag_len, 1)
        push_tag(packet, PacketTag.ENC_DATA_BLOCK)

    @classmethod
    def decode(cls, packet: Packet) -> EncryptedDataBlock:
        _expect(packet, PacketTag.ENC_DATA_BLOCK, "encrypted data block")
        auth_tag_len = decode_uint(packet, 1)
        meta_data_len = decode_varint(packet)
        cipher_data_len = decode_varint(packet)
        return cls(auth_tag_len, meta_data_len, cipher_data_len)


@dataclass
class DataBlock:
    """Lengths describing a plain payload."""

    meta_data_len: int = 0
    data_len: int = 0

    def encode(self, packet: Packet) -> None:
        encode_varint(packet, self.data_len)
        encode_varint(packet, self.meta_data_len)
        push_tag(packet, PacketTag.DATA_BLOCK)

    @classmethod
    def decode(cls, packet: Packet) -> DataBlock:
        _expect(packet, PacketTag.DATA_BLOCK, "data block")
        meta_data_len = decode_varint(packet)
        data_len = decode_varint(packet)
        return cls(meta_data_len, data_len)


@dataclass
class NamedDataChunk:
    """A short name together with the lifetime of the data it names."""

    short_name: ShortName = field(default_factory=ShortName)
    lifetime: int = 0

    def encode(self, packet: Packet) -> None:
        encode_varint(packet, self.lifetime)
        encode_short_name(packet, self.short_name)

    @classmethod
    def decode(cls, packet: Packet) -> NamedDataChunk:
        short_name = decode_short_name(packet)
        lifetime = decode_varint(packet)
        return cls(short_name, lifetime)