"""Relays that forward published media to subscribers."""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from .fib import Fib, MultimapFib, SubscriberInfo
from .messages import (
    ClientData,
    DataBlock,
    EncryptedDataBlock,
    Header,
    NamedDataChunk,
    NetAck,
    NetRateReq,
    RelayData,
    Subscribe,
)
from .names import ShortName
from .packet import Address, Packet, PacketTag
from .wire import DecodeError, decode_uint, next_tag

log = logging.getLogger(__name__)

IDLE_SLEEP_S = 0.001
_UINT32 = 0xFFFFFFFF

Clock = Callable[[], int]


def monotonic_us() -> int:
    """Microseconds from a monotonic clock."""
    return time.monotonic_ns() // 1000


class Server(Protocol):
    """What a relay needs from its transport."""

    def recv(self) -> Optional[Packet]:
        ...

    def send(self, packet: Packet) -> bool:
        ...


class _RelayBase(ABC):
    """Receive loop, dispatch and acknowledgement shared by the relays."""

    def __init__(self, server: Server, rng: Optional[random.Random], clock: Clock) -> None:
        self.server = server
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self.prev_ack_seq_num = 0
        self.prev_recv_time_us = 0

    def _now_us(self) -> int:
        return self._clock() & _UINT32

    def _random_u32(self) -> int:
        return self._rng.getrandbits(32) & _UINT32

    def _process_next(self) -> None:
        packet = self.server.recv()
        if packet is None:
            time.sleep(IDLE_SLEEP_S)
            return
        tag = next_tag(packet)
        try:
            if tag is PacketTag.CLIENT_DATA:
                self._process_app_message(packet)
            elif tag is PacketTag.RATE:
                self._process_rate_request(packet)
            else:
                log.warning("unknown tag: %s", tag.name)
        except ValueError as exc:
            log.warning("dropping packet: %s", exc)

    def _process_app_message(self, packet: Packet) -> None:
        seq_tag = ClientData.decode(packet)
        tag = next_tag(packet)
        if tag is PacketTag.CLIENT_DATA:
            self._process_pub(packet, seq_tag)
        elif tag is PacketTag.SUBSCRIBE:
            self._process_sub(packet, seq_tag)
        else:
            log.warning("bad app message: %s", tag.name)

    def _process_rate_request(self, packet: Packet) -> None:
        request = NetRateReq.decode(packet)
        log.info("requested rate: %.3f mbps", request.bitrate_kbps / 1000.0)

    def _send_ack(self, packet: Packet, client_seq_num: int, now_us: int, path_token: int) -> None:
        ack = Packet()
        ack.dst = packet.src
        Header(PacketTag.HEADER_DATA, path_token).encode(ack)
        if self.prev_ack_seq_num > 0:
            NetAck(
                client_seq_num=self.prev_ack_seq_num,
                recv_time_us=self.prev_recv_time_us,
            ).encode(ack)
        NetAck(client_seq_num=client_seq_num, recv_time_us=now_us).encode(ack)
        self.server.send(ack)
        self.prev_ack_seq_num = client_seq_num
        self.prev_recv_time_us = now_us

    @abstractmethod
    def _process_sub(self, packet: Packet, seq_tag: ClientData) -> None:
        """Record a subscription carried by the packet."""

    @abstractmethod
    def _process_pub(self, packet: Packet, seq_tag: ClientData) -> None:
        """Acknowledge a publication and forward it."""


class Relay(_RelayBase):
    """Forwards each publication to the subscribers its FIB finds for the name."""

    def __init__(
        self,
        server: Server,
        fib: Optional[Fib] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = monotonic_us,
    ) -> None:
        super().__init__(server, rng, clock)
        self.fib = fib if fib is not None else MultimapFib()

    def process(self) -> None:
        """Handle one received packet, or wait briefly when there is none."""
        self._process_next()

    def _process_sub(self, packet: Packet, seq_tag: ClientData) -> None:
        name = Subscribe.decode(packet).name
        log.info("adding subscription for %s", name)
        self.fib.add_subscription(name, SubscriberInfo(name, packet.src, self._random_u32()))

    def _process_pub(self, packet: Packet, seq_tag: ClientData) -> None:
        now_us = self._now_us()
        ClientData.decode(packet)
        chunk = NamedDataChunk.decode(packet)
        if next_tag(packet) is PacketTag.ENC_DATA_BLOCK:
            block = EncryptedDataBlock.decode(packet)
            payload_size = block.cipher_data_len
        else:
            block = DataBlock.decode(packet)
            if block.meta_data_len != 0:
                raise DecodeError("data blocks with meta data are not supported")
            payload_size = block.data_len

        if payload_size > packet.payload_size:
            log.warning("bad data size %d, packet holds %d", payload_size, packet.payload_size)
            return

        self._send_ack(packet, seq_tag.client_seq_num, now_us, packet.path_token)

        subscribers = self.fib.lookup_subscription(chunk.short_name)
        log.debug("%s has %d subscribers", chunk.short_name, len(subscribers))

        block.encode(packet)
        chunk.encode(packet)
        for subscriber in subscribers:
            forward = packet.clone()
            forward.dst = subscriber.face
            RelayData(subscriber.relay_seq_num, now_us).encode(forward)
            self.server.send(forward)


@dataclass
class Connection:
    """A subscriber of the broadcast relay."""

    relay_seq_num: int
    address: Address
    last_syn_us: int = 0


class BroadcastRelay(_RelayBase):
    """Forwards every publication to every subscriber, whatever the name."""

    def __init__(
        self,
        server: Server,
        rng: Optional[random.Random] = None,
        clock: Clock = monotonic_us,
    ) -> None:
        super().__init__(server, rng, clock)
        self.connections: Dict[ShortName, Connection] = {}

    def process(self) -> None:
        """Handle one received packet, or wait briefly when there is none."""
        self._process_next()

    def _process_sub(self, packet: Packet, seq_tag: ClientData) -> None:
        name = Subscribe.decode(packet).name
        log.info("adding subscription for %s", name)
        connection = self.connections.get(name)
        if connection is None:
            connection = Connection(self._random_u32(), packet.src)
            self.connections[name] = connection
        connection.last_syn_us = self._clock()

    def _process_pub(self, packet: Packet, seq_tag: ClientData) -> None:
        """Publications carry an encrypted block followed by a 2-byte payload length."""
        now_us = self._now_us()
        ClientData.decode(packet)
        chunk = NamedDataChunk.decode(packet)
        block = EncryptedDataBlock.decode(packet)
        payload_size = decode_uint(packet, 2)
        if payload_size > packet.payload_size:
            log.warning("bad data size %d, packet holds %d", payload_size, packet.payload_size)
            return

        self._send_ack(packet, seq_tag.client_seq_num, now_us, 0)

        block.encode(packet)
        chunk.encode(packet)
        for name in sorted(self.connections):
            connection = self.connections[name]
            forward = packet.clone()
            forward.dst = connection.address
            RelayData(connection.relay_seq_num, now_us).encode(forward)
            connection.relay_seq_num = (connection.relay_seq_num + 1) & _UINT32
            self.server.send(forward)