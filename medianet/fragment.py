"""Splitting of large packets into fragments and their reassembly."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Union

from .messages import ClientData, DataBlock, EncryptedDataBlock, NamedDataChunk
from .names import ShortName
from .packet import Packet, PacketTag
from .pipes import Pipe, StatName
from .wire import DecodeError, next_tag

log = logging.getLogger(__name__)

EXTRA_HEADER_SIZE_BYTES = 25
MIN_PACKET_PAYLOAD = 56
MAX_FRAGMENTS = 62

Block = Union[DataBlock, EncryptedDataBlock]


def _block_len(block: Block) -> int:
    if isinstance(block, EncryptedDataBlock):
        return block.cipher_data_len
    return block.data_len


def _set_block_len(block: Block, size: int) -> None:
    if isinstance(block, EncryptedDataBlock):
        block.cipher_data_len = size
    else:
        block.data_len = size


def _decode_block(packet: Packet) -> Optional[Block]:
    tag = next_tag(packet)
    if tag is PacketTag.ENC_DATA_BLOCK:
        return EncryptedDataBlock.decode(packet)
    if tag is PacketTag.DATA_BLOCK:
        return DataBlock.decode(packet)
    return None


class FragmentPipe(Pipe):
    """Breaks packets larger than the MTU into fragments and joins them again."""

    def __init__(self, next_pipe: Optional[Pipe] = None, mtu: int = 1200) -> None:
        super().__init__(next_pipe)
        self.mtu = mtu
        self._frag_lock = threading.Lock()
        self._frag_list: Dict[ShortName, Packet] = {}

    @property
    def pending_fragments(self) -> int:
        """Number of fragments held while waiting for the rest of their packet."""
        with self._frag_lock:
            return len(self._frag_list)

    def update_stat(self, stat: StatName, value: int) -> None:
        if stat is StatName.MTU:
            self.mtu = int(value)
        super().update_stat(stat, value)

    def update_mtu(self, mtu: int, pps: int) -> None:
        self.mtu = mtu
        super().update_mtu(mtu, pps)

    def send(self, packet: Packet) -> bool:
        nxt = self._next()
        if len(packet) + EXTRA_HEADER_SIZE_BYTES <= self.mtu:
            log.debug("%s not fragmented, size=%d mtu=%d", packet.name, len(packet), self.mtu)
            return nxt.send(packet)

        client_data = ClientData.decode(packet)
        chunk = NamedDataChunk.decode(packet)
        block = _decode_block(packet)
        if block is None:
            raise DecodeError(f"expected a data block, found {next_tag(packet).name}")
        if block.meta_data_len != 0:
            raise ValueError("fragmenting blocks with meta data is not supported")
        if chunk.short_name.fragment_id != 0:
            raise ValueError("packet is already a fragment")

        data_size = max(self.mtu - EXTRA_HEADER_SIZE_BYTES, MIN_PACKET_PAYLOAD)
        payload = packet.payload
        pieces = [payload[start:start + data_size] for start in range(0, len(payload), data_size)]
        if len(pieces) > MAX_FRAGMENTS:
            raise ValueError(f"packet needs {len(pieces)} fragments, limit is {MAX_FRAGMENTS}")

        ok = True
        for number, piece in enumerate(pieces, start=1):
            frag = packet.clone()
            frag.resize(len(piece))
            frag.payload = piece
            frag.set_frag_id(number, number == len(pieces))
            chunk.short_name = frag.name
            _set_block_len(block, len(piece))
            block.encode(frag)
            chunk.encode(frag)
            client_data.encode(frag)
            ok = nxt.send(frag) and ok
        return ok

    def recv(self) -> Optional[Packet]:
        packet = self._next().recv()
        if packet is None:
            return None
        return self.process_rx_packet(packet)

    def process_rx_packet(self, packet: Packet) -> Optional[Packet]:
        """Pass whole packets on; hold fragments until their packet is complete.

        Returns the packet, the reassembled packet, or None while fragments
        are still missing or the packet is malformed.
        """
        if next_tag(packet) is not PacketTag.SHORT_NAME:
            return packet

        while next_tag(packet) is PacketTag.SHORT_NAME:
            try:
                chunk = NamedDataChunk.decode(packet)
                block = _decode_block(packet)
            except DecodeError:
                log.warning("dropping malformed packet")
                return None
            if block is None:
                log.warning("dropping packet without a data block")
                return None

            block.encode(packet)
            name = chunk.short_name

            if name.fragment_id == 0:
                chunk.encode(packet)
                return packet

            if packet.payload_size < _block_len(block):
                log.warning("dropping fragment shorter than its data block")
                return None

            copy = packet.clone()
            copy.name = name
            with self._frag_lock:
                self._frag_list[name] = copy
                result = self._reassemble(name, isinstance(block, EncryptedDataBlock))
            if result is not None:
                chunk.short_name = name.with_fragment(0)
                _set_block_len(block, result.payload_size)
                block.encode(result)
                chunk.encode(result)
                result.name = chunk.short_name
                result.set_frag_id(0, True)
                return result
        return None

    def _fragment_count(self, name: ShortName) -> Optional[int]:
        for frag in range(1, 128):
            if name.with_fragment(frag * 2) in self._frag_list:
                continue
            if name.with_fragment(frag * 2 + 1) in self._frag_list:
                return frag
            return None
        return None

    def _reassemble(self, name: ShortName, encrypted: bool) -> Optional[Packet]:
        count = self._fragment_count(name)
        if count is None:
            return None

        result: Optional[Packet] = None
        for number in range(1, count + 1):
            fragment_id = number * 2 + (1 if number == count else 0)
            frag = self._frag_list.pop(name.with_fragment(fragment_id))
            block = EncryptedDataBlock.decode(frag) if encrypted else DataBlock.decode(frag)
            data_size = _block_len(block)
            if data_size <= 0 or data_size > frag.payload_size:
                raise DecodeError("fragment data block does not match its payload")
            if result is None:
                result = frag
                result.set_frag_id(0, True)
                result.header_size = len(result) - data_size
                continue
            result.push(frag.payload[-data_size:])
        return result