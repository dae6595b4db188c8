"""Stackable packet pipes: each one handles a packet and hands it to the next."""

from __future__ import annotations

import time
from collections import deque
from enum import Enum
from typing import Callable, Deque, Optional, Tuple

from .packet import Packet

Clock = Callable[[], int]


def monotonic_ms() -> int:
    """Milliseconds from a monotonic clock."""
    return time.monotonic_ns() // 1_000_000


class StatName(Enum):
    """Statistics that can be reported down a chain of pipes."""

    MTU = "mtu"


class Pipe:
    """A stage in a chain of pipes; by default it passes everything through."""

    def __init__(self, next_pipe: Optional[Pipe] = None) -> None:
        self.next_pipe = next_pipe

    def _next(self) -> Pipe:
        if self.next_pipe is None:
            raise RuntimeError(f"{type(self).__name__} has no next pipe")
        return self.next_pipe

    def send(self, packet: Packet) -> bool:
        """Send a packet down the chain; returns whether it was accepted."""
        return self._next().send(packet)

    def recv(self) -> Optional[Packet]:
        """Return the next received packet, or None when there is none."""
        return self._next().recv()

    def update_rtt(self, min_rtt_ms: int, max_rtt_ms: int) -> None:
        """Tell this pipe and the ones after it the current round trip time."""
        if self.next_pipe is not None:
            self.next_pipe.update_rtt(min_rtt_ms, max_rtt_ms)

    def update_mtu(self, mtu: int, pps: int) -> None:
        """Tell this pipe and the ones after it the path MTU and packet rate."""
        if self.next_pipe is not None:
            self.next_pipe.update_mtu(mtu, pps)

    def update_stat(self, stat: StatName, value: int) -> None:
        """Report a statistic to this pipe and the ones after it."""
        if self.next_pipe is not None:
            self.next_pipe.update_stat(stat, value)


class CrazyBitPipe(Pipe):
    """Flips a spin bit in the first byte of outgoing packets once per RTT."""

    def __init__(self, next_pipe: Optional[Pipe] = None, clock: Clock = monotonic_ms) -> None:
        super().__init__(next_pipe)
        self._clock = clock
        self.rtt_ms = 100
        self.spin_bit = False
        self._last_spin_ms = clock()

    def send(self, packet: Packet) -> bool:
        now = self._clock()
        if now > self._last_spin_ms + self.rtt_ms:
            self.spin_bit = not self.spin_bit
            self._last_spin_ms = now
        if self.spin_bit:
            if len(packet) < 1:
                raise ValueError("cannot set the spin bit of an empty packet")
            packet.buffer[0] |= 0x01
        return self._next().send(packet)

    def recv(self) -> Optional[Packet]:
        packet = self._next().recv()
        if packet is None:
            return None
        if len(packet) < 1:
            raise ValueError("received an empty packet")
        packet.buffer[0] &= 0xFE
        return packet

    def update_rtt(self, min_rtt_ms: int, max_rtt_ms: int) -> None:
        super().update_rtt(min_rtt_ms, max_rtt_ms)
        self.rtt_ms = min_rtt_ms


class FakeLossPipe(Pipe):
    """Counts packets in each direction; a hook point for simulated loss."""

    def __init__(self, next_pipe: Optional[Pipe] = None) -> None:
        super().__init__(next_pipe)
        self.upstream_count = 0
        self.downstream_count = 0

    def send(self, packet: Packet) -> bool:
        nxt = self._next()
        self.upstream_count += 1
        return nxt.send(packet)

    def recv(self) -> Optional[Packet]:
        packet = self._next().recv()
        if packet is not None:
            self.downstream_count += 1
        return packet


class FecPipe(Pipe):
    """Sends repeat copies of FEC packets 10 ms and 50 ms after the original."""

    REPEAT_DELAYS_MS = (10, 50)

    def __init__(self, next_pipe: Optional[Pipe] = None, clock: Clock = monotonic_ms) -> None:
        super().__init__(next_pipe)
        self._clock = clock
        self._send_list: Deque[Tuple[int, Packet]] = deque()

    @property
    def pending(self) -> int:
        """Number of repeat copies waiting to be sent."""
        return len(self._send_list)

    def send(self, packet: Packet) -> bool:
        nxt = self._next()
        now = self._clock()
        if packet.fec:
            for delay in self.REPEAT_DELAYS_MS:
                repeat = packet.clone()
                repeat.fec = False
                repeat.reliable = False
                repeat.priority = 0
                self._send_list.append((now + delay, repeat))
        while self._send_list and self._send_list[0][0] <= now:
            _, repeat = self._send_list.popleft()
            nxt.send(repeat)
        return nxt.send(packet)

    def recv(self) -> Optional[Packet]:
        return self._next().recv()

    def close(self) -> None:
        """Drop every repeat copy not yet sent."""
        self._send_list.clear()

    def __enter__(self) -> FecPipe:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()