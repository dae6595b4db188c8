# medianet

`medianet` holds the building blocks of a small real-time media transport:
a wire format, the protocol messages written in it, a chain of packet pipes
and the decision logic of a publish/subscribe relay. It has no dependencies
outside the standard library.

## Modules

| Module | Contents |
| --- | --- |
| `medianet.names` | `ShortName`, the hierarchical name of a media chunk |
| `medianet.packet` | `Packet`, a byte buffer used as a stack, and `PacketTag` |
| `medianet.wire` | integers, varints, strings and tags pushed onto and popped off a packet; `DecodeError`; `describe` |
| `medianet.messages` | protocol messages with `encode` / `decode` |
| `medianet.pipes` | `Pipe`, `CrazyBitPipe`, `FakeLossPipe`, `FecPipe`, `StatName` |
| `medianet.fragment` | `FragmentPipe`, which splits and reassembles packets |
| `medianet.fib` | `SubscriberInfo`, `Fib`, `MultimapFib` |
| `medianet.relay` | `Relay`, `BroadcastRelay`, `Connection` |

## Names

A `ShortName` has five fields, in this order: resource id (64 bits), sender
id (32 bits), source id (8 bits), media time (32 bits) and fragment id
(8 bits). Names sort field by field in that order. Values outside these
ranges raise `ValueError`.

```python
from medianet.names import ShortName

name = ShortName.from_string("qr://1234/12/1/")
first_fragment = name.with_fragment(2)
print(name)  # qr://1234/12/1/0/0
```

`from_string` takes one to five numeric components after `qr://`. A trailing
slash is optional.

## Packets and the wire format

A `Packet` is a `bytearray` whose first `header_size` bytes form a header.
The bytes after the header are the payload (`payload`, `payload_size`).
Fields are appended with `push` and taken back off the end with `pop`.
`peek` looks at the last bytes without removing them. `resize` sets the
payload length, and `clone` makes a deep copy.

A packet also carries these attributes: `name`, `src`, `dst`, `priority`,
`fec`, `reliable` and `path_token`. `set_frag_id(n, last)` sets the
fragment id of `name` as follows:

- `0` when `n` is 0, which means a whole packet;
- `n * 2` for a numbered fragment that is not the last;
- `n * 2 + 1` for the last fragment.

Each field is followed by a one-byte tag, which is the `code` of a
`PacketTag`. A packet is therefore read from its end. Integers are little
endian.

```python
from medianet.packet import Packet
from medianet.wire import encode_uint, decode_uint, encode_varint, decode_varint

packet = Packet()
encode_uint(packet, 0xDEADBEEF, 4)
encode_varint(packet, 300)

assert decode_varint(packet) == 300
assert decode_uint(packet, 4) == 0xDEADBEEF
```

- `encode_uint` / `decode_uint` handle widths of 1, 2, 4 or 8 bytes.
- `encode_varint` / `decode_varint` use 1, 2, 4 or 8 bytes, taking values
  below 2**60.
- `encode_bytes` / `decode_bytes` and `encode_string` / `decode_string`
  handle up to 255 bytes, followed by a length byte. Decoding an empty one
  raises `DecodeError`.
- `push_tag`, `pop_tag`, `next_tag` and `tag_from_byte` deal with tags.
  `next_tag` returns `PacketTag.NONE` for an empty packet and
  `PacketTag.BAD_TAG` for an unknown byte.
- `describe(packet)` walks the tags back from the end of the packet and
  returns a short text summary.

Running out of bytes, or finding the wrong tag, raises
`medianet.wire.DecodeError`, which is a subclass of `ValueError`.

## Messages

Every message in `medianet.messages` is a dataclass. `msg.encode(packet)`
pushes its fields and its tag, and `Cls.decode(packet)` pops them back. The
messages are:

- `Header`
- `NetSyncReq`, `NetSyncAck`
- `NetResetRetry`, `NetResetRedirect`
- `NetRateReq`
- `NetAck`, `NetNack`
- `Subscribe`
- `ClientData`, `RelayData`
- `DataBlock`, `EncryptedDataBlock`
- `NamedDataChunk`

`encode_short_name` and `decode_short_name` write and read the 18-byte form
of a `ShortName`, followed by its tag.

## Pipes

Each pipe is built on the next pipe in the chain. `send(packet)` returns
whether the packet was accepted. `recv()` returns a packet, or `None` when
none is waiting. `update_rtt`, `update_mtu` and `update_stat` are passed
down the chain. A pipe with no next pipe raises `RuntimeError` when it is
asked to send or receive.

- `CrazyBitPipe(next_pipe, clock)` sets bit 0 of the first byte of outgoing
  packets. The bit flips once per RTT (100 ms by default, then the `min_rtt_ms`
  given to `update_rtt`). The pipe clears the bit on received packets.
- `FakeLossPipe(next_pipe)` counts packets in each direction, in
  `upstream_count` and `downstream_count`, and passes them all through.
- `FecPipe(next_pipe, clock)` handles packets whose `fec` is set. For each
  one it queues two copies, due 10 ms and 50 ms later, with `fec` and
  `reliable` cleared and priority 0. Copies that are due go out on later
  calls to `send`. `pending` counts the queued copies. `close()`, or leaving a
  `with` block, drops them.
- `FragmentPipe(next_pipe, mtu=1200)` splits a packet when its size plus 25
  bytes exceeds the MTU. The packet must be laid out as `ClientData`, then
  `NamedDataChunk`, then `DataBlock` or `EncryptedDataBlock`. Fragments are
  at least 56 bytes, and a packet may have at most 62 of them. On receive,
  the pipe holds fragments until the last numbered fragment and every one
  before it have arrived, then returns the reassembled packet.
  `pending_fragments` counts the fragments it holds. The MTU follows
  `update_mtu` and `update_stat(StatName.MTU, value)`.

Clocks are plain callables that return integer milliseconds (pipes) or
microseconds (relays). Passing them in keeps behaviour deterministic in
tests.

## Subscriptions and relays

`MultimapFib` maps names to `SubscriberInfo(name, face, relay_seq_num)`.

- `add_subscription` replaces any earlier subscription to the same name.
- `remove_subscription` removes the entry with the same face.
- `lookup_subscription(name)` collects the subscribers of three names:
  `name`'s resource; its resource and sender, when the sender id is non-zero;
  and its resource, sender and source, when the source id is non-zero. The
  name must have a resource id.

A relay takes a server object with `recv()` and `send(packet)` methods. Each
call to `process()` handles one received packet, or sleeps 1 ms when there
is none.

- `Relay` records `Subscribe` messages in its `Fib`. It acks each
  publication to the sender, repeating the previous ack as well. It then
  forwards the publication, with `RelayData` appended, to every matching
  subscriber.
- `BroadcastRelay` keeps one `Connection` per subscribed name. It forwards
  every publication to all of them and increments each connection's relay
  sequence number.

```python
from collections import deque

from medianet.messages import ClientData, DataBlock, NamedDataChunk, Subscribe
from medianet.names import ShortName
from medianet.packet import Packet
from medianet.relay import Relay


class QueueServer:
    def __init__(self):
        self.inbox = deque()
        self.sent = []

    def recv(self):
        return self.inbox.popleft() if self.inbox else None

    def send(self, packet):
        self.sent.append(packet)
        return True


server = QueueServer()
relay = Relay(server)

sub = Packet()
Subscribe(ShortName.from_string("qr://1234/")).encode(sub)
ClientData(1).encode(sub)
sub.src = ("127.0.0.1", 4000)
server.inbox.append(sub)
relay.process()

pub = Packet(b"hello")
DataBlock(0, 5).encode(pub)
NamedDataChunk(ShortName.from_string("qr://1234/12/1/"), 0).encode(pub)
ClientData(2).encode(pub)
ClientData(2).encode(pub)
pub.src = ("127.0.0.1", 5000)
server.inbox.append(pub)
relay.process()

# server.sent now holds the ack sent to 127.0.0.1:5000
# and the copy forwarded to 127.0.0.1:4000
```

## What the package does not do

`medianet` has no network transport of its own. It does not open sockets and
has no server or client classes. Relays and pipes work with whatever objects
are given to them. It has no connection handshake pipe and no encryption
pipe. `EncryptedDataBlock` only describes lengths, and nothing in the package
encrypts or decrypts payloads. It installs no command-line programs. To run a
relay, call `process()` in a loop with a server of your own.