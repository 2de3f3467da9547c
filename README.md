# partitionlink

partitionlink is a small in-memory key/hash store node meant to run on a local
network next to other nodes. Each node:

- announces itself on a UDP multicast group and keeps a table of the other
  nodes it hears from, dropping those that stay silent past their time to live;
- listens on a TCP port for messages framed in a compact binary protocol,
  answering pings with pongs;
- runs a database worker that executes hash put / hash get commands handed to
  it in-process against its local store.

## Installation

```
pip install partitionlink
```

To run the test suite, install the `test` extra:

```
pip install "partitionlink[test]"
pytest
```

## Running a node

```
partitionlink-server
```

The server (`partitionlink.server.main`) builds a `Runtime` with the default
`Config` and starts node discovery, the command server and the database
worker. It runs until it receives SIGINT or SIGTERM; discovery then multicasts
an offline announcement and every task is cancelled.

Default settings (`partitionlink.config.Config`):

| Setting                    | Default      |
|----------------------------|--------------|
| command listen address     | `0.0.0.0`    |
| command listen port        | `7111` (`PL_LISTEN_PORT` overrides it) |
| discovery multicast group  | `224.0.0.1`  |
| discovery multicast port   | `54123`      |
| announce interval          | 10 s         |
| node time to live          | 30 s         |
| expiry check interval      | 10 s         |

Every node gets a fresh random 64-bit id at start-up.

With `--local-cmd-mode` (or when the `LOCAL_CMD_MODE` environment variable is
set) the server also runs `execute_cmd`: every 5 seconds, ten times, it puts
`online: <n>` into member `jason` of the hash `UserConnectStateMap` through the
database worker and reads it back.

## Talking to a node

```
partitionlink-client [--host HOST] [--port PORT]
```

The client connects to a node (by default `127.0.0.1:7111`), waits a second,
sends ten ping frames one second apart, waits another second and disconnects.
The node answers each ping with a pong.

## Wire protocol

Every frame is laid out as:

```
magic (8 bits) | head (1) | version (3) | kind (4) | length (8) | payload (length bytes)
```

- `magic` is always `0xff`;
- `head` is set on the last frame of a message and clear on the ones before it;
- `version` is the protocol version, currently `1`;
- `kind` is ping, pong, command or error (`partitionlink.protocol.Kind`);
- a payload carries at most 255 bytes, so longer messages span several frames.

The protocol types are usable on their own:

```python
from partitionlink.frame import Frame, build_frames
from partitionlink.protocol import Kind

frames = build_frames(Kind.CMD, b"some payload")
wire = b"".join(frame.encode() for frame in frames)

ping = Frame.ping().encode()
```

`Frame.check` returns a `FrameMatchResult` telling whether a buffer begins with
a complete frame, and `Frame.parse` decodes one. `Connection` reads and writes
frames over an asyncio stream pair.

## Commands

Command payloads are msgpack-encoded (`Command.encode_to_payload`,
`Command.from_payload`); database values are `None`, `bool`, `str`, `bytes`,
lists and `str`-keyed dicts of those.

- `HelloCmd` — does nothing; used to exercise a connection;
- `HashPutCmd` — sets one member of a hash, creating the hash if needed, and
  returns the member's previous value; it raises `ValueError` if the key holds
  something other than a hash;
- `HashGetCmd` — reads one member of a hash;
- `RaftCmd` — carries an opaque message body between nodes;
- `InvalidCommand` — what an undecodable payload becomes; it does nothing.

In-process, wrap a command in `Command(inner, results_queue)` and hand it to
`runtime.postman.send`; the database worker puts the result (or the exception)
on the results queue.

## What it does not do

- There is no consensus or replication. Nothing registers a receiver for
  `RaftCmd` messages, so those arriving over TCP are dropped, and stores on
  different nodes are never synchronised.
- Commands arriving over TCP are executed without a database, so a
  `HashPutCmd` or `HashGetCmd` sent by a client neither changes nor reads the
  store; only commands sent through the runtime's `postman` reach it.
- Results are never sent back to TCP clients; a failure while reading or
  handling a message is answered with an error frame.
- The store lives in memory only and is lost when the node stops.