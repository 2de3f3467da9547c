import asyncio
import socket
from types import SimpleNamespace

import pytest

from partitionlink.cmd_server import (
    MessageKind,
    ServerMessage,
    handle_message,
    parse_cmd,
    parse_error_message,
    read_message,
    reply_error,
    serve_connection,
    start_cmd_server,
)
from partitionlink.commands import (
    Command,
    HashPutCmd,
    HelloCmd,
    RaftCmd,
)
from partitionlink.config import Config
from partitionlink.connection import Connection
from partitionlink.frame import Frame, build_frames
from partitionlink.postman import Channel, Postman
from partitionlink.protocol import MAGIC_PREFIX, Header, Kind, Version


class FakeWriter:
    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return ("127.0.0.1", 4000)
        return default

    def write(self, data):
        self.data.extend(data)

    async def drain(self):
        return None

    def is_closing(self):
        return self.closed

    def close(self):
        self.closed = True

    async def wait_closed(self):
        return None


def make_conn(data=b"", eof=True):
    reader = asyncio.StreamReader()
    if data:
        reader.feed_data(data)
    if eof:
        reader.feed_eof()
    writer = FakeWriter()
    return Connection(reader, writer), reader, writer


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_parse_cmd_round_trip():
    cmd = HashPutCmd(key="UserConnectStateMap", member_key="jason", member_value="online")
    frames = Command(cmd).encode_to_frames()
    assert parse_cmd(frames).inner == cmd


def test_parse_cmd_garbage_is_invalid():
    frames = build_frames(Kind.CMD, b"\x01\x02\x03")
    command = parse_cmd(frames)
    assert str(command) == "Invalid"
    assert command.inner.is_valid() is False
    with pytest.raises(ValueError):
        command.encode_to_payload()


def test_parse_error_message_joins_frames():
    text = "e" * 600
    frames = build_frames(Kind.ERROR, text.encode())
    assert len(frames) > 1
    assert parse_error_message(frames) == text


def test_parse_error_message_replaces_invalid_utf8():
    frames = build_frames(Kind.ERROR, b"\xff")
    assert parse_error_message(frames) == "\ufffd"


@pytest.mark.asyncio
async def test_read_message_ping():
    conn, _, _ = make_conn(Frame.ping().encode())
    message = await read_message(conn)
    assert message.kind is MessageKind.PING


@pytest.mark.asyncio
async def test_read_message_pong():
    conn, _, _ = make_conn(Frame.pong().encode())
    message = await read_message(conn)
    assert message.kind is MessageKind.PONG


@pytest.mark.asyncio
async def test_read_message_multi_frame_command():
    cmd = HashPutCmd(key="k", member_key="m", member_value="x" * 600)
    frames = Command(cmd).encode_to_frames()
    assert len(frames) > 1
    conn, _, _ = make_conn(b"".join(f.encode() for f in frames))
    message = await read_message(conn)
    assert message.kind is MessageKind.CMD
    assert message.command.inner == cmd


@pytest.mark.asyncio
async def test_read_message_end_of_stream():
    conn, _, _ = make_conn()
    assert await read_message(conn) is None


@pytest.mark.asyncio
async def test_read_message_wrong_version():
    frame = Frame(header=Header(version=Version(2), kind=Kind.PING))
    conn, _, _ = make_conn(frame.encode())
    with pytest.raises(ValueError, match="incorrect protocol version"):
        await read_message(conn)


@pytest.mark.asyncio
async def test_read_message_truncated_frame():
    data = Frame(payload=b"abcdef").encode()[:-2]
    conn, _, _ = make_conn(data)
    with pytest.raises(ConnectionResetError):
        await read_message(conn)


@pytest.mark.asyncio
async def test_read_message_skips_unparsable_kind():
    error_frames = build_frames(Kind.ERROR, b"boom")
    data = b"".join(f.encode() for f in error_frames) + Frame.ping().encode()
    conn, _, _ = make_conn(data)
    message = await read_message(conn)
    assert message.kind is MessageKind.PING


@pytest.mark.asyncio
async def test_handle_ping_replies_pong():
    conn, _, writer = make_conn()
    await handle_message(conn, ServerMessage(MessageKind.PING), None)
    assert bytes(writer.data) == Frame.pong().encode()


@pytest.mark.asyncio
async def test_handle_raft_command_goes_to_postman():
    postman = Postman()
    queue = postman.new_channel(Channel.RAFT_MSG, 1)
    app = SimpleNamespace(postman=postman)
    conn, _, writer = make_conn()
    message = ServerMessage(MessageKind.CMD, command=Command(RaftCmd(b"abc")))
    await handle_message(conn, message, app)
    assert queue.get_nowait().inner == RaftCmd(b"abc")
    assert bytes(writer.data) == b""


@pytest.mark.asyncio
async def test_reply_error_writes_error_frame():
    conn, _, writer = make_conn()
    await reply_error(conn, ValueError("boom"))
    data = bytes(writer.data)
    assert data[0] == MAGIC_PREFIX
    assert data[1] & 0x0F == Kind.ERROR.value
    assert data[2] == len(b"boom")
    assert data[3:] == b"boom"


@pytest.mark.asyncio
async def test_reply_error_on_closed_connection_writes_nothing():
    conn, _, writer = make_conn()
    await conn.close()
    await reply_error(conn, ValueError("boom"))
    assert bytes(writer.data) == b""


@pytest.mark.asyncio
async def test_serve_connection_answers_ping_and_closes():
    conn, _, writer = make_conn(Frame.ping().encode())
    await asyncio.wait_for(serve_connection(None, conn), 5)
    assert bytes(writer.data) == Frame.pong().encode()
    assert writer.closed


@pytest.mark.asyncio
async def test_serve_connection_replies_on_version_error():
    frame = Frame(header=Header(version=Version(3), kind=Kind.PING))
    conn, _, writer = make_conn(frame.encode())
    await asyncio.wait_for(serve_connection(None, conn), 5)
    assert bytes(writer.data)[3:] == b"incorrect protocol version"
    assert writer.closed


@pytest.mark.asyncio
async def test_serve_connection_writes_outbox_frames():
    conn, reader, writer = make_conn(eof=False)
    outbox = asyncio.Queue()
    await outbox.put([Frame.ping()])
    task = asyncio.create_task(serve_connection(None, conn, outbox))
    for _ in range(200):
        if writer.data:
            break
        await asyncio.sleep(0.01)
    reader.feed_eof()
    await asyncio.wait_for(task, 5)
    assert bytes(writer.data) == Frame.ping().encode()


@pytest.mark.asyncio
async def test_start_cmd_server_answers_ping():
    cfg = Config(listen_addr="127.0.0.1", listen_port=free_port())
    task = await start_cmd_server(None, cfg)
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", cfg.listen_port)
        writer.write(Frame.ping().encode())
        await writer.drain()
        reply = await asyncio.wait_for(reader.readexactly(3), 5)
        assert reply == Frame.pong().encode()
        writer.close()
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
    assert task.done()


@pytest.mark.asyncio
async def test_start_cmd_server_runs_hello_command():
    cfg = Config(listen_addr="127.0.0.1", listen_port=free_port())
    task = await start_cmd_server(None, cfg)
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", cfg.listen_port)
        for frame in Command(HelloCmd(valid=True)).encode_to_frames():
            writer.write(frame.encode())
        writer.write(Frame.ping().encode())
        await writer.drain()
        reply = await asyncio.wait_for(reader.readexactly(3), 5)
        assert reply == Frame.pong().encode()
        writer.close()
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)